"""ImageGate: image and video generation gateway with platform failover."""

__version__ = "1.0.0"
