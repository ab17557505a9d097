from pathlib import Path

import yaml
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    config_path: str = "./data/platforms.json"
    seed_platforms_path: str = ""
    auth_secret: str = ""
    admin_password: str = ""
    session_ttl_seconds: int = 60 * 60 * 24 * 7
    cookie_name: str = "ig_session"
    cookie_secure: bool = False
    require_auth_for_ai: bool = True
    max_body_bytes: int = 20 * 1024 * 1024
    login_max_body_bytes: int = 16 * 1024
    default_provider: str = "gemini"
    fill_max_total_attempts: int = 40
    upstream_timeout_seconds: float = 300.0
    poll_interval_seconds: float = 2.0
    poll_timeout_seconds: float = 180.0
    video_poll_interval_seconds: float = 5.0
    video_timeout_seconds: float = 600.0
    monitor_enabled: bool = False
    monitor_interval_seconds: float = 60.0
    monitor_probe_timeout_seconds: float = 180.0
    task_max_concurrency: int = 4
    log_level: str = "INFO"
    log_file: str = ""
    host: str = "0.0.0.0"
    port: int = 8787

    model_config = {"env_prefix": "IMAGEGATE_"}


settings = Settings()


def load_seed_platforms(path: str) -> list[dict]:
    """Load the initial platform list from a YAML seed file."""
    seed_path = Path(path)
    if not seed_path.exists():
        raise FileNotFoundError(f"Platform seed not found: {seed_path}")
    with open(seed_path) as f:
        data = yaml.safe_load(f) or {}
    platforms = data.get("platforms", [])
    if not isinstance(platforms, list):
        raise ValueError(f"'platforms' must be a list in {seed_path}")
    return [p for p in platforms if isinstance(p, dict)]
