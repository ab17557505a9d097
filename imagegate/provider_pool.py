import logging
from typing import Callable

import httpx

from .models import Platform
from .providers import ClientOptions, ProviderClient, get_provider_class

logger = logging.getLogger(__name__)

ClientFactory = Callable[[Platform, "httpx.AsyncClient | None"], ProviderClient]


class ProviderPool:
    """Shared httpx pool plus one cached ProviderClient per platform id."""

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        factory: ClientFactory | None = None,
        options: ClientOptions | None = None,
    ) -> None:
        self._client = http_client
        self._owns_client = http_client is None
        self._factory = factory
        self._options = options
        self._clients: dict[str, ProviderClient] = {}

    async def start(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                follow_redirects=True,
                limits=httpx.Limits(max_connections=100, max_keepalive_connections=20),
            )
            self._owns_client = True

    async def stop(self) -> None:
        self._clients.clear()
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _require_client(self) -> httpx.AsyncClient:
        """Return initialized client or raise a clear runtime error."""
        if self._client is None:
            raise RuntimeError("Provider pool is not started")
        return self._client

    def _build(self, platform: Platform) -> ProviderClient:
        if self._factory is not None:
            return self._factory(platform, self._client)
        cls = get_provider_class(platform.provider)
        return cls(platform, self._require_client(), self._options or ClientOptions.from_settings())

    def client_for(self, platform: Platform) -> ProviderClient:
        client = self._clients.get(platform.id)
        if client is None:
            client = self._build(platform)
            self._clients[platform.id] = client
            logger.debug("Created %s client for platform %s", platform.provider, platform.id)
        return client

    def clear(self) -> None:
        """Drop cached clients, e.g. after credentials were rotated."""
        self._clients.clear()

    def __len__(self) -> int:
        return len(self._clients)
