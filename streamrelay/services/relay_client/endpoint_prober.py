import asyncio
from typing import Any
from urllib.parse import urlsplit, urlunsplit

import httpx
from loguru import logger

from streamrelay.app_config import RelayClientSettings
from streamrelay.shared.utils import utc_now_ms

from .relay_client_schemas import ProbeResult, ServerHealthStatus

DEFAULT_STATUS_PATHS = ("/health", "/health-plain", "/ping", "/stream")
DEFAULT_RELAY_PATH = "/stream"
FFMPEG_CHECK_PATH = "/ffmpeg-check"


def _normalize(url: str) -> str:
    return url.strip().rstrip("/")


def _decode_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


def _is_upgrade_required(response: httpx.Response) -> bool:
    """A 4xx that proves the relay path exists but wants a WebSocket handshake."""
    if response.status_code == 426:
        return True
    if not 400 <= response.status_code < 500:
        return False
    return "websocket" in response.text.lower()


class EndpointProber:
    """Find a reachable relay among an ordered set of candidate base URLs.

    Candidates are tried as: user override, previously discovered (most
    recent first), static fallbacks. The discovery cache lives on the
    instance and only grows.
    """

    def __init__(
        self,
        static_endpoints: list[str] | tuple[str, ...],
        *,
        user_endpoint: str | None = None,
        timeout: float = 5.0,
        status_paths: tuple[str, ...] = DEFAULT_STATUS_PATHS,
        relay_path: str = DEFAULT_RELAY_PATH,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.static_endpoints = [_normalize(x) for x in static_endpoints if x and x.strip()]
        self.user_endpoint = _normalize(user_endpoint) if user_endpoint else None
        self.timeout = timeout
        self.status_paths = tuple(status_paths)
        self.relay_path = "/" + relay_path.lstrip("/")
        self._transport = transport
        self._discovered: list[str] = []

    @classmethod
    def from_settings(
        cls,
        settings: RelayClientSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "EndpointProber":
        return cls(
            settings.endpoints,
            user_endpoint=settings.user_endpoint,
            timeout=settings.probe_timeout,
            transport=transport,
        )

    @property
    def discovered(self) -> list[str]:
        return list(self._discovered)

    def candidates(self) -> list[str]:
        ordered: list[str] = []
        if self.user_endpoint:
            ordered.append(self.user_endpoint)
        ordered.extend(reversed(self._discovered))
        ordered.extend(self.static_endpoints)

        seen: set[str] = set()
        unique = []
        for url in ordered:
            if url not in seen:
                seen.add(url)
                unique.append(url)
        return unique

    def ws_url_for(self, base_url: str) -> str:
        """Derive the relay socket URL: http→ws, https→wss, relay path appended."""
        parts = urlsplit(_normalize(base_url))
        scheme = {"http": "ws", "https": "wss"}.get(parts.scheme, parts.scheme)
        path = parts.path.rstrip("/") + self.relay_path
        return urlunsplit((scheme, parts.netloc, path, "", ""))

    def _remember(self, base_url: str) -> None:
        if base_url in self._discovered:
            self._discovered.remove(base_url)
        self._discovered.append(base_url)

    def _client(self) -> httpx.AsyncClient:
        timeout = httpx.Timeout(self.timeout, connect=self.timeout, read=self.timeout)
        return httpx.AsyncClient(
            timeout=timeout,
            transport=self._transport,
            headers={"Cache-Control": "no-cache"},
        )

    async def _get(self, client: httpx.AsyncClient, url: str) -> httpx.Response:
        # The outer bound also covers transports that ignore httpx timeouts
        return await asyncio.wait_for(
            client.get(url, params={"nocache": utc_now_ms()}),
            timeout=self.timeout,
        )

    async def _probe_candidate(self, client: httpx.AsyncClient, base_url: str) -> ProbeResult | None:
        for path in self.status_paths:
            url = f"{base_url}{path}"
            try:
                response = await self._get(client, url)
            except (httpx.TransportError, asyncio.TimeoutError) as exc:
                # Unreachable host: the remaining paths would fail the same way
                logger.debug("probe {} failed: {}: {}", url, type(exc).__name__, exc)
                return None

            upgrade_required = _is_upgrade_required(response)
            if response.is_success or upgrade_required:
                logger.debug("probe {} positive status={}", url, response.status_code)
                return ProbeResult(
                    base_url=base_url,
                    probe_url=url,
                    status_code=response.status_code,
                    upgrade_required=upgrade_required,
                    ws_url=self.ws_url_for(base_url),
                    body=_decode_body(response),
                )

            logger.debug("probe {} negative status={}", url, response.status_code)

        return None

    async def resolve(self) -> ProbeResult | None:
        """Return the first candidate that answers a status probe, or None."""
        candidates = self.candidates()
        async with self._client() as client:
            for base_url in candidates:
                result = await self._probe_candidate(client, base_url)
                if result is not None:
                    self._remember(base_url)
                    logger.info("Relay endpoint resolved: {} ({})", base_url, result.probe_url)
                    return result

        logger.warning("No relay endpoint reachable among {} candidates", len(candidates))
        return None

    async def check_server_health(self) -> ServerHealthStatus:
        result = await self.resolve()
        if result is None:
            return ServerHealthStatus(status="offline")

        health = ServerHealthStatus(
            status="online",
            base_url=result.base_url,
            ws_url=result.ws_url,
        )

        details = result.body if isinstance(result.body, dict) else None
        if details is None or "ffmpegAvailable" not in details:
            details = await self._fetch_ffmpeg_check(result.base_url) or details

        if details:
            health.detailed_info = details
            if "ffmpegAvailable" in details:
                health.ffmpeg_status = "available" if details["ffmpegAvailable"] else "unavailable"
            health.timestamp = details.get("timestamp")
            health.active_streams = int(details.get("activeStreams") or 0)
            health.connected_clients = int(details.get("connectedClients") or 0)

        return health

    async def _fetch_ffmpeg_check(self, base_url: str) -> dict | None:
        async with self._client() as client:
            try:
                response = await self._get(client, f"{base_url}{FFMPEG_CHECK_PATH}")
            except (httpx.TransportError, asyncio.TimeoutError) as exc:
                logger.debug("ffmpeg check on {} failed: {}", base_url, exc)
                return None

        if not response.is_success:
            return None

        body = _decode_body(response)
        return body if isinstance(body, dict) else None
