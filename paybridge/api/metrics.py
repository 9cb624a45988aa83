"""Operations sidecar on its own port.

Serves the Prometheus scrape endpoint plus two read-only views of the
webhook ledger. None of it is reachable through the public API, and
providers never call it.

    GET /metrics                                  text exposition format
    GET /webhooks/stats?gateway=stripe&hours=24   ledger counts by state and type
    GET /webhooks/recent?gateway=paymob&limit=50  newest ledger rows
"""

from typing import Optional

from aiohttp import web

from paybridge.core.logging import logger
from paybridge.core.protocols.metrics import MetricsRenderer
from paybridge.domains.webhooks.protocols import IdempotencyStoreProtocol
from paybridge.schemas.payment import GatewayName

DEFAULT_STATS_HOURS = 24
MAX_STATS_HOURS = 24 * 30
DEFAULT_RECENT_LIMIT = 50
MAX_RECENT_LIMIT = 500


class MetricsServer:
    """aiohttp sidecar for the metrics scraper and on-call operators."""

    def __init__(
        self,
        renderer: MetricsRenderer,
        ledger: IdempotencyStoreProtocol,
        port: int,
        host: str = "0.0.0.0",
    ) -> None:
        self._renderer = renderer
        self._ledger = ledger
        self._port = port
        self._host = host
        self._runner: web.AppRunner | None = None

    def build_app(self) -> web.Application:
        app = web.Application()
        app.add_routes(
            [
                web.get("/metrics", self.metrics),
                web.get("/webhooks/stats", self.webhook_stats),
                web.get("/webhooks/recent", self.recent_webhooks),
            ]
        )
        return app

    async def start(self) -> None:
        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()
        await web.TCPSite(self._runner, self._host, self._port).start()
        logger.info(f"Operations sidecar listening on {self._host}:{self._port}")

    async def stop(self) -> None:
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

    async def metrics(self, request: web.Request) -> web.Response:
        return web.Response(
            body=self._renderer.generate(),
            content_type=self._renderer.content_type,
            charset=self._renderer.charset,
        )

    async def webhook_stats(self, request: web.Request) -> web.Response:
        """Ledger counts for one gateway, or all of them, over a window of hours."""
        gateway = _gateway_param(request)
        hours = _bounded_int(request, "hours", DEFAULT_STATS_HOURS, MAX_STATS_HOURS)
        stats = await self._ledger.get_event_stats(gateway, hours=hours)
        return web.json_response(
            {"gateway": gateway.value if gateway else None, "hours": hours, **stats.model_dump()}
        )

    async def recent_webhooks(self, request: web.Request) -> web.Response:
        """Newest ledger rows. Payload snapshots stay out of the listing."""
        gateway = _gateway_param(request)
        limit = _bounded_int(request, "limit", DEFAULT_RECENT_LIMIT, MAX_RECENT_LIMIT)
        events = await self._ledger.get_recent_events(gateway, limit=limit)
        return web.json_response(
            [e.model_dump(mode="json", exclude={"payload_snapshot"}) for e in events]
        )


def _gateway_param(request: web.Request) -> Optional[GatewayName]:
    raw = request.query.get("gateway")
    if not raw:
        return None
    try:
        return GatewayName(raw.lower())
    except ValueError as e:
        raise web.HTTPBadRequest(text=f"Unknown gateway: {raw}") from e


def _bounded_int(request: web.Request, name: str, default: int, maximum: int) -> int:
    """Positive integer query param, clamped to ``maximum``."""
    raw = request.query.get(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise web.HTTPBadRequest(text=f"{name} must be an integer") from e
    if value < 1:
        raise web.HTTPBadRequest(text=f"{name} must be positive")
    return min(value, maximum)
