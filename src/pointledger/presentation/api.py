"""
Points query server.

GET /getUserPoint?userAddr=<address>&userMultiplier=<int>
GET /health
"""

from __future__ import annotations

import re

from aiohttp import web
from eth_utils import is_address
from loguru import logger

from ..application.points import PointsCalculator
from ..application.use_cases import ScannerFleet
from ..domain.errors import AccountNotFound, PointLedgerError

CALCULATOR_KEY = web.AppKey("calculator", PointsCalculator)
FLEET_KEY = web.AppKey("fleet", ScannerFleet)

_MULTIPLIER_RE = re.compile(r"-?[0-9]+")
INT64_MIN, INT64_MAX = -(2**63), 2**63 - 1


def _parse_multiplier(raw: str) -> int | None:
    """Base-10 signed 64-bit integer; no sign prefix other than "-", no separators or padding."""
    if not _MULTIPLIER_RE.fullmatch(raw):
        return None
    try:
        value = int(raw)
    except ValueError:  # beyond the int-from-str digit limit
        return None
    return value if INT64_MIN <= value <= INT64_MAX else None


def _error(message: str, status: int) -> web.Response:
    return web.json_response({"error": message}, status=status)


async def get_user_point_handler(request: web.Request) -> web.Response:
    user_addr = request.query.get("userAddr", "").strip()
    user_multiplier = _parse_multiplier(request.query.get("userMultiplier", ""))
    if user_multiplier is None:
        return _error("Invalid userMultiplier", 400)
    if not is_address(user_addr.lower()):
        return _error("Invalid userAddr", 400)

    calculator = request.app[CALCULATOR_KEY]
    try:
        points = await calculator.compute_points(user_addr, user_multiplier)
        body = {"userPoints": str(points)}
    except AccountNotFound:
        return _error("User not found", 404)
    except (PointLedgerError, ValueError) as e:
        logger.error(f"Points calculation for {user_addr} failed: {e}")
        return _error("Failed to calculate user points", 500)

    return web.json_response(body)


async def health_handler(request: web.Request) -> web.Response:
    fleet = request.app.get(FLEET_KEY)
    if fleet is None:
        return web.json_response({"status": "healthy", "scanners": {}})
    body = fleet.health()
    return web.json_response(body, status=200 if body["status"] == "healthy" else 503)


def create_app(calculator: PointsCalculator, fleet: ScannerFleet | None = None) -> web.Application:
    app = web.Application()
    app[CALCULATOR_KEY] = calculator
    if fleet is not None:
        app[FLEET_KEY] = fleet
    app.router.add_get("/getUserPoint", get_user_point_handler)
    app.router.add_get("/health", health_handler)
    return app


async def start_api_server(
    app: web.Application,
    host: str = "0.0.0.0",
    port: int = 8080,
) -> web.AppRunner:
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info(f"Points API listening on http://{host}:{port}")
    return runner
