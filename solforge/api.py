"""
HTTP surface for the agent executor (aiohttp.web).

Routes:
    GET  /health              service liveness and wallet availability
    GET  /api/agent-wallet    agent wallet status, never any key material
    GET  /api/examples        example prompts and supported actions
    POST /api/execute/natural run a natural-language prompt with the agent wallet
    POST /api/build/natural   unsigned transaction for a caller-supplied payer
"""

import logging
import time
from typing import Any, Dict, Optional

from aiohttp import web

from . import __version__
from .config import Settings, get_settings
from .executor import AgentExecutor, BuildRequest, ExecutionRequest
from .rate_limiter import SlidingWindowRateLimiter
from .rpc import LedgerClient, SolanaRPCClient
from .wallet import AgentWallet

logger = logging.getLogger(__name__)

FUND_WALLET_NOTE = "Fund this wallet to enable agent execution"
CONFIGURE_WALLET_NOTE = "Set AGENT_WALLET_SECRET_KEY environment variable to enable agent execution"
RATE_LIMITED_PATH_PREFIXES = ("/api/execute", "/api/build")

SETTINGS_KEY = web.AppKey("settings", Settings)
WALLET_KEY = web.AppKey("wallet", AgentWallet)
LEDGER_KEY = web.AppKey("ledger", LedgerClient)
EXECUTOR_KEY = web.AppKey("executor", AgentExecutor)
RATE_LIMITER_KEY = web.AppKey("rate_limiter", SlidingWindowRateLimiter)

routes = web.RouteTableDef()


# =============================================================================
# MIDDLEWARES
# =============================================================================

@web.middleware
async def request_logging_middleware(request: web.Request, handler) -> web.StreamResponse:
    start = time.monotonic()
    response = await handler(request)
    logger.info(
        "%s %s -> %d (%.1fms)",
        request.method, request.path, response.status, (time.monotonic() - start) * 1000,
    )
    return response


@web.middleware
async def error_middleware(request: web.Request, handler) -> web.StreamResponse:
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except Exception:
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return web.json_response(
            {"success": False, "error": "Internal server error"},
            status=500,
        )


@web.middleware
async def rate_limit_middleware(request: web.Request, handler) -> web.StreamResponse:
    if not request.path.startswith(RATE_LIMITED_PATH_PREFIXES):
        return await handler(request)

    limiter = request.app[RATE_LIMITER_KEY]
    result = await limiter.acquire(request.remote or "unknown")
    if not result.allowed:
        return web.json_response(
            {"success": False, "error": "Too many requests, please try again later."},
            status=429,
            headers=result.headers,
        )

    response = await handler(request)
    response.headers.update(result.headers)
    return response


# =============================================================================
# HANDLERS
# =============================================================================

@routes.get("/health")
async def health(request: web.Request) -> web.Response:
    settings = request.app[SETTINGS_KEY]
    return web.json_response({
        "status": "ok",
        "service": settings.server.service_name,
        "version": __version__,
        "network": settings.solana.default_network,
        "agentWallet": request.app[WALLET_KEY].is_enabled(),
    })


@routes.get("/api/agent-wallet")
async def agent_wallet_status(request: web.Request) -> web.Response:
    settings = request.app[SETTINGS_KEY]
    status = request.app[WALLET_KEY].status()

    body: Dict[str, Any] = status.to_dict()
    body["network"] = settings.solana.default_network
    body["note"] = FUND_WALLET_NOTE if status.enabled else CONFIGURE_WALLET_NOTE
    return web.json_response(body)


@routes.get("/api/examples")
async def examples(request: web.Request) -> web.Response:
    parser = request.app[EXECUTOR_KEY].parser
    return web.json_response({
        "examples": list(parser.examples()),
        "supportedActions": list(parser.supported_actions()),
    })


async def _read_json(request: web.Request) -> Any:
    try:
        return await request.json()
    except (ValueError, UnicodeDecodeError):
        logger.info("Request body is not valid JSON")
        return {}


@routes.post("/api/execute/natural")
async def execute_natural(request: web.Request) -> web.Response:
    payload = await _read_json(request)
    result = await request.app[EXECUTOR_KEY].execute(ExecutionRequest.from_payload(payload))
    return web.json_response(result.to_response(), status=result.status_code)


@routes.post("/api/build/natural")
async def build_natural(request: web.Request) -> web.Response:
    payload = await _read_json(request)
    result = await request.app[EXECUTOR_KEY].build_unsigned(BuildRequest.from_payload(payload))
    return web.json_response(result.to_response(), status=result.status_code)


# =============================================================================
# APPLICATION FACTORY
# =============================================================================

async def _close_ledger(app: web.Application) -> None:
    await app[LEDGER_KEY].close()


def create_app(
    settings: Optional[Settings] = None,
    wallet: Optional[AgentWallet] = None,
    ledger: Optional[LedgerClient] = None,
    executor: Optional[AgentExecutor] = None,
) -> web.Application:
    """
    Build the aiohttp application.

    Collaborators default to the production ones: a settings-backed agent
    wallet and a pooled Solana RPC client.
    """
    settings = settings or get_settings()
    wallet = wallet or AgentWallet()
    ledger = ledger or SolanaRPCClient(settings.solana)
    executor = executor or AgentExecutor(wallet, ledger, settings=settings)

    app = web.Application(middlewares=[
        request_logging_middleware,
        error_middleware,
        rate_limit_middleware,
    ])
    app[SETTINGS_KEY] = settings
    app[WALLET_KEY] = wallet
    app[LEDGER_KEY] = ledger
    app[EXECUTOR_KEY] = executor
    app[RATE_LIMITER_KEY] = SlidingWindowRateLimiter(
        limit=settings.server.rate_limit_max_requests,
        window_seconds=settings.server.rate_limit_window_seconds,
    )
    app.add_routes(routes)
    app.on_cleanup.append(_close_ledger)
    return app


__all__ = [
    "FUND_WALLET_NOTE",
    "CONFIGURE_WALLET_NOTE",
    "create_app",
]
