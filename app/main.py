import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from commons import limiter
from configs.config import get_config
from logging_config import setup_logging
from security import RequestIdMiddleware, SecurityHeadersMiddleware
from src.database.connection import DatabaseManager
from src.game.runtime import get_runtime, reset_runtime
from src.routes.card_routes import router as card_router
from src.routes.realtime_routes import router as realtime_router
from src.routes.session_routes import router as session_router

# ── Logging ──────────────────────────────────────────────────────────────────
setup_logging()
logger = logging.getLogger(__name__)

cfg = get_config()


@asynccontextmanager
async def lifespan(app: FastAPI):
    runtime = get_runtime()
    if runtime.cache.maybe_sync(runtime.connectivity.is_online):
        logger.info("Card cache warmed with %d cards", runtime.cache.card_count)
    else:
        logger.warning("Card cache not synced at startup")
    yield
    reset_runtime()
    if DatabaseManager._client is not None:
        DatabaseManager().close()


# ── App Factory ──────────────────────────────────────────────────────────────
app = FastAPI(
    title="Topo Game API",
    lifespan=lifespan,
    docs_url="/docs" if cfg.DOCS_ENABLED else None,
    redoc_url="/redoc" if cfg.DOCS_ENABLED else None,
    openapi_url="/openapi.json" if cfg.DOCS_ENABLED else None,
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# ── Middleware Stack (order matters – outermost first) ───────────────────────

# 1. Request-ID tracking
app.add_middleware(RequestIdMiddleware)

# 2. Security response headers
app.add_middleware(SecurityHeadersMiddleware)

# 3. Trusted hosts
app.add_middleware(TrustedHostMiddleware, allowed_hosts=cfg.ALLOWED_HOSTS)

# 4. CORS – explicit methods & headers instead of wildcards
app.add_middleware(
    CORSMiddleware,
    allow_origins=cfg.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=cfg.CORS_METHODS,
    allow_headers=cfg.CORS_HEADERS,
)

# ── Routers ──────────────────────────────────────────────────────────────────
app.include_router(card_router)
app.include_router(session_router)
app.include_router(realtime_router)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


# ═══════════════════════════════════════════════════════════════════════════
#  ENTRY POINT
# ═══════════════════════════════════════════════════════════════════════════

if __name__ == "__main__":
    import uvicorn
    import argparse

    parser = argparse.ArgumentParser(description="Run the Topo game API")
    parser.add_argument("--host", default="0.0.0.0", help="Host to bind to (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to (default: 8000)")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload on code changes")
    parser.add_argument("--cert-file", default=None, help="Path to SSL certificate file (enables HTTPS)")
    parser.add_argument("--key-file", default=None, help="Path to SSL private key file (required with --cert-file)")

    args = parser.parse_args()

    if bool(args.cert_file) != bool(args.key_file):
        logger.error("Both --cert-file and --key-file must be provided together")
        raise SystemExit(1)

    protocol = "HTTPS" if args.cert_file else "HTTP"
    logger.info("Starting %s server on %s:%s", protocol, args.host, args.port)

    uvicorn.run(
        "main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level="info",
        ssl_certfile=args.cert_file,
        ssl_keyfile=args.key_file,
    )
