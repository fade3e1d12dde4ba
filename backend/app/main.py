"""SSO Resource Proxy application.

This is the main entry point for the proxy service.  It signs a user in to
AWS IAM Identity Center with the OIDC device authorization flow, exchanges
the token for role credentials, and lists EC2 / CloudFormation resources
with those credentials.  All state is in memory and lost on restart.

Modules:
    - sessions: in-memory session store and retention sweep
    - sso: device authorization flow and role-credential exchange
    - resources: EC2 instance/region and CloudFormation stack listings
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import get_config
from app.resources.router import router as resources_router
from app.sessions import SessionStore, SessionSweeper, set_session_store
from app.sso.router import router as sso_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# Silence verbose third-party loggers.
# botocore.auth logs the full SigV4 canonical request (including
# x-amz-security-token), which leaks credentials into the console.
for _noisy in (
    "botocore",
    "boto3",
    "urllib3",
    "urllib3.connectionpool",
    "httpx",
    "httpcore",
):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    # Startup
    config = get_config()

    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    store = SessionStore()
    set_session_store(store)
    sweeper = SessionSweeper(
        store,
        retention_seconds=config.sessions.retention_seconds,
        interval_seconds=config.sessions.sweep_interval_seconds,
    )
    await sweeper.start()
    logger.info(
        "Server running on http://%s:%s", config.server.host, config.server.port
    )

    yield  # Application runs here

    # Shutdown
    await sweeper.stop()
    logger.info("Application shutdown complete (%d sessions dropped)", len(store))


app = FastAPI(
    title="SSO Resource Proxy",
    description="Device-flow SSO sign-in and read-only EC2/CloudFormation listings",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_config().server.allowed_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(sso_router)
app.include_router(resources_router)


@app.get("/health")
async def health() -> dict:
    """Health check endpoint.

    Returns:
        dict: Status object with the current UTC time.
    """
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    config = get_config()
    uvicorn.run(app, host=config.server.host, port=config.server.port)
