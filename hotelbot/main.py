import asyncio
import logging
import os
from contextlib import asynccontextmanager, suppress
from pathlib import Path

from fastapi import FastAPI
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from hotelbot.core.config import (
    BOOTSTRAP_ADMIN_TARGET,
    BOOTSTRAP_TENANT_ID,
    DEFAULT_HOTEL_NAME,
    DEFAULT_RECEPTION_EXTENSION,
    EVICTION_INTERVAL_SECONDS,
    RECONNECT_BACKOFF_THRESHOLD,
    RECONNECT_MAX_BACKOFF_SECONDS,
    TRANSPORT,
)
from hotelbot.core.database import Base, engine as default_engine
from hotelbot.core.logging_setup import configure_logging
from hotelbot.core.startup_checks import ensure_migrations_applied, validate_database_environment
from hotelbot.routers.admin import router as admin_router
from hotelbot.routers.simulator import router as simulator_router
from hotelbot.routers.webhook import router as webhook_router
from hotelbot.schemas.tenants import TenantCreate
from hotelbot.services.concierge import ConciergeService
from hotelbot.services.pairing_display import PairingDisplay
from hotelbot.services.stores import SqlCredentialStore, SqlMenuSource, SqlOrderStore, TenantRepository
from hotelbot.services.tenant_backoff import InMemoryTenantBackoffService
from hotelbot.whatsapp.base import Transport
from hotelbot.whatsapp.cloud_provider import CloudTransport
from hotelbot.whatsapp.mock_provider import MockTransport
from hotelbot.whatsapp.session_manager import SessionLifecycleManager
import hotelbot.models  # noqa: F401  (registers models before create_all)

configure_logging()

logger = logging.getLogger(__name__)
STARTUP_PREFIX = "[STARTUP]"
REPO_ROOT = Path(__file__).resolve().parents[1]
ALEMBIC_CONFIG_PATH = Path(os.getenv("ALEMBIC_CONFIG", str(REPO_ROOT / "alembic.ini")))


def build_transport(name: str = TRANSPORT) -> Transport:
    if name == "cloud":
        return CloudTransport()
    if name != "mock":
        logger.warning("%s unknown TRANSPORT=%s, falling back to mock", STARTUP_PREFIX, name)
    # Pairs immediately so the simulator and local runs work without a phone
    return MockTransport(auto_pair=True)


def build_concierge(*, engine: Engine, transport: Transport) -> ConciergeService:
    session_factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    backoff = InMemoryTenantBackoffService(
        threshold=RECONNECT_BACKOFF_THRESHOLD,
        max_backoff_seconds=RECONNECT_MAX_BACKOFF_SECONDS,
    )
    sessions = SessionLifecycleManager(
        transport,
        SqlCredentialStore(session_factory),
        display=PairingDisplay(),
        backoff=backoff,
    )
    return ConciergeService(
        sessions,
        tenants=TenantRepository(session_factory),
        menus=SqlMenuSource(session_factory),
        orders=SqlOrderStore(session_factory),
    )


def _prepare_database(engine: Engine) -> None:
    validate_database_environment()
    if engine.url.get_backend_name() == "sqlite":
        Base.metadata.create_all(bind=engine)
    ensure_migrations_applied(engine=engine, alembic_config_path=ALEMBIC_CONFIG_PATH)


async def _bootstrap_tenant(concierge: ConciergeService) -> None:
    if not BOOTSTRAP_TENANT_ID:
        return
    existing = await asyncio.to_thread(concierge.tenants.get, BOOTSTRAP_TENANT_ID)
    if existing is not None:
        logger.info("%s bootstrap tenant exists tenant_id=%s", STARTUP_PREFIX, BOOTSTRAP_TENANT_ID)
        return
    await concierge.register_tenant(
        TenantCreate(
            id=BOOTSTRAP_TENANT_ID,
            name=DEFAULT_HOTEL_NAME,
            admin_target=BOOTSTRAP_ADMIN_TARGET,
            reception_extension=DEFAULT_RECEPTION_EXTENSION,
        ),
        activate=False,
    )
    logger.info("%s bootstrap tenant created tenant_id=%s", STARTUP_PREFIX, BOOTSTRAP_TENANT_ID)


async def _evict_idle_loop(concierge: ConciergeService, interval_seconds: float) -> None:
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            concierge.evict_idle_conversations()
        except Exception:
            logger.exception("idle conversation eviction failed")


def create_app(*, engine: Engine | None = None, transport: Transport | None = None) -> FastAPI:
    db_engine = engine if engine is not None else default_engine

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            _prepare_database(db_engine)
            concierge = build_concierge(engine=db_engine, transport=transport or build_transport())
            await _bootstrap_tenant(concierge)
            started = await concierge.start()
        except Exception:
            logger.exception("%s ERROR startup failed", STARTUP_PREFIX)
            raise
        logger.info(
            "%s ready tenants=%s transport=%s",
            STARTUP_PREFIX,
            started,
            type(concierge.sessions.transport).__name__,
        )
        app.state.concierge = concierge

        eviction = asyncio.create_task(_evict_idle_loop(concierge, EVICTION_INTERVAL_SECONDS))
        try:
            yield
        finally:
            eviction.cancel()
            with suppress(asyncio.CancelledError):
                await eviction
            await concierge.shutdown()
            app.state.concierge = None
            logger.info("%s shutdown complete", STARTUP_PREFIX)

    app = FastAPI(
        title="Hotel Room Service Assistant",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # Routers
    app.include_router(simulator_router)
    app.include_router(webhook_router)
    app.include_router(admin_router)

    @app.get("/")
    def root():
        return {"status": "ok"}

    @app.get("/health")
    def health():
        return {"status": "healthy"}

    return app


app = create_app()
