"""
Wish Wall API — entry point.

Startup sequence:
  1. Configure OTel tracing (→ Jaeger via OTLP), unless disabled
  2. Create tables if not present
  3. Start the Kafka producer and mirror the change feed to it (optional)
  4. Expose Prometheus /metrics endpoint

Run with:
  uvicorn wishwall.main:app --host 0.0.0.0 --port 8000
"""
import logging

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import make_asgi_app

from wishwall.config import settings
from wishwall.database import init_db
from wishwall.realtime import change_feed
from wishwall.telemetry import setup_tracing, instrument_app
from wishwall.routers import admin, auth, profile, realtime, wishes

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)

# Set up tracing before the app is created so all imports are instrumented
if settings.otel_enabled:
    setup_tracing()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage startup and shutdown of all external connections."""
    logger.info("Starting Wish Wall API (env=%s)", settings.environment)

    await init_db()
    if settings.kafka_enabled:
        from wishwall.clients.kafka_producer import init_kafka, publish_change

        await init_kafka()
        change_feed.mirror = publish_change

    logger.info("All services connected. API ready.")
    yield

    logger.info("Shutting down...")
    change_feed.close()
    if settings.kafka_enabled:
        from wishwall.clients.kafka_producer import stop_kafka

        change_feed.mirror = None
        await stop_kafka()


app = FastAPI(
    title="Wish Wall API",
    description="Share new-year wishes, like public ones, follow the wall live.",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.cors_origins.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ────────────────────────────────────────────────────────────────
app.include_router(auth.router, prefix="/auth", tags=["Auth"])
app.include_router(profile.router, prefix="/profile", tags=["Profile"])
app.include_router(wishes.router, prefix="/wishes", tags=["Wishes"])
app.include_router(admin.router, prefix="/admin", tags=["Admin"])
app.include_router(realtime.router, prefix="/realtime", tags=["Realtime"])

# ── Prometheus metrics endpoint ────────────────────────────────────────────
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# ── OTel FastAPI instrumentation ──────────────────────────────────────────
if settings.otel_enabled:
    instrument_app(app)


@app.get("/health", tags=["Health"])
async def health():
    return {"status": "ok", "service": settings.service_name}
