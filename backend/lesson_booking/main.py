import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from sqlalchemy import text

from .config import settings
from .database import SessionLocal, init_db
from .dependencies import get_calendar_gateway
from .errors import register_error_handlers
from .middleware.audit import audit_middleware
from .redis_client import redis_client
from .routers import bookings, slots

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    init_db()
    logger.info(f"Booking API started (timezone {settings.timezone})")
    yield


app = FastAPI(title="Lesson Booking API", lifespan=lifespan)

app.middleware("http")(audit_middleware)
register_error_handlers(app)

# Same handlers on /X and /api/X
for prefix in ("", "/api"):
    app.include_router(slots.router, prefix=prefix)
    app.include_router(bookings.router, prefix=prefix)


@app.get("/health")
def health():
    try:
        redis_ok = bool(redis_client.ping())
    except Exception as e:
        logger.warning(f"Redis health check failed: {e}")
        redis_ok = False

    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        db_ok = True
    except Exception as e:
        logger.warning(f"Database health check failed: {e}")
        db_ok = False
    finally:
        db.close()

    return {"redis": redis_ok, "database": db_ok}


@app.get("/checkServerSetup")
def check_server_setup(gateway=Depends(get_calendar_gateway)):
    return {"ok": True, "isConfigured": gateway.is_configured}
