import logging

from fastapi import Depends, FastAPI

from . import references
from .config import APP_NAME, LOG_LEVEL, OUTBOX_ENABLED, OUTBOX_RELAY_INTERVAL_SECONDS
from .database import SessionLocal, engine
from .dependencies import get_publisher, get_repository
from .models import Base
from .outbox import start_outbox_relay_in_thread
from .repository import EntityRepository
from .routers import customer_router, order_router, product_router
from .schemas import DashboardOut

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Retail Back-Office",
    description="Customers, products and orders with stock kept in step with orders",
    version="1.0.0",
)

app.include_router(order_router.router)
app.include_router(product_router.router)
app.include_router(customer_router.router)


@app.on_event("startup")
def _startup() -> None:
    Base.metadata.create_all(bind=engine)
    if OUTBOX_ENABLED:
        # Re-deliver events the broker refused while we were running.
        start_outbox_relay_in_thread(
            session_factory=SessionLocal,
            publisher=get_publisher(),
            interval_seconds=OUTBOX_RELAY_INTERVAL_SECONDS,
        )
    logger.info("%s started", APP_NAME)


@app.get("/")
def root():
    return {"service": APP_NAME, "status": "running", "version": "1.0.0"}


@app.get("/health")
def health_check():
    return {"status": "healthy", "service": APP_NAME}


@app.get("/dashboard", response_model=DashboardOut)
def dashboard(repo: EntityRepository = Depends(get_repository)):
    return references.dashboard_summary(repo)
