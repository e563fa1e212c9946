import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from utils.config import LOG_LEVEL, RECONCILE_INTERVAL_SECONDS

# Import routes
from routes import order_management, table_management, cart, menu_management, reservations, notifications

# Import database
from utils.database import engine, Base
import models  # noqa: F401  registers every table on Base.metadata

logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create database tables
    Base.metadata.create_all(bind=engine)

    reconciler = None
    if RECONCILE_INTERVAL_SECONDS > 0:
        reconciler = asyncio.create_task(notifications.reconcile_periodically(RECONCILE_INTERVAL_SECONDS))
        logger.info(f"Reconciliation poll every {RECONCILE_INTERVAL_SECONDS}s")
    yield
    if reconciler:
        reconciler.cancel()


# Create FastAPI app
app = FastAPI(
    title="Restaurant Order Lifecycle API",
    description="Tables, orders and reservations kept consistent across waiter, kitchen and admin terminals",
    version="1.0.0",
    lifespan=lifespan,
    openapi_tags=[
        {"name": "orders", "description": "Order lifecycle and status transitions"},
        {"name": "tables", "description": "Floor plan and table occupancy"},
        {"name": "cart", "description": "Per-table editing sessions"},
        {"name": "menu", "description": "Read-only catalog lookup"},
        {"name": "reservations", "description": "Bookings and table assignment"},
        {"name": "notifications", "description": "Change notifications"},
    ],
    swagger_ui_parameters={
        "persistAuthorization": True,
        "defaultModelsExpandDepth": -1
    }
)


# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, replace with specific origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Include routers
app.include_router(order_management.router)
app.include_router(table_management.router)
app.include_router(cart.router)
app.include_router(menu_management.router)
app.include_router(reservations.router)
app.include_router(notifications.router)

# Root endpoint
@app.get("/")
async def root():
    return {"message": "Welcome to the Restaurant Order Lifecycle API"}

# Main run block
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=True)
