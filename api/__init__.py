"""REST API module for the Luxela marketplace.

This module provides HTTP endpoints for:
- User profiles and account administration
- Creating, reviewing and browsing listings
- Placing orders and moving them through fulfillment
- Returns, refunds, support tickets and disputes
- Notifications, with real-time delivery via WebSocket
- Analytics dashboards, exports and reports
- System health monitoring
"""

import logging
import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import settings_conf
from notifications import set_broadcaster
from workers import release_escrow_task, escalate_disputes_task
from .errors import register_error_handlers

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Lifecycle management
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the background workers and stop them on shutdown."""
    logger.info("Initializing API...")
    # The database pool is opened by __main__.py or lazily on first use
    tasks = [
        asyncio.create_task(release_escrow_task(), name="escrow"),
        asyncio.create_task(escalate_disputes_task(), name="escalation")
    ]
    logger.info("Started escrow release and dispute escalation workers")

    yield

    logger.info("Shutting down API...")
    for task in tasks:
        task.cancel()
    for task in tasks:
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error(f"Worker {task.get_name()} failed: {e}")

# Create FastAPI app
app = FastAPI(
    title="Luxela Marketplace API",
    description="RPC-style API for the Luxela fashion marketplace",
    version="1.0.0",
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings_conf['cors_origins'],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

@app.get("/")
async def root():
    return {"name": app.title, "version": app.version, "docs": "/docs"}

# Import and include all routers
from .users import router as users_router
from .listings import router as listings_router
from .orders import router as orders_router
from .refunds import router as refunds_router
from .support import router as support_router
from .notifications import router as notifications_router
from .analytics import router as analytics_router
from .contact import router as contact_router
from .websockets import router as websocket_router, broadcast_update
from .system import router as system_router

# Include all routers
app.include_router(users_router)
app.include_router(listings_router)
app.include_router(orders_router)
app.include_router(refunds_router)
app.include_router(support_router)
app.include_router(notifications_router)
app.include_router(analytics_router)
app.include_router(contact_router)
app.include_router(websocket_router)
app.include_router(system_router)

# Push new notifications to connected clients
set_broadcaster(broadcast_update)
