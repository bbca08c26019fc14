import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from src.config import settings
from src.database import init_db
from src.exceptions import register_exception_handlers
from src.logger_config import setup_logging
from src.auth import router as auth_router
from src.bookings import router as bookings_router
from src.cashier import router as cashier_router
from src.company import router as company_router
from src.employees import router as employees_router
from src.notifications import router as notifications_router
from src.admin import router as admin_router
from src.realtime import WebSocketMessageBus, manager, websocket_endpoint


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    init_db()
    app.state.message_bus.bind_loop(asyncio.get_running_loop())
    logger.info(f"{settings.PROJECT_NAME} started ({settings.ENVIRONMENT})")
    yield
    logger.info(f"{settings.PROJECT_NAME} stopped")


# Create FastAPI app
app = FastAPI(
    title=settings.PROJECT_NAME,
    version="1.0.0",
    description="Multi-company bus booking platform API",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)
app.state.message_bus = WebSocketMessageBus(manager)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Include routers
app.include_router(
    auth_router.router,
    prefix=f"{settings.API_V1_STR}/auth",
    tags=["Authentication"]
)

app.include_router(
    bookings_router,
    prefix=settings.API_V1_STR,
    tags=["Reservations & Tickets"]
)

app.include_router(
    employees_router,
    prefix=settings.API_V1_STR,
    tags=["Employees"]
)

app.include_router(
    company_router,
    prefix=settings.API_V1_STR,
    tags=["Companies & Trips"]
)

app.include_router(
    cashier_router,
    prefix=f"{settings.API_V1_STR}/cashier",
    tags=["Cashier"]
)

app.include_router(
    notifications_router,
    prefix=f"{settings.API_V1_STR}/notifications",
    tags=["Notifications"]
)

app.include_router(
    admin_router,
    prefix=f"{settings.API_V1_STR}/admin",
    tags=["Admin"]
)

app.add_api_websocket_route("/ws", websocket_endpoint)


@app.get("/")
def read_root():
    return {
        "message": settings.PROJECT_NAME,
        "version": "1.0.0",
        "docs": "/docs",
    }


@app.get("/health")
def health_check():
    return {"status": "healthy", "websocket_connections": len(manager.active_connections)}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("src.main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)
