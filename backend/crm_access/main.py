"""CRM Access: FastAPI application."""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from crm_access.catalog import CATALOG_VERSION, MODULE_KEYS
from crm_access.config import settings
from crm_access.database import async_engine, create_tables

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting CRM Access API...")
    logger.info(
        "Permission catalog %s loaded (%d modules)", CATALOG_VERSION, len(MODULE_KEYS)
    )

    if settings.AUTO_CREATE_TABLES:
        await create_tables()
        logger.info("Database tables ensured")

    # Verify DB connection
    try:
        async with async_engine.begin() as conn:
            await conn.exec_driver_sql("SELECT 1")
        logger.info("Database connection verified")
    except Exception as e:
        logger.error(f"Database connection failed: {e}")

    logger.info("CRM Access API started successfully")
    yield

    # Shutdown
    await async_engine.dispose()
    logger.info("CRM Access API shut down")


app = FastAPI(
    title="CRM Access",
    description="CRM backend with role-based module and field permissions",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Import and register routers
from crm_access.routes import admin, auth, customers, permissions, roles, users

app.include_router(auth.router)
app.include_router(permissions.router)
app.include_router(roles.router)
app.include_router(users.router)
app.include_router(customers.router)
app.include_router(admin.router)


@app.get("/api/health")
async def health_check():
    return {"status": "healthy", "service": "CRM Access API", "version": "1.0.0"}
