import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from app.core.config import settings
from app.core.exceptions import DomainError, StoreError
from app.core.scheduler import start_scheduler, shutdown_scheduler
from app.api.arcade import router as arcade_router
from app.api.chat import router as chat_router
from app.api.admin import router as admin_router

logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting up FastAPI...")
    await start_scheduler()
    yield
    await shutdown_scheduler()
    logger.info("Shutting down FastAPI...")


app = FastAPI(
    title="Matchmaking API",
    docs_url="/docs" if not settings.APP_DOMAIN else None,
    redoc_url=None,
    lifespan=lifespan,
)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception(f"Storage error on {request.method} {request.url.path}")
    error = StoreError("Storage is temporarily unavailable")
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


# Include routers
app.include_router(arcade_router)
app.include_router(chat_router)
app.include_router(admin_router)


@app.get("/health")
async def health_check():
    return {"status": "ok"}


@app.get("/")
async def root():
    return {"message": "Matchmaking API", "version": "1.0"}
