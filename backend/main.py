from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.config import settings
from core.database import db_manager, get_db_health, initialize_db
from core.exceptions import (
    APIException,
    api_exception_handler,
    general_exception_handler,
    http_exception_handler,
    sqlalchemy_exception_handler,
    validation_exception_handler,
)
from core.logging_config import setup_logging
from core.utils.logging import structured_logger
from routes.categories import router as categories_router
from routes.products import router as products_router
from routes.promotions import router as promotions_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.LOG_LEVEL)

    initialize_db(settings.SQLALCHEMY_DATABASE_URI, settings.ENVIRONMENT == "local")
    if settings.ENVIRONMENT == "local":
        await db_manager.create_all()
    structured_logger.info(
        message="AquaticPose API started",
        metadata={"environment": settings.ENVIRONMENT},
    )

    yield

    await db_manager.dispose()
    structured_logger.info(message="AquaticPose API stopped")


app = FastAPI(
    title="AquaticPose API",
    description="Catalog categories and promotions for the AquaticPose store.",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(categories_router)
app.include_router(products_router)
app.include_router(promotions_router)


@app.get("/")
async def read_root():
    return {
        "service": "AquaticPose API",
        "status": "Running",
        "version": "1.0.0",
    }


@app.get("/health")
async def health_check():
    database = await get_db_health()
    return {
        "status": "healthy" if database["status"] == "healthy" else "degraded",
        "service": "AquaticPose API",
        "database": database,
    }


app.add_exception_handler(APIException, api_exception_handler)
app.add_exception_handler(SQLAlchemyError, sqlalchemy_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(Exception, general_exception_handler)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=settings.ENVIRONMENT == "local")
