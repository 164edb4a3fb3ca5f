import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from opentelemetry import trace

from catalog_service.api.api import api_router
from catalog_service.config.database import close_mongo_client, get_mongo_client
from catalog_service.config.logging import setup_logging
from catalog_service.config.media import configure_cloudinary
from catalog_service.config.otel import instrument_fastapi_app, setup_telemetry
from catalog_service.core.config import settings
from catalog_service.core.exceptions import ProductError
from catalog_service.services.background import task_supervisor

# --- 1. 로깅 및 OpenTelemetry 초기화 (가장 먼저) ---
setup_logging()
setup_telemetry()

logger = logging.getLogger(__name__)
tracer = trace.get_tracer("catalog_service.main")


@asynccontextmanager
async def lifespan(app_instance: FastAPI):
    """애플리케이션 생명주기: Cloudinary 설정 -> (실행) -> 백그라운드 삭제 대기, Mongo 종료"""
    with tracer.start_as_current_span("app.lifespan.startup"):
        configure_cloudinary()
        logger.info("Application startup sequence completed.")

    yield

    with tracer.start_as_current_span("app.lifespan.shutdown"):
        logger.info("Starting application shutdown sequence...")
        try:
            await task_supervisor.drain(timeout=settings.BACKGROUND_DRAIN_TIMEOUT)
        except Exception as e:
            logger.error("Error draining background tasks", extra={"error": str(e)}, exc_info=True)
        close_mongo_client()
        logger.info("Application shutdown sequence completed.")


app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Product catalog admin API",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(api_router, prefix=settings.API_PREFIX)

instrument_fastapi_app(app)


@app.exception_handler(ProductError)
async def product_error_handler(request: Request, exc: ProductError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_content())


@app.get("/health/live")
async def liveness():
    """Liveness probe - 컨테이너가 살아있는지 확인"""
    logger.debug("Liveness probe called")
    return {"status": "alive"}


@app.get("/health/ready")
async def readiness():
    """Readiness probe - MongoDB 연결 확인"""
    try:
        await get_mongo_client().admin.command("ping")
    except Exception as e:
        logger.error("Readiness: MongoDB connection failed", extra={"error": str(e)}, exc_info=True)
        return JSONResponse(
            status_code=503,
            content={"status": "not ready", "details": {"mongodb": "failed"}, "errors": [f"MongoDB: {str(e)}"]},
        )
    return {"status": "ready", "details": {"mongodb": "connected"}}


@app.get("/")
async def read_root():
    return {
        "message": f"Welcome to {settings.PROJECT_NAME}",
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("catalog_service.main:app", host="0.0.0.0", port=8000, log_config=None)
