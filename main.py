from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException, Request, Depends
from fastapi.responses import JSONResponse
from starlette.status import HTTP_403_FORBIDDEN
from typing import Optional
import logging
import sys
import uvicorn
from central_logger.errors import ConfigurationError
from central_logger.logging_handler import CustomMongoLogHandler
from central_logger.middleware import CentralLoggerMiddleware
from central_logger.mongo_logger import MongoLogger
from central_logger_config import Settings, load_settings


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.min_severity.to_level(),
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        stream=sys.stdout
    )


def build_mongo_logger(settings: Settings) -> MongoLogger:
    logger = logging.getLogger("main_app_startup")
    try:
        mongo_logger = MongoLogger.connect(settings)
        logger.info(f"MongoDB logging configured for collection '{settings.collection_name}'")
    except ConfigurationError as e:
        logger.error(f"Failed to initialize MongoDB logging: {e}")
        logger.warning(f"Falling back to file logging at {settings.log_file_path}")
        mongo_logger = MongoLogger(settings)
    return mongo_logger


def create_app(settings: Optional[Settings] = None, mongo_logger: Optional[MongoLogger] = None) -> FastAPI:
    settings = settings or load_settings()
    mongo_logger = mongo_logger or build_mongo_logger(settings)
    logger = logging.getLogger("main_app")

    root_logger = logging.getLogger()
    mongo_handler = CustomMongoLogHandler(mongo_logger)
    mongo_handler.setLevel(settings.min_severity.to_level())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        root_logger.addHandler(mongo_handler)
        logger.info("Central Logger Demo starting up...")
        yield
        logger.info("Central Logger Demo shutting down...")
        root_logger.removeHandler(mongo_handler)
        mongo_logger.close()

    app = FastAPI(
        title="Central Logger Demo",
        description="Demo application writing one MongoDB log document per request",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.mongo_logger = mongo_logger
    app.add_middleware(CentralLoggerMiddleware, mongo_logger=mongo_logger)

    async def get_api_key(request: Request):
        api_key = request.headers.get("X-API-Key")
        if not api_key or settings.API_KEY is None or api_key != settings.API_KEY.get_secret_value():
            raise HTTPException(
                status_code=HTTP_403_FORBIDDEN,
                detail="Invalid or missing API key"
            )
        return api_key

    @app.get("/health", tags=["Health"])
    async def health_check():
        return {
            "status": "healthy",
            "service": "Central Logger Demo",
            "store": "mongodb" if mongo_logger.store is not None else "file",
            "failed_writes": mongo_logger.failure_count,
        }

    @app.get("/ping", tags=["Health"])
    async def ping():
        return {"message": "pong"}

    @app.get("/echo", tags=["Demo"])
    async def echo(message: str, user_id: Optional[str] = None):
        mongo_logger.info(f"Echoing '{message}'")
        if user_id:
            mongo_logger.add_metadata(user_id=user_id)
        return {"message": message}

    @app.post("/api/admin/reset-log-collection", tags=["Administration"], dependencies=[Depends(get_api_key)])
    async def reset_log_collection():
        if mongo_logger.store is None:
            raise HTTPException(status_code=409, detail="MongoDB logging is disabled")
        try:
            mongo_logger.reset_collection()
            logger.info("Log collection reset via API")
            return {"success": True, "message": f"Collection '{settings.collection_name}' recreated"}
        except Exception as e:
            logger.error(f"Failed to reset log collection: {str(e)}", exc_info=True)
            raise HTTPException(status_code=500, detail=f"Failed to reset log collection: {str(e)}")

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        logger.warning(
            f"HTTPException: {exc.detail} (Status: {exc.status_code}) "
            f"for {request.method} {request.url}"
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": exc.detail,
                "success": False,
                "status_code": exc.status_code,
                "path": str(request.url.path)
            }
        )

    return app


if __name__ == "__main__":
    try:
        settings = load_settings()
    except ConfigurationError as e:
        logging.critical(f"Configuration validation failed: {e}")
        sys.exit(1)
    configure_logging(settings)
    uvicorn.run(create_app(settings), host=settings.HOST, port=settings.PORT)
