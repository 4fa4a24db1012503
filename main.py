from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from dotenv import load_dotenv

from api.routes import metrics, repositories
from utils.logger import get_logger, setup_logging
from core.config import Settings
from core.container import Container
from core.errors import AppError, AuthenticationError

load_dotenv()

logger = get_logger(__name__)

SERVICE_NAME = "team-health-dashboard"


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings()
    setup_logging(settings.log_level, json_output=settings.log_json)
    container = Container(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting {SERVICE_NAME}")
        settings.validate()

        # Initialize database
        container.database.create_tables()

        yield
        logger.info(f"Shutting down {SERVICE_NAME}")
        await container.close()

    app = FastAPI(
        title="Team Health Dashboard",
        description="Aggregate team health metrics from GitHub and Google Sheets",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        logger.error(f"Request failed: {exc.message}",
                     extra={"path": request.url.path, "status": exc.status_code})
        headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationError) else None
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": {"message": exc.message, "status": exc.status_code}},
            headers=headers,
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error: {exc}", exc_info=exc, extra={"path": request.url.path})
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": {"message": "An unexpected error occurred", "status": 500}},
        )

    app.include_router(metrics.router, prefix="/api", tags=["metrics"])
    app.include_router(repositories.router, prefix="/api", tags=["repositories"])

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "service": SERVICE_NAME}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
