import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles

from app.core.config import Settings, settings as default_settings
from app.core.database import Database
from app.core.errors import register_error_handlers
from app.core.logging_setup import configure_logging
from app.routers import health, tasks
from app.services.attachment_store import build_attachment_store

logger = logging.getLogger(__name__)

STATIC_DIR = Path(__file__).parent / "static"


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or default_settings
    configure_logging(settings.LOG_LEVEL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # une seule connexion pour tout le process, injectée via app.state
        database = Database(settings.DATABASE_URL)
        try:
            database.connect()
        except Exception:
            logger.critical("Database connection failed, aborting startup")
            database.close()
            raise
        app.state.database = database
        try:
            app.state.attachments = build_attachment_store(settings, database)
        except ValueError:
            database.close()
            raise
        logger.info("Attachment storage: %s", app.state.attachments.strategy)
        try:
            yield
        finally:
            database.close()

    app = FastAPI(
        title="Task Tracker API",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.settings = settings

    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])
    register_error_handlers(app)

    # Routes
    app.include_router(health.router, prefix="/health")
    app.include_router(tasks.router)

    app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")

    @app.get("/", include_in_schema=False)
    def index():
        return FileResponse(STATIC_DIR / "index.html")

    return app


def run():
    import uvicorn

    uvicorn.run(create_app(), host=default_settings.HOST, port=default_settings.PORT)


app = create_app()
