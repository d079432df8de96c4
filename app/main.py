from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from app.config import settings
from app.container import Container, build_container
from app.exceptions import register_exception_handlers
from app.logging_config import setup_logging
from app.middleware import TimingMiddleware
from app.routers import articles, auth, comments, metrics, profiles, tags, users


def create_app(container: Container | None = None) -> FastAPI:
    container = container or build_container(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        setup_logging(container.settings)
        await container.startup()  # App works without Redis
        yield
        # Shutdown
        await container.shutdown()

    app = FastAPI(
        title=container.settings.APP_NAME,
        description="Blog platform API: articles, comments, profiles and follows",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.container = container

    register_exception_handlers(app)

    # Middleware
    app.add_middleware(TimingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(auth.router)
    app.include_router(users.router)
    app.include_router(profiles.router)
    app.include_router(articles.router)
    app.include_router(comments.router)
    app.include_router(tags.router)
    app.include_router(metrics.router)

    if container.settings.STORAGE_PROVIDER == "local":
        upload_dir = Path(container.settings.LOCAL_UPLOAD_DIR)
        upload_dir.mkdir(parents=True, exist_ok=True)
        app.mount(
            container.settings.LOCAL_URL_PREFIX,
            StaticFiles(directory=upload_dir),
            name="uploads",
        )

    @app.get("/health")
    async def health():
        return {"status": "healthy", "version": "1.0.0"}

    return app


app = create_app()
