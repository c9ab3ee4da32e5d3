from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import List, Optional, Tuple

from fastapi import APIRouter, FastAPI
from fastapi.responses import RedirectResponse
from fastapi.staticfiles import StaticFiles
from starlette.middleware.cors import CORSMiddleware

if __package__ in {None, ""}:
    # Allow ``python backend/server.py`` to work by ensuring the project root is
    # on ``sys.path`` before importing the package modules.
    current_dir = Path(__file__).resolve().parent
    project_root = current_dir.parent
    if str(project_root) not in sys.path:
        sys.path.insert(0, str(project_root))
    from backend.app import config, database, firebase_service  # type: ignore
    from backend.app.routes import schools  # type: ignore
    from backend.app.schemas import DebugStatus  # type: ignore
else:  # pragma: no cover - exercised only during normal package imports
    from .app import config, database, firebase_service
    from .app.routes import schools
    from .app.schemas import DebugStatus


# Configure logging
logging.basicConfig(
    level=config.get_log_level(), format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Decided once at startup; nothing at request time may flip it.
DEBUG_MODE = config.is_debug()


def _prepare_cors_settings(origins: List[str]) -> Tuple[List[str], Optional[str]]:
    """Split configured origins into explicit origins and a wildcard regex."""

    allow_all_origins = "*" in origins or not origins
    normalized_origins = [origin for origin in origins if origin != "*"]
    return normalized_origins, ".*" if allow_all_origins else None


@asynccontextmanager
async def lifespan(_app: FastAPI):
    database.init_db()
    firebase_service.init_blob_store()
    logger.info(
        "School directory started (env=%s, debug=%s)", config.get_app_env(), DEBUG_MODE
    )
    try:
        yield
    finally:
        firebase_service.close_blob_store()
        database.dispose_engine()


app = FastAPI(title="School Directory", debug=DEBUG_MODE, lifespan=lifespan)

cors_origins, cors_origin_regex = _prepare_cors_settings(config.get_cors_origins())

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=cors_origins,
    allow_origin_regex=cors_origin_regex,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.mount("/static", StaticFiles(directory=str(config.STATIC_DIR)), name="static")
if config.get_blob_backend() == config.BLOB_BACKEND_LOCAL:
    app.mount(
        config.get_media_url(),
        StaticFiles(directory=str(config.get_media_root()), check_dir=False),
        name="media",
    )


# Create a router with the /api prefix
api_router = APIRouter(prefix="/api")
api_router.include_router(schools.router)


@api_router.get("/health")
def health_check():
    return {"status": "ok"}


@api_router.get("/debug", response_model=DebugStatus)
def debug_status():
    return DebugStatus(
        message="Debug mode is set at startup through the DEBUG and APP_ENV variables.",
        isDebug=DEBUG_MODE,
    )


@app.get("/", include_in_schema=False)
def index():
    return RedirectResponse(url="/show-school")


# Include the routers in the main app
app.include_router(api_router)
app.include_router(schools.pages_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
