import os
from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .api.analyze import router as analyze_router
from .api.history import router as history_router
from .config import get_settings
from .deps import get_store
from .utils.logging import get_logger

log = get_logger(__name__)
settings = get_settings()

app = FastAPI(title="Vulnerability Insight", version=__version__)

if settings.allowed_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.on_event("startup")
def on_startup():
    # choose the storage backend once, before the first request
    get_store()
    if not settings.openai_api_key and not settings.use_mock_openai:
        log.warning("OPENAI_API_KEY not set - analysis requests will fail")


@app.get("/health")
def health():
    return {"ok": True, "version": settings.app_version}


app.include_router(analyze_router, prefix="/api/analyze", tags=["analyze"])
app.include_router(history_router, prefix="/api/history", tags=["history"])


def serve():
    import uvicorn
    uvicorn.run(app, host=os.getenv("HOST", "127.0.0.1"), port=int(os.getenv("PORT", "8000")))
