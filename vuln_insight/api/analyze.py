from typing import Optional
from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import JSONResponse

from ..ai_client import AIClient
from ..config import Settings, get_settings
from ..deps import get_ai_client, get_cache, get_store
from ..errors import AnalysisError
from ..schemas import AnalyzeResponse, ErrorResponse
from ..service import analyze_upload, get_analysis, validate_upload
from ..storage.backends import ResultStore
from ..storage.cache import TTLCache
from ..utils.logging import get_logger

router = APIRouter()
log = get_logger(__name__)


def error_response(e: AnalysisError, details: bool = True) -> JSONResponse:
    content = {"error": e.user_message}
    if details and e.status_code >= 500:
        content["details"] = f"{type(e).__name__}: {e}"
    return JSONResponse(status_code=e.status_code, content=content)


@router.post("", response_model=AnalyzeResponse, responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}})
async def analyze(
    file: Optional[UploadFile] = File(None),
    scanName: Optional[str] = Form(None),
    store: ResultStore = Depends(get_store),
    cache: TTLCache = Depends(get_cache),
    ai: AIClient = Depends(get_ai_client),
    settings: Settings = Depends(get_settings),
):
    try:
        validate_upload(file.filename if file is not None else None)
        content = await file.read()
        analysis_id = await analyze_upload(file.filename, content, scanName, store, cache, ai, settings)
        return {"analysisId": analysis_id}
    except AnalysisError as e:
        if e.status_code >= 500:
            log.error(f"Analysis error: {type(e).__name__}: {e}")
        return error_response(e)
    except Exception as e:
        log.exception("Analysis error")
        return JSONResponse(status_code=500, content={"error": "Failed to analyze CSV file", "details": f"{type(e).__name__}: {e}"})


@router.get("", responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}})
def fetch_analysis(
    analysis_id: Optional[str] = Query(None, alias="id"),
    store: ResultStore = Depends(get_store),
    cache: TTLCache = Depends(get_cache),
):
    log.info(f"GET request for analysis ID: {analysis_id}")
    try:
        return JSONResponse(content=get_analysis(analysis_id, store, cache))
    except AnalysisError as e:
        return error_response(e, details=False)
