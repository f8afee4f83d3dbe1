from typing import Optional
from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from ..deps import get_cache, get_store
from ..errors import AnalysisError
from ..schemas import DeleteResponse, ErrorResponse, HistoryResponse
from ..service import delete_history, list_history
from ..storage.backends import ResultStore
from ..storage.cache import TTLCache
from ..utils.logging import get_logger

router = APIRouter()
log = get_logger(__name__)


@router.get("", response_model=HistoryResponse, responses={500: {"model": ErrorResponse}})
def get_history(store: ResultStore = Depends(get_store)):
    try:
        return {"history": list_history(store)}
    except AnalysisError as e:
        log.error(f"Error getting history: {e}")
        return JSONResponse(status_code=500, content={"error": "Failed to get history"})


@router.delete("", response_model=DeleteResponse, responses={400: {"model": ErrorResponse}})
def remove_history_item(
    analysis_id: Optional[str] = Query(None, alias="id"),
    store: ResultStore = Depends(get_store),
    cache: TTLCache = Depends(get_cache),
):
    try:
        delete_history(analysis_id, store, cache)
    except AnalysisError as e:
        return JSONResponse(status_code=e.status_code, content={"error": e.user_message})
    return {"success": True}
