import asyncio
import json
import re
import secrets
from typing import Any, Dict, List, Optional

from starlette.concurrency import run_in_threadpool

from .ai_client import SUMMARY_KEYS, AIClient, as_count
from .config import Settings
from .csv_parser import EMPTY_CSV_MESSAGE, parse_csv
from .errors import AnalysisTimeoutError, InvalidInputError, MalformedOutputError, NotFoundError
from .storage.backends import ResultStore, now_ms
from .storage.cache import TTLCache
from .utils.logging import get_logger

log = get_logger(__name__)

ANALYSIS_ID_RE = re.compile(r"[0-9a-fA-F]{32}")


def new_analysis_id() -> str:
    return secrets.token_hex(16)


def check_analysis_id(analysis_id: Optional[str], missing_message: str) -> str:
    if not analysis_id:
        raise InvalidInputError(missing_message)
    if not ANALYSIS_ID_RE.fullmatch(analysis_id):
        raise InvalidInputError("Invalid analysis ID")
    return analysis_id.lower()


def validate_upload(file_name: Optional[str]) -> str:
    if not file_name:
        raise InvalidInputError("No file provided")
    if not file_name.lower().endswith(".csv"):
        raise InvalidInputError("Only CSV files are allowed")
    return file_name


def summary_of(analysis: Dict[str, Any]) -> Dict[str, int]:
    summary = analysis.get("summary") or {}
    out = {}
    for k in SUMMARY_KEYS:
        try:
            out[k] = as_count(summary.get(k) or 0)
        except (TypeError, ValueError, OverflowError):
            log.warning(f"Unusable summary counter {k}={summary.get(k)!r}, recording 0")
            out[k] = 0
    return out


def ensure_json_compliant(analysis: Dict[str, Any]) -> None:
    try:
        json.dumps(analysis, allow_nan=False)
    except (TypeError, ValueError) as e:
        raise MalformedOutputError(f"AI result is not JSON serializable: {e}")


async def analyze_upload(
    file_name: str,
    content: bytes,
    scan_name: Optional[str],
    store: ResultStore,
    cache: TTLCache,
    ai: AIClient,
    settings: Settings,
) -> str:
    validate_upload(file_name)
    rows = await run_in_threadpool(parse_csv, content)
    if not rows:
        raise InvalidInputError(EMPTY_CSV_MESSAGE)
    log.info(f"Parsed {len(rows)} rows from CSV")

    sample = rows[: settings.sample_rows]
    try:
        analysis = await asyncio.wait_for(ai.analyze(sample, len(rows)), timeout=settings.ai_timeout_seconds)
    except asyncio.TimeoutError:
        raise AnalysisTimeoutError(f"Analysis timeout after {settings.ai_timeout_seconds:g} seconds")
    ensure_json_compliant(analysis)

    analysis_id = new_analysis_id()
    await run_in_threadpool(store.save_result, analysis_id, analysis)
    cache.sweep()
    cache.put(analysis_id, analysis)
    entry = {
        "id": analysis_id,
        "timestamp": now_ms(),
        "fileName": file_name,
        "scanName": (scan_name or "").strip() or None,
        "summary": summary_of(analysis),
    }
    await run_in_threadpool(store.append_history, entry)
    log.info(f"Created analysis with ID: {analysis_id} ({len(analysis.get('prioritizedIssues') or [])} issues)")
    return analysis_id


def get_analysis(analysis_id: Optional[str], store: ResultStore, cache: TTLCache) -> Dict[str, Any]:
    analysis_id = check_analysis_id(analysis_id, "No analysis ID provided")
    analysis = cache.get(analysis_id)
    if analysis is None:
        log.info(f"Not in memory cache, trying durable store: {analysis_id}")
        analysis = store.get_result(analysis_id)
        if analysis is None:
            raise NotFoundError(f"Analysis not found: {analysis_id}")
        cache.put(analysis_id, analysis)
        log.info(f"Restored analysis to memory cache: {analysis_id}")
    return analysis


def list_history(store: ResultStore) -> List[Dict[str, Any]]:
    return store.list_history()


def delete_history(analysis_id: Optional[str], store: ResultStore, cache: TTLCache) -> None:
    analysis_id = check_analysis_id(analysis_id, "Analysis ID is required")
    cache.delete(analysis_id)
    store.delete_history(analysis_id)
