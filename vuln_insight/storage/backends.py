"""Durable storage for analysis results and the scan history.

Two interchangeable backends share the ``ResultStore`` contract: one JSON file
per analysis plus ``history.json`` on local disk, or two SQL tables reached
through SQLAlchemy. The backend is picked once from settings by
``build_store``.
"""
import json
import os
import threading
import time
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..errors import StorageError
from ..utils.logging import get_logger
from .db import Base, init_engine_and_session, session_scope
from .models import AnalysisRow, HistoryRow

log = get_logger(__name__)

HISTORY_LIMIT = 50


def now_ms() -> int:
    return int(time.time() * 1000)


def write_atomic(path: Path, text: str) -> None:
    """Write via a sibling temp file and rename, so readers never see a partial file."""
    tmp = path.with_name(f"{path.name}.{uuid.uuid4().hex}.tmp")
    try:
        tmp.write_text(text, encoding="utf-8")
        os.replace(tmp, path)
    finally:
        tmp.unlink(missing_ok=True)


class ResultStore(ABC):
    @abstractmethod
    def save_result(self, analysis_id: str, data: Dict[str, Any]) -> None: ...

    @abstractmethod
    def get_result(self, analysis_id: str) -> Optional[Dict[str, Any]]: ...

    @abstractmethod
    def delete_result(self, analysis_id: str) -> None: ...

    @abstractmethod
    def append_history(self, entry: Dict[str, Any]) -> None: ...

    @abstractmethod
    def list_history(self) -> List[Dict[str, Any]]: ...

    @abstractmethod
    def delete_history(self, analysis_id: str) -> None:
        """Remove the history entry and its analysis; failures are logged, not raised."""


class FileResultStore(ResultStore):
    def __init__(self, storage_dir, history_limit: int = HISTORY_LIMIT):
        self.base = Path(storage_dir).resolve()
        self.base.mkdir(parents=True, exist_ok=True)
        self.history_file = self.base / "history.json"
        self.history_limit = history_limit
        self._history_lock = threading.Lock()

    def _result_path(self, analysis_id: str) -> Path:
        return self.base / f"{analysis_id}.json"

    def save_result(self, analysis_id, data):
        try:
            write_atomic(self._result_path(analysis_id), json.dumps(data))
        except OSError as e:
            log.exception("Error saving analysis to file")
            raise StorageError(str(e))

    def get_result(self, analysis_id):
        path = self._result_path(analysis_id)
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            log.exception("Error loading analysis from file")
            raise StorageError(str(e), "Failed to load analysis")

    def delete_result(self, analysis_id):
        self._result_path(analysis_id).unlink(missing_ok=True)

    def _read_history(self) -> List[Dict[str, Any]]:
        if not self.history_file.exists():
            return []
        return json.loads(self.history_file.read_text(encoding="utf-8"))

    def _write_history(self, history):
        write_atomic(self.history_file, json.dumps(history, indent=2))

    def append_history(self, entry):
        with self._history_lock:
            try:
                history = self._read_history()
                history.insert(0, entry)
                self._write_history(history[: self.history_limit])
            except (OSError, ValueError) as e:
                log.exception("Error adding to history")
                raise StorageError(str(e))
        log.info(f"Added to history: {entry['id']}")

    def list_history(self):
        with self._history_lock:
            try:
                history = self._read_history()
            except (OSError, ValueError) as e:
                log.exception("Error reading history")
                raise StorageError(str(e), "Failed to get history")
        history.sort(key=lambda h: h.get("timestamp", 0), reverse=True)
        return history[: self.history_limit]

    def delete_history(self, analysis_id):
        with self._history_lock:
            try:
                history = [h for h in self._read_history() if h.get("id") != analysis_id]
                self._write_history(history)
            except (OSError, ValueError):
                log.exception(f"Error deleting from history: {analysis_id}")
        try:
            self.delete_result(analysis_id)
        except OSError:
            log.exception(f"Error deleting analysis file: {analysis_id}")


class SqlResultStore(ResultStore):
    def __init__(self, database_url: str, history_limit: int = HISTORY_LIMIT):
        self.engine, self.SessionLocal = init_engine_and_session(database_url)
        self.history_limit = history_limit
        Base.metadata.create_all(bind=self.engine)
        log.info("Database tables initialized successfully")

    def save_result(self, analysis_id, data):
        try:
            with session_scope(self.SessionLocal) as s:
                s.merge(AnalysisRow(id=analysis_id, data=json.dumps(data), created_at=now_ms()))
        except SQLAlchemyError as e:
            log.exception("Error saving analysis")
            raise StorageError(str(e))
        log.info(f"Saved analysis to database: {analysis_id}")

    def get_result(self, analysis_id):
        try:
            with session_scope(self.SessionLocal) as s:
                row = s.get(AnalysisRow, analysis_id)
                raw = row.data if row else None
        except SQLAlchemyError as e:
            log.exception("Error getting analysis")
            raise StorageError(str(e), "Failed to load analysis")
        return json.loads(raw) if raw is not None else None

    def delete_result(self, analysis_id):
        with session_scope(self.SessionLocal) as s:
            s.query(AnalysisRow).filter_by(id=analysis_id).delete()

    def append_history(self, entry):
        summary = entry.get("summary") or {}
        try:
            with session_scope(self.SessionLocal) as s:
                s.add(HistoryRow(
                    id=entry["id"],
                    timestamp=entry["timestamp"],
                    fileName=entry["fileName"],
                    scanName=entry.get("scanName"),
                    critical=summary.get("critical", 0),
                    high=summary.get("high", 0),
                    medium=summary.get("medium", 0),
                    low=summary.get("low", 0),
                    total=summary.get("total", 0),
                ))
        except SQLAlchemyError as e:
            log.exception("Error adding to history")
            raise StorageError(str(e))
        log.info(f"Added to history: {entry['id']}")

    def list_history(self):
        try:
            with session_scope(self.SessionLocal) as s:
                rows = s.query(HistoryRow).order_by(HistoryRow.timestamp.desc()).limit(self.history_limit).all()
                return [r.to_entry() for r in rows]
        except SQLAlchemyError as e:
            log.exception("Error reading history")
            raise StorageError(str(e), "Failed to get history")

    def delete_history(self, analysis_id):
        # history row and analysis row are removed in one transaction
        try:
            with session_scope(self.SessionLocal) as s:
                s.query(HistoryRow).filter_by(id=analysis_id).delete()
                s.query(AnalysisRow).filter_by(id=analysis_id).delete()
            log.info(f"Deleted from history: {analysis_id}")
        except SQLAlchemyError:
            log.exception(f"Error deleting from history: {analysis_id}")


def build_store(settings) -> ResultStore:
    if settings.database_url:
        log.info("Using SQL result store")
        return SqlResultStore(settings.database_url, history_limit=settings.history_limit)
    log.info(f"Using file result store at {settings.storage_dir}")
    return FileResultStore(settings.storage_dir, history_limit=settings.history_limit)
