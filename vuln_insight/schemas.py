from pydantic import BaseModel
from typing import List, Optional


class Summary(BaseModel):
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    total: int = 0


class HistoryEntry(BaseModel):
    id: str
    timestamp: int
    fileName: str
    scanName: Optional[str] = None
    summary: Summary


class HistoryResponse(BaseModel):
    history: List[HistoryEntry]


class AnalyzeResponse(BaseModel):
    analysisId: str


class DeleteResponse(BaseModel):
    success: bool = True


class ErrorResponse(BaseModel):
    error: str
    details: Optional[str] = None
