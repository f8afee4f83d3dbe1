from sqlalchemy import Column, Integer, String, Text, Index
from .db import Base


class AnalysisRow(Base):
    __tablename__ = "analysis"
    id = Column(String, primary_key=True)
    data = Column(Text, nullable=False)
    created_at = Column(Integer, nullable=False)


class HistoryRow(Base):
    __tablename__ = "history"
    id = Column(String, primary_key=True)
    timestamp = Column(Integer, nullable=False)
    fileName = Column(String, nullable=False)
    scanName = Column(String, nullable=True)
    critical = Column(Integer, default=0)
    high = Column(Integer, default=0)
    medium = Column(Integer, default=0)
    low = Column(Integer, default=0)
    total = Column(Integer, default=0)

    def to_entry(self) -> dict:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "fileName": self.fileName,
            "scanName": self.scanName,
            "summary": {
                "critical": self.critical,
                "high": self.high,
                "medium": self.medium,
                "low": self.low,
                "total": self.total,
            },
        }


Index("idx_history_timestamp", HistoryRow.timestamp.desc())
