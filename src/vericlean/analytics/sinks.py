"""
Analytics Sinks
===============

Destinations for flattened cleaning logs.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import Boolean, DateTime, Float, Integer, String
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Mapped, mapped_column

from vericlean.analytics.mirror import AnalyticsRow, IAnalyticsSink
from vericlean.core import RepositoryException
from vericlean.infrastructure.database import Base, get_session_maker


class AnalyticsLogModel(Base):
    """Append-only analytics row; one per ingested cleaning log."""
    __tablename__ = "analytics_cleaning_logs"

    row_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    log_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    building_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, index=True)
    checkpoint_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    cleaner_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    timestamp: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    quality_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    ai_model: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    has_hazards: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    nfc_hash: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    lat: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    lng: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    status: Mapped[str] = mapped_column(String(32), nullable=False, default="unknown")
    ingested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class SQLAlchemyAnalyticsSink(IAnalyticsSink):
    """Inserts analytics rows in one transaction per call."""

    def __init__(self, session_maker: Optional[async_sessionmaker[AsyncSession]] = None):
        self._session_maker = session_maker

    async def insert(self, rows: List[AnalyticsRow]) -> None:
        if not rows:
            return

        session_maker = self._session_maker or get_session_maker()
        try:
            async with session_maker() as session:
                async with session.begin():
                    session.add_all([AnalyticsLogModel(**row.model_dump()) for row in rows])
        except SQLAlchemyError as e:
            raise RepositoryException(
                "Analytics insert failed",
                {"rows": len(rows), "error": str(e)}
            ) from e


class InMemoryAnalyticsSink(IAnalyticsSink):
    """Keeps rows in a list; used with the in-memory store backend."""

    def __init__(self):
        self.rows: List[AnalyticsRow] = []

    async def insert(self, rows: List[AnalyticsRow]) -> None:
        self.rows.extend(rows)
