"""Persistence of analyzed links, with URL-level idempotency."""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from link_analyzer.core.database import DatabaseManager, engine as default_engine
from link_analyzer.core.exceptions import PersistenceError
from link_analyzer.core.logging import get_logger
from link_analyzer.core.models import DailyStat, LinkRecord, PlatformTag
from link_analyzer.models.db_models import LinkAnalysis

logger = get_logger(__name__)

STATS_WINDOW_DAYS = 7

UPSERT_DIALECTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


class AnalysisStore:
    """Reads and writes the link_analysis table."""

    def __init__(self, engine: Optional[AsyncEngine] = None):
        self.engine = engine or default_engine
        self.session_maker = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    def _insert(self):
        dialect = self.engine.dialect.name
        try:
            return UPSERT_DIALECTS[dialect](LinkAnalysis)
        except KeyError:
            raise PersistenceError(f"Upsert not supported on {dialect}") from None

    async def exists(self, url: str) -> bool:
        """True only when the URL already has a successful analysis."""
        stmt = (
            select(LinkAnalysis.id)
            .where(LinkAnalysis.url == url, LinkAnalysis.processed_at.is_not(None))
            .limit(1)
        )
        try:
            async with self.session_maker() as session:
                result = await session.execute(stmt)
                return result.scalar_one_or_none() is not None
        except SQLAlchemyError as e:
            raise PersistenceError(f"Error checking URL: {e}") from e

    async def save(self, record: LinkRecord) -> int:
        """Insert or refresh the row for record.url and return its id."""
        now = datetime.utcnow()
        values: Dict[str, Any] = record.model_dump(mode="json")
        values.update(processed_at=now, error_log=None)

        stmt = self._insert().values(**values, created_at=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=[LinkAnalysis.url],
            set_={key: stmt.excluded[key] for key in values if key != "url"},
        ).returning(LinkAnalysis.id)

        try:
            async with self.session_maker() as session:
                result = await session.execute(stmt)
                record_id = result.scalar_one()
                await session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Error saving to database: {e}")
            raise PersistenceError(f"Error saving {record.url}: {e}") from e

        logger.info(f"Saved to DB with ID: {record_id}")
        return record_id

    async def log_error(
        self,
        url: str,
        platform: Optional[PlatformTag],
        message: str,
        sender_id: Optional[str] = None,
    ) -> None:
        """Record a failure for a URL. Successful rows are left untouched."""
        now = datetime.utcnow()
        try:
            stmt = self._insert().values(
                url=url,
                platform=platform.value if platform else None,
                whatsapp_sender=sender_id,
                error_log=message,
                created_at=now,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[LinkAnalysis.url],
                set_={"error_log": stmt.excluded.error_log},
                where=LinkAnalysis.processed_at.is_(None),
            )

            async with self.session_maker() as session:
                await session.execute(stmt)
                await session.commit()
        except (SQLAlchemyError, PersistenceError) as e:
            logger.error(f"Error logging failure for {url}: {e}")

    async def recent_stats(self, days: int = STATS_WINDOW_DAYS) -> List[DailyStat]:
        """Per-day totals for the last `days` days, newest first."""
        since = datetime.utcnow() - timedelta(days=days)
        day = func.date(LinkAnalysis.processed_at)
        stmt = (
            select(
                day.label("fecha"),
                func.count(LinkAnalysis.id).label("total"),
                func.avg(LinkAnalysis.relevancia).label("relevancia"),
                func.avg(LinkAnalysis.processing_time_seconds).label("tiempo"),
            )
            .where(LinkAnalysis.processed_at.is_not(None), LinkAnalysis.processed_at >= since)
            .group_by(day)
            .order_by(day.desc())
        )

        try:
            async with self.session_maker() as session:
                rows = (await session.execute(stmt)).all()
        except SQLAlchemyError as e:
            logger.error(f"Error fetching stats: {e}")
            return []

        return [
            DailyStat(
                fecha=row.fecha,
                total_procesados=row.total,
                relevancia_promedio=round(float(row.relevancia), 2) if row.relevancia is not None else None,
                tiempo_promedio_seg=round(float(row.tiempo), 2) if row.tiempo is not None else None,
            )
            for row in rows
        ]

    async def health_check(self) -> bool:
        return await DatabaseManager(self.engine).health_check()

    async def overall_summary(self) -> Dict[str, Any]:
        """Totals across the whole table for the report header."""
        processed = LinkAnalysis.processed_at.is_not(None)
        stmt = select(
            func.count(LinkAnalysis.id).filter(processed).label("processed"),
            func.count(LinkAnalysis.id).filter(~processed).label("errors"),
            func.avg(LinkAnalysis.relevancia).label("avg_relevance"),
            func.avg(LinkAnalysis.processing_time_seconds).label("avg_time"),
            func.count(LinkAnalysis.id).filter(LinkAnalysis.relevancia >= 4).label("high_relevance"),
        )

        async with self.session_maker() as session:
            row = (await session.execute(stmt)).one()

        return {
            "processed": row.processed or 0,
            "errors": row.errors or 0,
            "avg_relevance": round(float(row.avg_relevance), 2) if row.avg_relevance is not None else None,
            "avg_time": round(float(row.avg_time), 2) if row.avg_time is not None else None,
            "high_relevance": row.high_relevance or 0,
        }

    async def _grouped_counts(self, column, limit: int) -> List[Dict[str, Any]]:
        stmt = (
            select(
                column.label("name"),
                func.count(LinkAnalysis.id).label("total"),
                func.avg(LinkAnalysis.relevancia).label("avg_relevance"),
            )
            .where(LinkAnalysis.processed_at.is_not(None), column.is_not(None))
            .group_by(column)
            .order_by(func.count(LinkAnalysis.id).desc())
            .limit(limit)
        )

        async with self.session_maker() as session:
            rows = (await session.execute(stmt)).all()

        return [
            {
                "name": row.name,
                "count": row.total,
                "avg_relevance": round(float(row.avg_relevance), 2) if row.avg_relevance is not None else None,
            }
            for row in rows
        ]

    async def top_categories(self, limit: int = 10) -> List[Dict[str, Any]]:
        return await self._grouped_counts(LinkAnalysis.categoria, limit)

    async def top_platforms(self, limit: int = 10) -> List[Dict[str, Any]]:
        return await self._grouped_counts(LinkAnalysis.platform, limit)

    async def search_by_relevance(self, min_relevance: int = 4, limit: int = 10) -> List[LinkAnalysis]:
        stmt = (
            select(LinkAnalysis)
            .where(LinkAnalysis.relevancia >= min_relevance)
            .order_by(LinkAnalysis.relevancia.desc(), LinkAnalysis.processed_at.desc())
            .limit(limit)
        )
        async with self.session_maker() as session:
            return list((await session.execute(stmt)).scalars().all())

    async def search_by_category(self, categoria: str, limit: int = 10) -> List[LinkAnalysis]:
        stmt = (
            select(LinkAnalysis)
            .where(LinkAnalysis.categoria == categoria)
            .order_by(LinkAnalysis.relevancia.desc(), LinkAnalysis.processed_at.desc())
            .limit(limit)
        )
        async with self.session_maker() as session:
            return list((await session.execute(stmt)).scalars().all())

    async def full_text_search(self, term: str, limit: int = 10) -> List[LinkAnalysis]:
        """Search analyzed content. Ranked Spanish full-text on PostgreSQL, substring match elsewhere."""
        if self.engine.dialect.name == "postgresql":
            document = func.to_tsvector("spanish", LinkAnalysis.contenido_completo)
            query = func.plainto_tsquery("spanish", term)
            rank = func.ts_rank(document, query)
            stmt = (
                select(LinkAnalysis)
                .where(document.op("@@")(query))
                .order_by(rank.desc(), LinkAnalysis.relevancia.desc())
                .limit(limit)
            )
        else:
            pattern = f"%{term}%"
            stmt = (
                select(LinkAnalysis)
                .where(
                    or_(
                        LinkAnalysis.contenido_completo.ilike(pattern),
                        LinkAnalysis.title.ilike(pattern),
                        LinkAnalysis.resumen_ejecutivo.ilike(pattern),
                    )
                )
                .order_by(LinkAnalysis.relevancia.desc(), LinkAnalysis.processed_at.desc())
                .limit(limit)
            )

        async with self.session_maker() as session:
            return list((await session.execute(stmt)).scalars().all())

    async def recent_records(self, limit: int = 10) -> List[LinkAnalysis]:
        stmt = (
            select(LinkAnalysis)
            .where(LinkAnalysis.processed_at.is_not(None))
            .order_by(LinkAnalysis.processed_at.desc())
            .limit(limit)
        )
        async with self.session_maker() as session:
            return list((await session.execute(stmt)).scalars().all())

    async def get_by_url(self, url: str) -> Optional[LinkAnalysis]:
        async with self.session_maker() as session:
            result = await session.execute(select(LinkAnalysis).where(LinkAnalysis.url == url))
            return result.scalar_one_or_none()
