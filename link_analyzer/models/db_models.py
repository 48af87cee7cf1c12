from datetime import datetime

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import ARRAY

from link_analyzer.core.database import Base

# Native text[] on PostgreSQL, JSON elsewhere
TextList = JSON().with_variant(ARRAY(Text), "postgresql")


class LinkAnalysis(Base):
    """One analyzed (or failed) URL."""

    __tablename__ = "link_analysis"

    id = Column(Integer, primary_key=True, index=True)
    url = Column(Text, nullable=False, unique=True)
    platform = Column(String(50), nullable=True, index=True)
    author = Column(String(500), nullable=True)
    title = Column(Text, nullable=True)

    # Analysis
    resumen_ejecutivo = Column(Text, nullable=True)
    temas_principales = Column(TextList, nullable=True)
    insights_clave = Column(TextList, nullable=True)
    relevancia = Column(Integer, nullable=True)
    categoria = Column(String(100), nullable=True, index=True)
    tipo_contenido = Column(String(100), nullable=True)

    contenido_completo = Column(Text, nullable=True)
    whatsapp_sender = Column(String(100), nullable=True)
    processing_time_seconds = Column(Float, nullable=True)

    # Timestamps
    processed_at = Column(DateTime, nullable=True)
    error_log = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_relevancia_created", "relevancia", "created_at"),
        Index("idx_processed_at", "processed_at"),
    )
