import os

# Must be set before link_analyzer.core.config is imported
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["LOG_FORMAT"] = "text"

from typing import Any, AsyncGenerator, Dict

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from link_analyzer.core.database import init_db
from link_analyzer.core.models import Analysis, ScrapeMethod, ScrapeResult
from link_analyzer.services.data_service import AnalysisStore

TEST_DATABASE_URL = "sqlite+aiosqlite://"

ARTICLE_TEXT = (
    "Los agentes de IA combinan modelos de lenguaje con herramientas externas. "
    "Este artículo explica cómo orquestarlos con memoria y planificación."
)


@pytest_asyncio.fixture(scope="function")
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite engine shared across connections."""
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_db(test_engine)

    yield test_engine

    await test_engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def store(engine: AsyncEngine) -> AnalysisStore:
    return AnalysisStore(engine)


@pytest.fixture
def analysis_payload() -> Dict[str, Any]:
    """A model answer that passes validation."""
    return {
        "resumen_ejecutivo": "El artículo describe cómo construir agentes de IA con herramientas.",
        "temas_principales": ["AI Agents", "LLMs", "Orquestación", "Memoria"],
        "insights_clave": [
            "Los agentes necesitan memoria persistente",
            "La planificación reduce llamadas al modelo",
            "Las herramientas deben tener contratos claros",
        ],
        "relevancia": 4,
        "categoria": "AI Agents",
        "tipo_contenido": "Tutorial",
    }


@pytest.fixture
def analysis(analysis_payload: Dict[str, Any]) -> Analysis:
    return Analysis.model_validate({**analysis_payload, "processing_time_seconds": 3.2})


@pytest.fixture
def scrape_result() -> ScrapeResult:
    return ScrapeResult(
        title="Construyendo agentes de IA",
        content=ARTICLE_TEXT,
        excerpt=ARTICLE_TEXT[:300],
        author="Ana García",
        method=ScrapeMethod.READABILITY,
    )
