from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, field_validator


class PlatformTag(str, Enum):
    """Source platform of a URL."""

    GENERIC = "generic"
    LINKEDIN = "linkedin"
    TWITTER = "twitter"
    INSTAGRAM = "instagram"
    TIKTOK = "tiktok"
    FACEBOOK = "facebook"
    YOUTUBE = "youtube"
    MEDIUM = "medium"
    SUBSTACK = "substack"
    GITHUB = "github"


class ScrapeMethod(str, Enum):
    """Which extraction path produced a result."""

    READABILITY = "readability"
    FALLBACK = "fallback"
    SOCIAL = "social"


class Categoria(str, Enum):
    """Allowed analysis categories."""

    AI_AGENTS = "AI Agents"
    LLMS = "LLMs"
    MLOPS = "MLOps"
    COMPUTER_VISION = "Computer Vision"
    NLP = "NLP"
    RAG = "RAG"
    AUTOMATION = "Automation"
    REAL_ESTATE_TECH = "Real Estate Tech"
    DESARROLLO_SOFTWARE = "Desarrollo Software"
    DATA_SCIENCE = "Data Science"
    OTRO = "Otro"


class TipoContenido(str, Enum):
    """Allowed content types."""

    TUTORIAL = "Tutorial"
    NOTICIA = "Noticia"
    OPINION = "Opinión"
    INVESTIGACION = "Investigación"
    HERRAMIENTA = "Herramienta"
    CASE_STUDY = "Case Study"
    DEBATE = "Debate"


class ProcessingStatus(str, Enum):
    """Outcome of one pipeline task."""

    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


class LinkTask(BaseModel):
    """One unit of queue work: a URL found in a chat message."""

    model_config = ConfigDict(frozen=True)

    url: str = Field(..., description="Normalized URL")
    platform: PlatformTag = Field(..., description="Detected platform")
    sender_id: str = Field(..., description="Chat sender identifier")
    chat_id: str = Field(..., description="Chat the URL came from")


class InboundMessage(BaseModel):
    """A chat message handed over by the transport."""

    model_config = ConfigDict(frozen=True)

    text: str = Field(..., description="Plain text of the message")
    sender_id: str = Field(..., description="Sender identifier")
    chat_id: str = Field(..., description="Chat identifier")
    is_group: bool = Field(default=False, description="Group chat rather than direct chat")


class ScrapeResult(BaseModel):
    """Content extracted from a URL."""

    title: str = Field(default="", description="Page or post title")
    content: str = Field(..., description="Extracted plain text")
    excerpt: str = Field(default="", description="Short preview of the content")
    author: Optional[str] = Field(None, description="Author, when detectable")
    method: ScrapeMethod = Field(..., description="Extraction path used")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Extractor-specific metadata")

    @property
    def is_valid(self) -> bool:
        return bool(self.content and self.content.strip())


class Analysis(BaseModel):
    """Structured model output. Rejects anything that does not conform exactly."""

    model_config = ConfigDict(extra="ignore")

    resumen_ejecutivo: StrictStr = Field(..., min_length=1, description="Executive summary")
    temas_principales: List[StrictStr] = Field(
        ..., min_length=4, max_length=8, description="Main topic tags"
    )
    insights_clave: List[StrictStr] = Field(..., description="Key insights")
    relevancia: StrictInt = Field(..., ge=1, le=5, description="Relevance score 1-5")
    categoria: Categoria = Field(..., description="Category")
    tipo_contenido: TipoContenido = Field(..., description="Content type")
    processing_time_seconds: float = Field(default=0.0, ge=0, description="Inference wall-clock time")

    @field_validator("resumen_ejecutivo")
    @classmethod
    def validate_summary(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("resumen_ejecutivo must not be blank")
        return v.strip()


class LinkRecord(BaseModel):
    """Everything persisted for a successfully analyzed URL."""

    url: str
    platform: PlatformTag
    author: Optional[str] = None
    title: Optional[str] = None
    resumen_ejecutivo: str
    temas_principales: List[str]
    insights_clave: List[str]
    relevancia: int
    categoria: str
    tipo_contenido: str
    contenido_completo: str
    whatsapp_sender: Optional[str] = None
    processing_time_seconds: float = 0.0

    @classmethod
    def from_results(
        cls,
        url: str,
        platform: PlatformTag,
        sender_id: Optional[str],
        scraped: ScrapeResult,
        analysis: Analysis,
    ) -> "LinkRecord":
        return cls(
            url=url,
            platform=platform,
            author=scraped.author,
            title=scraped.title,
            resumen_ejecutivo=analysis.resumen_ejecutivo,
            temas_principales=list(analysis.temas_principales),
            insights_clave=list(analysis.insights_clave),
            relevancia=analysis.relevancia,
            categoria=analysis.categoria.value,
            tipo_contenido=analysis.tipo_contenido.value,
            contenido_completo=scraped.content,
            whatsapp_sender=sender_id,
            processing_time_seconds=analysis.processing_time_seconds,
        )


class DailyStat(BaseModel):
    """Processing totals for one day."""

    fecha: date
    total_procesados: int
    relevancia_promedio: Optional[float] = None
    tiempo_promedio_seg: Optional[float] = None


class BatchSummary(BaseModel):
    """Counts for a batch run."""

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0

    def record(self, status: ProcessingStatus) -> None:
        if status == ProcessingStatus.SUCCESS:
            self.succeeded += 1
        elif status == ProcessingStatus.SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1
