"""Structured content analysis through a local Ollama model."""

import json
import time
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from link_analyzer.core.config import settings
from link_analyzer.core.exceptions import AnalysisError
from link_analyzer.core.logging import get_logger
from link_analyzer.core.models import Analysis, Categoria, PlatformTag, TipoContenido
from link_analyzer.utils.metrics import analysis_counter, analysis_duration

logger = get_logger(__name__)

CATEGORY_GUIDE: Dict[Categoria, str] = {
    Categoria.AI_AGENTS: "Sistemas agénticos, frameworks como LangChain/CrewAI/AutoGPT, orquestación de agentes",
    Categoria.LLMS: "Modelos de lenguaje, fine-tuning, prompting avanzado, optimización de modelos",
    Categoria.MLOPS: "Despliegue de ML, monitorización, infraestructura, CI/CD para ML",
    Categoria.COMPUTER_VISION: "Visión por computador, detección de objetos, procesamiento de imágenes",
    Categoria.NLP: "Procesamiento de lenguaje natural, embeddings, análisis de texto",
    Categoria.RAG: "Retrieval Augmented Generation, bases de datos vectoriales, búsqueda semántica",
    Categoria.AUTOMATION: "Automatización de procesos, RPA, workflows, integración de sistemas",
    Categoria.REAL_ESTATE_TECH: "PropTech, CRM inmobiliario, marketing inmobiliario, análisis de mercado",
    Categoria.DESARROLLO_SOFTWARE: "Frameworks, herramientas de desarrollo, metodologías, arquitecturas",
    Categoria.DATA_SCIENCE: "Análisis de datos, visualización, estadística, data engineering",
    Categoria.OTRO: "Si no encaja claramente en ninguna de las anteriores",
}

CONTENT_TYPE_GUIDE: Dict[TipoContenido, str] = {
    TipoContenido.TUTORIAL: "Guía paso a paso, instructivo práctico",
    TipoContenido.NOTICIA: "Anuncio reciente, novedad del sector, actualización de producto",
    TipoContenido.OPINION: "Artículo de opinión, análisis crítico, perspectiva personal",
    TipoContenido.INVESTIGACION: "Paper académico, estudio científico, whitepaper técnico",
    TipoContenido.HERRAMIENTA: "Presentación de una herramienta, librería, framework o software",
    TipoContenido.CASE_STUDY: "Caso de uso real, implementación práctica, resultado de proyecto",
    TipoContenido.DEBATE: "Discusión de varias perspectivas, controversia, análisis comparativo",
}

RELEVANCE_GUIDE = {
    5: "Directamente aplicable a los proyectos actuales. Información crítica o muy valiosa.",
    4: "Herramienta o técnica muy útil para el trabajo diario, aplicable a corto plazo.",
    3: "Conocimiento general valioso en IA/tecnología, útil como contexto del sector.",
    2: "Relacionado de forma tangencial con las áreas de interés.",
    1: "Poco o nada relevante para el contexto profesional actual.",
}


def create_analysis_prompt(content: str, url: str, platform: PlatformTag, user_context: str) -> str:
    """Build the fixed-structure analysis prompt."""
    categories = "\n".join(f'- "{c.value}" → {desc}' for c, desc in CATEGORY_GUIDE.items())
    content_types = "\n".join(f'- "{t.value}" → {desc}' for t, desc in CONTENT_TYPE_GUIDE.items())
    relevance = "\n".join(f"   - {score} = {desc}" for score, desc in RELEVANCE_GUIDE.items())

    return f"""Eres un analista experto en contenido de inteligencia artificial, tecnología y Real Estate.

CONTEXTO DEL USUARIO:
{user_context}

TAREA:
Analiza en profundidad el siguiente contenido de {platform.value} y genera un análisis estructurado en español.

URL: {url}

CONTENIDO A ANALIZAR:
{content}

INSTRUCCIONES:

1. RESUMEN EJECUTIVO (5-8 frases): idea principal, contexto, argumentos clave, conclusiones y aplicabilidad práctica.

2. TEMAS PRINCIPALES (4-6 tags): conceptos centrales con terminología precisa, máximo 3 palabras por tag.

3. INSIGHTS CLAVE (5-7 puntos): específicos y accionables, con datos o casos concretos mencionados.

4. RELEVANCIA (entero de 1 a 5):
{relevance}

5. CATEGORÍA y TIPO DE CONTENIDO: elige exactamente uno de cada lista.

CATEGORÍAS VÁLIDAS:
{categories}

TIPOS DE CONTENIDO VÁLIDOS:
{content_types}

RESPONDE ÚNICAMENTE CON UN OBJETO JSON VÁLIDO, sin markdown ni texto adicional:

{{
  "resumen_ejecutivo": "...",
  "temas_principales": ["tag1", "tag2", "tag3", "tag4"],
  "insights_clave": ["insight 1", "insight 2", "insight 3", "insight 4", "insight 5"],
  "relevancia": 4,
  "categoria": "AI Agents",
  "tipo_contenido": "Tutorial"
}}"""


def _find_json_object(raw: str) -> Optional[Dict[str, Any]]:
    """First brace-delimited JSON object embedded in free text."""
    decoder = json.JSONDecoder()
    start = raw.find("{")
    while start != -1:
        try:
            obj, _ = decoder.raw_decode(raw, start)
        except json.JSONDecodeError:
            start = raw.find("{", start + 1)
            continue
        if isinstance(obj, dict):
            return obj
        start = raw.find("{", start + 1)
    return None


def parse_json_response(raw: str) -> Dict[str, Any]:
    """Parse the model output as JSON, falling back to the first embedded object."""
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        data = _find_json_object(raw)
        if data is None:
            logger.error(f"Response is not valid JSON: {raw[:200]}")
            raise AnalysisError("Could not parse JSON from Ollama response")

    if not isinstance(data, dict):
        raise AnalysisError(f"Expected a JSON object, got {type(data).__name__}")
    return data


def validate_analysis(data: Dict[str, Any], processing_time_seconds: float) -> Analysis:
    """Strict schema check; never returns a partially-filled Analysis."""
    try:
        return Analysis.model_validate({**data, "processing_time_seconds": processing_time_seconds})
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(x) for x in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise AnalysisError(f"Invalid analysis: {problems}") from e


class OllamaAnalyzer:
    """Calls Ollama's generate endpoint in JSON mode and validates the answer."""

    def __init__(
        self,
        host: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        max_chars: Optional[int] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.host = (host or settings.ollama_host).rstrip("/")
        self.model = model or settings.ollama_model
        self.timeout = timeout or settings.llm_timeout_seconds
        self.max_chars = max_chars or settings.analysis_max_chars
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=self.timeout)

    def _options(self) -> Dict[str, Any]:
        return {
            "temperature": settings.ollama_temperature,
            "top_p": settings.ollama_top_p,
            "top_k": settings.ollama_top_k,
            "num_ctx": settings.ollama_num_ctx,
            "num_predict": settings.ollama_num_predict,
            "num_gpu": settings.ollama_num_gpu,
            "num_thread": settings.ollama_num_thread,
            "repeat_penalty": settings.ollama_repeat_penalty,
        }

    def truncate(self, content: str) -> str:
        if len(content) > self.max_chars:
            return content[:self.max_chars] + "..."
        return content

    async def _generate(self, prompt: str) -> str:
        """POST to /api/generate and return the raw response text."""
        payload = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "format": "json",
            "options": self._options(),
        }

        try:
            response = await self.client.post(
                f"{self.host}/api/generate",
                json=payload,
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            raise AnalysisError(f"Ollama request failed: {e}") from e

        if not response.is_success:
            raise AnalysisError(f"Ollama HTTP error: {response.status_code} {response.reason_phrase}")

        try:
            body = response.json()
        except ValueError as e:
            raise AnalysisError("Ollama returned a non-JSON body") from e

        raw = body.get("response") if isinstance(body, dict) else None
        if not isinstance(raw, str):
            raise AnalysisError("Ollama response has no 'response' text")
        return raw

    async def analyze(self, content: str, url: str, platform: PlatformTag) -> Optional[Analysis]:
        """Analyze content; None on any failure, with the cause logged."""
        start = time.monotonic()
        prompt = create_analysis_prompt(
            self.truncate(content), url, platform, settings.analysis_user_context
        )

        try:
            logger.info("Calling Ollama", model=self.model)
            raw = await self._generate(prompt)
            elapsed = round(time.monotonic() - start, 2)
            logger.info(f"Inference completed in {elapsed}s")

            analysis = validate_analysis(parse_json_response(raw), elapsed)
        except AnalysisError as e:
            logger.error(f"Ollama analysis failed: {e}")
            analysis_counter.labels(outcome="failed").inc()
            return None

        analysis_counter.labels(outcome="success").inc()
        analysis_duration.observe(analysis.processing_time_seconds)
        return analysis

    async def list_models(self) -> List[Dict[str, Any]]:
        response = await self.client.get(f"{self.host}/api/tags", timeout=10.0)
        response.raise_for_status()
        return response.json().get("models") or []

    async def check_model(self) -> bool:
        """True when Ollama is up and the configured model is installed."""
        try:
            models = await self.list_models()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Error connecting to Ollama: {e}")
            logger.error("Make sure Ollama is running: ollama serve")
            return False

        if not models:
            logger.error("No models installed in Ollama")
            logger.error(f"Run: ollama pull {self.model}")
            return False

        selected = next((m for m in models if m.get("name") == self.model), None)
        if selected is None:
            logger.error(f"Model '{self.model}' not found")
            for m in models:
                logger.error(f"  available: {m.get('name')} ({m.get('size', 0) / 1e9:.2f} GB)")
            logger.error(f"Change OLLAMA_MODEL in .env or run: ollama pull {self.model}")
            return False

        logger.info(
            "Ollama ready",
            model=self.model,
            size_gb=round(selected.get("size", 0) / 1e9, 2),
        )
        return True

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()
