"""
Generador de embeddings para búsqueda semántica.

Usa los modelos de embedding de Gemini para generar vectores de la
dimensión configurada (768 por defecto).
"""

from typing import Optional

from google import genai
from google.genai import types
import structlog
from tenacity import retry, stop_after_attempt, wait_exponential

from nido.config import get_settings

logger = structlog.get_logger()


class EmbeddingGenerator:
    """
    Genera embeddings usando Gemini.

    Se usa en el canal semántico del retrieval ("busco algo luminoso y
    tranquilo"); los vectores de listings se indexan fuera de este paquete.
    """

    def __init__(self, api_key: Optional[str] = None):
        settings = get_settings()
        api_key = api_key or settings.gemini_api_key

        if not api_key:
            raise ValueError("GEMINI_API_KEY es requerida para embeddings.")

        self.client = genai.Client(api_key=api_key)
        self.model_name = settings.embedding_model
        self.output_dim = settings.embedding_dim
        logger.info("Embedding generator inicializado", model=self.model_name, dim=self.output_dim)

    async def _embed(self, text: str) -> list[float]:
        response = await self.client.aio.models.embed_content(
            model=self.model_name,
            contents=text,
            config=types.EmbedContentConfig(output_dimensionality=self.output_dim),
        )
        return list(response.embeddings[0].values)

    # Backoff corto: los reintentos tienen que entrar en el timeout del canal
    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, min=0.1, max=0.5),
        reraise=True,
    )
    async def generate_query_embedding(self, query: str) -> list[float]:
        """
        Genera embedding para una query de búsqueda libre.

        Args:
            query: Texto de búsqueda (ej: "departamento luminoso en Palermo")

        Returns:
            Vector de output_dim dimensiones
        """
        try:
            return await self._embed(query)

        except Exception as e:
            logger.error(
                "Error generando embedding de query",
                query=query[:50],
                error=str(e),
            )
            raise
