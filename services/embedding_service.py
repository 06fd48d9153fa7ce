import logging
import re
from typing import List, Optional

import google.generativeai as genai

from config import config

logger = logging.getLogger("brify_sync.embeddings")


class EmbeddingConfigurationError(Exception):
    """No Gemini API key configured."""
    pass


class EmbeddingService:
    """
    Gemini text embeddings for mirrored documents.

    Text is whitespace-normalized and cut to EMBEDDING_MAX_CHARS before being
    sent, since the API rejects oversized payloads.
    """

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None,
                 max_chars: Optional[int] = None):
        self.api_key = api_key or config.GEMINI_API_KEY
        if not self.api_key:
            raise EmbeddingConfigurationError(
                "Gemini API key is not configured. Set GEMINI_API_KEY or GOOGLE_AI_API_KEY."
            )
        genai.configure(api_key=self.api_key)
        self.model = model or config.EMBEDDING_MODEL
        self.max_chars = max_chars or config.EMBEDDING_MAX_CHARS

    def preprocess(self, text: str) -> str:
        cleaned = re.sub(r"\s+", " ", text or "").strip()
        return cleaned[: self.max_chars]

    def embed(self, text: str) -> List[float]:
        prepared = self.preprocess(text)
        if not prepared:
            raise ValueError("Cannot embed empty text")

        result = genai.embed_content(
            model=self.model,
            content=prepared,
            task_type="retrieval_document",
        )
        embedding = result["embedding"]
        logger.debug(f"Generated embedding of dimension {len(embedding)} for {len(prepared)} chars")
        return list(embedding)
