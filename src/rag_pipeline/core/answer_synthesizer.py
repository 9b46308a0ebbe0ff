"""
Answer Synthesizer - Generate grounded answers from retrieved fragments

Part of the RAG Query Pipeline.

License: MIT
"""

from typing import List, Optional
import json
import logging

from ..exceptions import GenerationError
from ..infrastructure import monitoring
from ..models import RetrievalResult, SynthesisResult
from .providers import GenerationProvider

logger = logging.getLogger(__name__)

NO_INFORMATION_ANSWER = "I could not find any relevant information to answer your question."

CONFIDENCE_FLOOR = 0.2
CONFIDENCE_WEIGHT = 0.8

SYSTEM_PROMPT = (
    "You are a helpful assistant that answers questions based only on the provided sources. "
    "Do not use outside knowledge. If the sources do not contain enough information to "
    "answer the question, say so clearly."
)


def calculate_confidence(results: List[RetrievalResult]) -> float:
    """
    Derive answer confidence from retrieval relevance.

    ``min(mean_relevance * 0.8 + 0.2, 1.0)``, floored at 0.2 because
    relevance can be negative. An empty result set has confidence 0.

    Args:
        results: Retrieved fragments

    Returns:
        Confidence between 0 and 1
    """
    if not results:
        return 0.0

    mean_relevance = sum(result.relevance for result in results) / len(results)
    confidence = min(mean_relevance * CONFIDENCE_WEIGHT + CONFIDENCE_FLOOR, 1.0)
    return max(confidence, CONFIDENCE_FLOOR)


class AnswerSynthesizer:
    """Builds the grounded prompt and calls the generation provider."""

    def __init__(self, provider: GenerationProvider, model: Optional[str] = None):
        """
        Initialize the synthesizer.

        Args:
            provider: Generation provider
            model: Model name for metrics labels; defaults to the provider's
        """
        self.provider = provider
        self.model = model or getattr(provider, "model", "unknown")

    def build_context(self, results: List[RetrievalResult], include_metadata: bool = False) -> str:
        """
        Build context string from retrieved fragments.

        Args:
            results: Retrieved fragments
            include_metadata: Append each fragment's metadata as JSON

        Returns:
            Formatted context string
        """
        parts = []
        for i, result in enumerate(results, start=1):
            part = f"Source {i}:\n{result.text}"
            if include_metadata and result.metadata:
                part += f"\nMetadata: {json.dumps(result.metadata, default=str)}"
            parts.append(part)

        return "\n\n".join(parts)

    def build_prompt(self, query: str, context: str) -> str:
        return f"""Context information:
{context}

Question: {query}

Please answer the question using only the information provided above. If the information is not sufficient to answer the question, say so explicitly.

Answer:"""

    async def synthesize(
        self, query: str, results: List[RetrievalResult], include_metadata: bool = False
    ) -> SynthesisResult:
        """
        Generate an answer grounded in ``results``.

        Args:
            query: User's question
            results: Retrieved fragments
            include_metadata: Include fragment metadata in the context

        Returns:
            Answer, confidence and tokens used

        Raises:
            GenerationError: If the provider returns no usable text
        """
        if not results:
            logger.info("No relevant fragments retrieved, skipping generation")
            return SynthesisResult(answer=NO_INFORMATION_ANSWER, confidence=0.0, tokens_used=0)

        context = self.build_context(results, include_metadata)
        prompt = self.build_prompt(query, context)

        with monitoring.llm_generation_duration_tracker(self.model):
            response = await self.provider.generate(SYSTEM_PROMPT, prompt)

        answer = (response.text or "").strip() if response is not None else ""
        if not answer:
            raise GenerationError("Generation provider returned an empty answer")

        return SynthesisResult(
            answer=answer,
            confidence=calculate_confidence(results),
            tokens_used=int(response.tokens_used or 0),
        )
