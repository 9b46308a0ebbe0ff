"""
Text Chunker - Split document text into overlapping, size-bounded fragments

Part of the RAG Query Pipeline.

License: MIT
"""

from typing import List, Optional, Sequence
import logging
import re

logger = logging.getLogger(__name__)

DEFAULT_SEPARATORS = ("\n\n", "\n", ". ", "! ", "? ", "; ", ": ", ", ", " ")


class TextChunker:
    """
    Sliding-window text chunker.

    Splits cleaned text at the most natural separator inside each window and
    carries ``overlap_size`` characters of context into the next chunk.
    """

    def __init__(
        self,
        max_chunk_size: int = 1000,
        overlap_size: int = 200,
        separators: Optional[Sequence[str]] = None,
    ):
        """
        Initialize the chunker.

        Args:
            max_chunk_size: Maximum number of characters per chunk
            overlap_size: Characters shared between consecutive chunks
            separators: Split points in priority order
        """
        if max_chunk_size < 1:
            raise ValueError("max_chunk_size must be at least 1")
        if overlap_size < 0 or overlap_size >= max_chunk_size:
            raise ValueError("overlap_size must be between 0 and max_chunk_size - 1")

        self.max_chunk_size = max_chunk_size
        self.overlap_size = overlap_size
        self.separators = tuple(separators) if separators else DEFAULT_SEPARATORS

    def split_text(self, text: str) -> List[str]:
        """
        Split text into chunks.

        Args:
            text: Raw document text

        Returns:
            List of chunks; empty for empty or non-string input
        """
        if not text or not isinstance(text, str):
            logger.warning(f"Invalid text provided to chunker: {type(text).__name__}")
            return []

        cleaned = self.clean_text(text)
        if not cleaned:
            return []

        if len(cleaned) <= self.max_chunk_size:
            return [cleaned]

        chunks = self._create_chunks(cleaned)

        logger.debug(
            f"Text chunking completed: {len(cleaned)} chars -> {len(chunks)} chunks "
            f"(avg {len(cleaned) // len(chunks)} chars)"
        )
        return chunks

    @staticmethod
    def clean_text(text: str) -> str:
        """Normalize whitespace while keeping line and paragraph breaks."""
        text = text.replace("\r\n", "\n").replace("\r", "\n")
        text = re.sub(r"[^\S\n]+", " ", text)
        text = re.sub(r" *\n *", "\n", text)
        text = re.sub(r"\n{2,}", "\n\n", text)
        return text.strip()

    def _create_chunks(self, text: str) -> List[str]:
        chunks = []
        start = 0
        length = len(text)

        while start < length:
            end = start + self.max_chunk_size
            if end >= length:
                tail = text[start:].strip()
                if tail:
                    chunks.append(tail)
                break

            window = text[start:end]
            cut = self._find_split_point(window)
            chunk = window[:cut].strip()
            if chunk:
                chunks.append(chunk)

            next_start = start + cut - self.overlap_size
            start = next_start if next_start > start else start + cut

        return chunks

    def _find_split_point(self, window: str) -> int:
        """
        Return the end offset of the chunk inside ``window``.

        The split must leave at least ``overlap_size`` trailing characters and
        must end past the overlap so the window always advances.
        """
        limit = len(window) - self.overlap_size
        for separator in self.separators:
            index = window.rfind(separator, 0, limit)
            if index <= 0:
                continue
            cut = index + len(separator)
            if cut > self.overlap_size:
                return cut

        return len(window)

    def chunk_by_paragraphs(self, text: str) -> List[str]:
        """
        Chunk on paragraph boundaries, splitting oversized paragraphs further.

        Args:
            text: Raw document text

        Returns:
            List of chunks
        """
        if not text or not isinstance(text, str):
            return []

        chunks = []
        for paragraph in re.split(r"\n\s*\n", text):
            paragraph = paragraph.strip()
            if not paragraph:
                continue
            if len(paragraph) <= self.max_chunk_size:
                chunks.append(self.clean_text(paragraph))
            else:
                chunks.extend(self.split_text(paragraph))

        return chunks

    def chunk_by_sentences(self, text: str) -> List[str]:
        """
        Group whole sentences into chunks of at most ``max_chunk_size``.

        A single sentence longer than the limit becomes its own chunk.

        Args:
            text: Raw document text

        Returns:
            List of chunks
        """
        if not text or not isinstance(text, str):
            return []

        sentences = [s.strip() for s in re.split(r"[.!?]+", self.clean_text(text))]
        chunks = []
        current = ""

        for sentence in sentences:
            if not sentence:
                continue
            candidate = f"{current}. {sentence}" if current else sentence
            if len(candidate) + 1 <= self.max_chunk_size:
                current = candidate
                continue

            if current:
                chunks.append(current + ".")
            current = sentence

        if current:
            chunks.append(current + ".")

        return chunks
