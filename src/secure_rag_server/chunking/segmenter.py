"""
Document Segmenter

Splits raw document text into overlapping, bounded-length chunks ready for
embedding. The splitter is a LangChain ``TextSplitter`` so it can also be used
anywhere a LangChain splitter is accepted (``split_text``,
``create_documents``), but the chunk boundaries follow a sentence-window
strategy rather than LangChain's recursive character splitting:

1. Text is split into sentence-like units on terminal punctuation.
2. Units are accumulated greedily into a buffer.
3. When the next unit would push the buffer past ``chunk_size``, the buffer is
   closed and the next one is seeded with the trailing words of the closed
   chunk (about ``chunk_overlap`` characters, at ~5 characters per word).
4. Whatever remains is flushed as the final chunk.

Segmentation is pure CPU work: no I/O, no hidden state between calls.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

from langchain_text_splitters import TextSplitter
from pydantic import BaseModel, ConfigDict, Field

from ..core.errors import ConfigurationError


# Sentence-like unit: a run of non-terminal characters plus its punctuation.
_UNIT_PATTERN = re.compile(r"[^.!?]+[.!?]*|[.!?]+")

# Overlap is configured in characters but applied in whole words.
CHARS_PER_OVERLAP_WORD = 5


class TextChunk(BaseModel):
    """
    A single bounded fragment of a document.
    """

    index: int = Field(..., ge=0, description="Ordinal position within the document.")
    text: str = Field(..., min_length=1)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True, extra="forbid")


class SentenceWindowSplitter(TextSplitter):
    """
    Sentence-window text splitter with word-level overlap.

    Parameters
    ----------
    chunk_size : int
        Soft maximum chunk length in characters. Only the final chunk of a
        document, or a single sentence longer than this, may exceed it.

    chunk_overlap : int
        Approximate overlap between adjacent chunks, in characters.
    """

    def __init__(self, chunk_size: int = 500, chunk_overlap: int = 50, **kwargs: Any) -> None:
        if chunk_size <= 0:
            raise ConfigurationError(f"chunk_size must be positive; got {chunk_size}")
        if chunk_overlap < 0 or chunk_overlap > chunk_size:
            raise ConfigurationError(
                f"chunk_overlap must be between 0 and chunk_size; got {chunk_overlap}"
            )
        super().__init__(chunk_size=chunk_size, chunk_overlap=chunk_overlap, **kwargs)

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    @property
    def chunk_overlap(self) -> int:
        return self._chunk_overlap

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _split_units(text: str) -> List[str]:
        units = (match.group(0).strip() for match in _UNIT_PATTERN.finditer(text))
        return [" ".join(unit.split()) for unit in units if unit]

    def _overlap_words(self, chunk: str) -> List[str]:
        count = self._chunk_overlap // CHARS_PER_OVERLAP_WORD
        if count <= 0:
            return []
        return chunk.split()[-count:]

    def _fits(self, buffer: str, unit: str) -> bool:
        if not buffer:
            return True
        return self._length_function(f"{buffer} {unit}") <= self._chunk_size

    # ------------------------------------------------------------------
    # TextSplitter API
    # ------------------------------------------------------------------

    def split_text(self, text: str) -> List[str]:
        units = self._split_units(text or "")
        chunks: List[str] = []
        buffer = ""

        for position, unit in enumerate(units):
            if buffer and not self._fits(buffer, unit):
                chunks.append(buffer)
                seed = self._overlap_words(buffer)

                # Only the last unit may carry overlap past chunk_size.
                is_last_unit = position == len(units) - 1
                if not is_last_unit:
                    while seed and not self._fits(" ".join(seed), unit):
                        seed = seed[1:]

                buffer = " ".join(seed)

            buffer = f"{buffer} {unit}" if buffer else unit

        if buffer:
            chunks.append(buffer)

        return chunks


class Segmenter:
    """
    Produces ``TextChunk`` sequences for documents.

    Deterministic and restartable: the same text and configuration always
    produce the same chunks.
    """

    def __init__(self, chunk_size: int = 500, chunk_overlap: int = 50) -> None:
        self._splitter = SentenceWindowSplitter(
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
        )

    @property
    def chunk_size(self) -> int:
        return self._splitter.chunk_size

    @property
    def chunk_overlap(self) -> int:
        return self._splitter.chunk_overlap

    def segment(
        self,
        text: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> List[TextChunk]:
        """
        Split ``text`` into ordered chunks, each carrying ``metadata``.

        Empty or whitespace-only text yields an empty list.
        """
        carried = dict(metadata or {})
        return [
            TextChunk(index=i, text=chunk, metadata=carried)
            for i, chunk in enumerate(self._splitter.split_text(text))
        ]
