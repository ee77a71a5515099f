"""Quote search collaborator interface.

The quote corpus and its similarity search live outside this library.
The core only asks for ranked matches given free text; confidence and
lifecycle logic never depend on it.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from pydantic import BaseModel, Field


class QuoteMatch(BaseModel):
    quote: str
    semantic_score: float = Field(..., ge=0.0, le=1.0)
    operator_relevance: float = Field(..., ge=0.0, le=1.0)
    combined_score: float = Field(..., ge=0.0, le=1.0)

    model_config = {"frozen": True}


@runtime_checkable
class QuoteSearcher(Protocol):
    """Anything that ranks corpus quotes against free text."""

    def search(self, text: str, limit: int = 5) -> list[QuoteMatch]:
        """Return up to *limit* matches, best first."""
        ...


class StaticQuoteSearcher:
    """Keyword-overlap searcher over a fixed quote list.

    Used where no corpus index is available.  Scores are the fraction of
    the query's words that appear in the quote.
    """

    def __init__(self, quotes: list[str]) -> None:
        self._quotes = list(quotes)

    def search(self, text: str, limit: int = 5) -> list[QuoteMatch]:
        words = {w for w in text.lower().split() if len(w) > 3}
        if not words:
            return []
        matches: list[QuoteMatch] = []
        for quote in self._quotes:
            overlap = len(words & set(quote.lower().split())) / len(words)
            if overlap > 0:
                matches.append(QuoteMatch(
                    quote=quote,
                    semantic_score=overlap,
                    operator_relevance=0.0,
                    combined_score=overlap,
                ))
        matches.sort(key=lambda m: -m.combined_score)
        return matches[:limit]
