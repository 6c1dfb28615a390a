"""Free-text search over a :class:`~songlib.index.SongIndex`.

The user's text is tokenized with :func:`songlib.analysis.analyze` and turned
into one FTS5 clause per searchable field::

    PHRASE     title : "amazing grace"
    ALL_WORDS  (title : "amazing" AND title : "grace")
    ANY_WORD   (title : "amazing" OR title : "grace")

Field clauses are OR-ed together, so a song matches if any one field does.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum

from . import config
from .analysis import analyze
from .index import MATCH_END, MATCH_START, SEARCH_FIELDS, SongIndex
from .models import Song

logger = logging.getLogger(__name__)


class SearchMode(Enum):
    PHRASE = "phrase"
    ALL_WORDS = "all"
    ANY_WORD = "any"


@dataclass
class SearchResult:
    """One ranked hit.

    ``highlights`` maps a field name to its best snippet, with matched terms
    wrapped in the highlight markers.  Fields with no match are absent.
    """

    path: str
    song_id: str
    score: float
    highlights: dict[str, str] = field(default_factory=dict)
    song: Song | None = None


def _term(name: str, token: str) -> str:
    return f'{name} : "{token}"'


def _field_clause(name: str, tokens: list[str], mode: SearchMode) -> str | None:
    if not tokens:
        return None
    if len(tokens) == 1:
        return _term(name, tokens[0])
    if mode is SearchMode.PHRASE:
        return _term(name, " ".join(tokens))
    operator = " AND " if mode is SearchMode.ALL_WORDS else " OR "
    return "(" + operator.join(_term(name, token) for token in tokens) + ")"


def build_query(text: str | None, mode: SearchMode = SearchMode.PHRASE) -> str | None:
    """Return the FTS5 MATCH expression for *text*, or None if it has no tokens."""
    # analyze() only keeps letters and digits, so tokens never contain quotes
    tokens = analyze(text)
    clauses = [_field_clause(name, tokens, mode) for name in SEARCH_FIELDS]
    clauses = [clause for clause in clauses if clause]
    if not clauses:
        return None
    return " OR ".join(clauses)


def _highlights(snippets: dict[str, str | None]) -> dict[str, str]:
    """Keep the snippets with a match and switch to the configured markers."""
    return {
        name: snippet.replace(MATCH_START, config.HIGHLIGHT_START).replace(MATCH_END, config.HIGHLIGHT_END)
        for name, snippet in snippets.items()
        if snippet and MATCH_START in snippet
    }


def search(index: SongIndex, text: str | None, mode: SearchMode = SearchMode.PHRASE,
           max_results: int = config.DEFAULT_MAX_RESULTS) -> list[SearchResult]:
    """Return up to *max_results* hits, best first."""
    if not text or not text.strip() or max_results <= 0:
        return []

    query = build_query(text, mode)
    if query is None:
        return []

    logger.debug("Searching for %s (%s)", query, mode.value)
    return [
        SearchResult(
            path=hit.path,
            song_id=hit.song_id,
            score=hit.score,
            highlights=_highlights(hit.snippets),
        )
        for hit in index.query(query, max_results)
    ]
