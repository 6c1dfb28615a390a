"""Text analysis shared by indexing and querying.

The index is an SQLite FTS5 table using the ``unicode61`` tokenizer with
``remove_diacritics 2``.  :func:`analyze` splits text the same way so that a
query is broken into exactly the tokens the index stored:

  - letters and digits form tokens; everything else (punctuation, ``_``,
    whitespace) separates them
  - tokens are lower-cased and stripped of diacritics
  - no stop words are removed: titles like "Be Thou My Vision" or "It Is
    Well" are made almost entirely of them
"""

import re
import unicodedata

# FTS5 tokenizer definition that mirrors analyze()
FTS_TOKENIZER = "unicode61 remove_diacritics 2"

_TOKEN_RE = re.compile(r"[^\W_]+")


def fold(text: str) -> str:
    """Lower-case *text* and remove combining diacritical marks."""
    decomposed = unicodedata.normalize("NFD", text.lower())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def analyze(text: str | None) -> list[str]:
    """Return the search tokens of *text* in order."""
    if not text:
        return []
    return _TOKEN_RE.findall(fold(text))
