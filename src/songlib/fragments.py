"""Mixed-content model for the text of a single verse.

Song formats describe a verse as an ordered run of heterogeneous nodes::

    <lines>Amazing <tag name="b">grace</tag> how sweet<br/>
           that <chord name="G"/>saved a wretch<comment>slow</comment></lines>

Importers turn that into a flat list of fragments:

  ``Text``       a run of characters
  ``LineBreak``  an explicit line break
  ``Comment``    an inline performer comment
  ``Chord``      a chord annotation at this position
  ``FormatTag``  a formatting wrapper around child fragments

:func:`normalize` flattens and cleans such a list and :func:`render` turns it
into the display text stored on :class:`~songlib.models.Section`.
"""

import re
from dataclasses import dataclass, field
from enum import Enum, auto


@dataclass(frozen=True)
class Text:
    text: str


@dataclass(frozen=True)
class LineBreak:
    pass


@dataclass(frozen=True)
class Comment:
    text: str


@dataclass(frozen=True)
class Chord:
    name: str


@dataclass(frozen=True)
class FormatTag:
    name: str
    children: tuple = field(default_factory=tuple)


Fragment = Text | LineBreak | Comment | Chord | FormatTag


class DisplayMode(Enum):
    PRESENTATION = auto()  # lyrics only
    MUSICIAN = auto()  # edit/musician view: chords kept inline as [G]


_WHITESPACE_RE = re.compile(r"\s+")
_NEWLINE_RE = re.compile(r"\r\n|\r|\n")


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


def flatten(fragments) -> list[Fragment]:
    """Replace every FormatTag by its (recursively flattened) children."""
    flat: list[Fragment] = []
    for fragment in fragments:
        if isinstance(fragment, FormatTag):
            flat.extend(flatten(fragment.children))
        else:
            flat.append(fragment)
    return flat


def normalize(fragments) -> list[Fragment]:
    """Return the normalized form of a verse's fragment list.

    1. FormatTag nodes are unwrapped into the surrounding sequence.
    2. Newlines inside text runs become spaces; only LineBreak breaks lines.
    3. Adjacent text runs are merged and whitespace runs collapse to one space.
    4. A text run that starts the verse or follows a LineBreak loses its
       leading whitespace.
    5. Text runs left empty are dropped.

    Applying it to its own output returns an equal list.
    """
    result: list[Fragment] = []
    for fragment in flatten(fragments):
        if not isinstance(fragment, Text):
            result.append(fragment)
            continue

        text = _WHITESPACE_RE.sub(" ", fragment.text)
        previous = result[-1] if result else None

        if isinstance(previous, Text):
            text = _WHITESPACE_RE.sub(" ", previous.text + text)
            result.pop()
            previous = result[-1] if result else None

        if previous is None or isinstance(previous, LineBreak):
            text = text.lstrip()

        if text:
            result.append(Text(text))
    return result


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def render(fragments, mode: DisplayMode = DisplayMode.PRESENTATION) -> str:
    """Return display text for *fragments*.

    Comments never appear in the text.  Chords appear as ``[name]`` only in
    :attr:`DisplayMode.MUSICIAN`.  Trailing whitespace is removed from each
    line and blank lines at either end are dropped.
    """
    parts: list[str] = []
    for fragment in flatten(fragments):
        if isinstance(fragment, Text):
            parts.append(fragment.text)
        elif isinstance(fragment, LineBreak):
            parts.append("\n")
        elif isinstance(fragment, Chord) and mode is DisplayMode.MUSICIAN:
            parts.append(f"[{fragment.name}]")

    lines = [line.rstrip() for line in "".join(parts).split("\n")]
    return "\n".join(lines).strip("\n")


def fragments_from_text(text: str) -> list[Fragment]:
    """Split plain verse text into Text runs separated by LineBreaks."""
    fragments: list[Fragment] = []
    for i, line in enumerate(_NEWLINE_RE.split(text)):
        if i:
            fragments.append(LineBreak())
        if line:
            fragments.append(Text(line))
    return fragments
