"""Shared helpers used by the format importers.

  - :func:`build_section`     fragments -> normalized Section
  - :func:`section_from_text` plain text -> normalized Section
  - :func:`part_type_code`    legacy part type -> short section prefix
  - :func:`xml_parser`        lxml parser with entities and network access off
  - :func:`parse_xml`         well-formed bytes -> BeautifulSoup XML tree
  - :func:`parse_int`         tolerant integer parsing with a warning
"""

import logging

from bs4 import BeautifulSoup, Tag
from lxml import etree

from ..exceptions import InvalidFormatError
from ..fragments import DisplayMode, fragments_from_text, normalize, render
from ..models import Section

logger = logging.getLogger(__name__)

# Part types written by the internal XML formats
PART_TYPE_CODES = {
    "VERSE": "v",
    "PRECHORUS": "p",
    "CHORUS": "c",
    "BRIDGE": "b",
    "TAG": "t",
    "VAMP": "e",
    "END": "e",
}


def part_type_code(part_type: str | None) -> str:
    """Return the section name prefix for a legacy part type ("o" for other)."""
    return PART_TYPE_CODES.get((part_type or "").strip().upper(), "o")


def build_section(name: str, fragments, mode: DisplayMode = DisplayMode.PRESENTATION,
                  font_size: int | None = None) -> Section:
    """Normalize *fragments* once and store their rendered text on a Section."""
    return Section(name=name, text=render(normalize(fragments), mode), font_size=font_size)


def section_from_text(name: str, text: str, font_size: int | None = None) -> Section:
    return build_section(name, fragments_from_text(text), font_size=font_size)


def parse_int(value: str | None, what: str) -> int | None:
    """Parse *value* as an int, logging and returning None when it isn't one."""
    if value is None or not value.strip():
        return None
    try:
        return int(value.strip())
    except ValueError:
        logger.warning("Failed to parse %s '%s' as an integer.", what, value)
        return None


def xml_parser(**kwargs) -> etree.XMLParser:
    return etree.XMLParser(resolve_entities=False, no_network=True, load_dtd=False, **kwargs)


def parse_xml(data: bytes, name: str = "") -> BeautifulSoup:
    """Parse *data* with the lxml-backed XML builder (tag case preserved).

    The bs4 builder recovers from broken markup, so a truncated file would
    come back as a partial tree.  The bytes are checked with a strict parser
    first and InvalidFormatError is raised if they aren't well-formed.
    """
    try:
        etree.fromstring(data, xml_parser())
    except etree.XMLSyntaxError as exc:
        raise InvalidFormatError(name, f"malformed XML ({exc})") from exc
    return BeautifulSoup(data, "xml")


def child_text(parent: Tag, name: str) -> str | None:
    """Return the stripped text of the first direct child called *name*."""
    child = parent.find(name, recursive=False)
    if child is None:
        return None
    return child.get_text().strip()
