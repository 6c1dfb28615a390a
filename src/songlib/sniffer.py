"""Song file format detection and the top-level import entry points.

Detection is split in two so the decision itself can be tested without any
bytes:

  - :func:`sniff` reads the raw signals out of a file (MIME check of the
    content, file extension, first non-blank line, leading XML start
    elements, songlib JSON marker, CCLI footer of a SongSelect text export);
  - :func:`resolve_format` is a pure function from those signals to a
    :class:`SongFormat` (or None).

Zip archives are handled by :func:`import_bytes`: every member is detected
and imported on its own, and a bad member is logged and skipped.
"""

import io
import json
import logging
import zipfile
import zlib
from dataclasses import dataclass
from pathlib import Path, PurePath

from lxml import etree

from . import config
from .exceptions import SongLibError, UnknownFormatError
from .importers.chordpro import CHORDPRO_EXTENSIONS, is_directive
from .importers.churchview import DATASET_ELEMENT
from .importers.openlyrics import OPENLYRICS_NAMESPACE
from .importers.songselect import TXT_EXTENSION, USR_EXTENSION, USR_HEADER, has_ccli_footer
from .models import Song
from .registry import SongFormat, get_importer
from .serialize import read_marker

logger = logging.getLogger(__name__)

MIME_ZIP = "application/zip"
MIME_XML = "application/xml"
MIME_JSON = "application/json"

_ZIP_MAGIC = (b"PK\x03\x04", b"PK\x05\x06")
_UTF8_BOM = b"\xef\xbb\xbf"

LEGACY_EXTENSION = ".cvdat"
XML_EXTENSION = ".xml"
V2_VERSION = "2.0.0"

# Start elements collected from an XML document while sniffing
MAX_SNIFF_ELEMENTS = 64

# Errors that make a single archive member unreadable
_MEMBER_ERRORS = (SongLibError, zipfile.BadZipFile, zlib.error, OSError, EOFError, ValueError)


@dataclass(frozen=True)
class XmlElement:
    """A start element seen while sniffing an XML document."""

    name: str
    namespaces: tuple[str, ...] = ()
    version: str | None = None


@dataclass(frozen=True)
class SniffSignals:
    mime: str | None = None
    extension: str = ""
    first_line: str = ""
    xml_elements: tuple[XmlElement, ...] = ()
    json_type: str | None = None
    ccli_footer: bool = False


# ---------------------------------------------------------------------------
# Signal collection
# ---------------------------------------------------------------------------


def _strip_bom(data: bytes) -> bytes:
    return data[len(_UTF8_BOM):] if data.startswith(_UTF8_BOM) else data


def _load_json(data: bytes):
    """Return the decoded JSON document, or None when *data* isn't JSON."""
    try:
        return json.loads(_strip_bom(data))
    except (UnicodeDecodeError, ValueError):
        return None


def content_mime(data: bytes) -> str | None:
    """Identify zip, XML or JSON content from its leading bytes."""
    if data.startswith(_ZIP_MAGIC):
        return MIME_ZIP
    head = _strip_bom(data).lstrip()
    if head.startswith(b"<?xml"):
        return MIME_XML
    if head.startswith(b"{") and _load_json(data) is not None:
        return MIME_JSON
    return None


def _text(data: bytes) -> str:
    return data.decode("utf-8-sig", errors="replace")


def _first_line(text: str) -> str:
    for line in text.splitlines():
        if line.strip():
            return line.strip()
    return ""


def _xml_elements(data: bytes) -> tuple[XmlElement, ...]:
    """Return the leading start elements of *data* in document order.

    Parsing stops quietly at the first syntax error; whatever was seen before
    it is still returned.
    """
    elements: list[XmlElement] = []
    pending_ns: list[str] = []
    events = etree.iterparse(
        io.BytesIO(_strip_bom(data).lstrip()),
        events=("start-ns", "start"),
        resolve_entities=False,
        no_network=True,
        load_dtd=False,
    )
    try:
        for event, item in events:
            if event == "start-ns":
                pending_ns.append(item[1])
                continue
            qname = etree.QName(item)
            namespaces = tuple(pending_ns)
            if qname.namespace and qname.namespace not in namespaces:
                namespaces += (qname.namespace,)
            pending_ns = []
            elements.append(XmlElement(qname.localname, namespaces, item.get("Version")))
            if len(elements) >= MAX_SNIFF_ELEMENTS:
                break
    except etree.LxmlError as exc:
        logger.debug("Stopped reading XML elements: %s", exc)
    return tuple(elements)


def sniff(data: bytes, filename: str = "") -> SniffSignals:
    """Collect the detection signals for *data*."""
    mime = content_mime(data)
    head = _strip_bom(data).lstrip()

    xml_elements: tuple[XmlElement, ...] = ()
    if head.startswith(b"<"):
        xml_elements = _xml_elements(data)

    json_type = None
    if head.startswith(b"{"):
        json_type = read_marker(_load_json(data))

    text = _text(data) if mime != MIME_ZIP else ""
    return SniffSignals(
        mime=mime,
        extension=PurePath(filename).suffix.lower() if filename else "",
        first_line=_first_line(text),
        xml_elements=xml_elements,
        json_type=json_type,
        ccli_footer=mime is None and has_ccli_footer(text),
    )


# ---------------------------------------------------------------------------
# Decision
# ---------------------------------------------------------------------------


def _inspect_xml(elements: tuple[XmlElement, ...]) -> SongFormat | None:
    for element in elements:
        name = element.name.lower()
        if name == DATASET_ELEMENT.lower():
            return SongFormat.LEGACY
        if name == "songs":
            if element.version == V2_VERSION:
                return SongFormat.INTERNAL_V2
            return SongFormat.INTERNAL_V1
        if name == "song":
            if any(ns.lower() == OPENLYRICS_NAMESPACE for ns in element.namespaces):
                return SongFormat.OPENLYRICS
    return None


def _inspect_json(json_type: str | None) -> SongFormat | None:
    if json_type == config.FORMAT_SONG_TYPE:
        return SongFormat.INTERNAL_JSON
    return None


def resolve_format(signals: SniffSignals) -> SongFormat | None:
    """Decide the format from *signals*: content first, then extension, then first line."""
    if signals.mime == MIME_XML:
        return _inspect_xml(signals.xml_elements)
    if signals.mime == MIME_JSON:
        return _inspect_json(signals.json_type)

    if signals.extension == LEGACY_EXTENSION:
        return SongFormat.LEGACY
    if signals.extension == XML_EXTENSION:
        return _inspect_xml(signals.xml_elements)
    if signals.extension == config.SONG_EXTENSION:
        return _inspect_json(signals.json_type)
    if signals.extension in CHORDPRO_EXTENSIONS:
        return SongFormat.CHORDPRO
    if signals.extension == USR_EXTENSION:
        return SongFormat.SONGSELECT
    if signals.extension == TXT_EXTENSION and signals.ccli_footer:
        return SongFormat.SONGSELECT

    if signals.first_line.startswith("{"):
        if is_directive(signals.first_line):
            return SongFormat.CHORDPRO
        return _inspect_json(signals.json_type)
    if signals.first_line == USR_HEADER:
        return SongFormat.SONGSELECT
    if signals.first_line.upper().startswith("<?XML"):
        return _inspect_xml(signals.xml_elements)
    return None


def detect(data: bytes, filename: str = "") -> SongFormat:
    """Return the format of *data*.

    Raises UnknownFormatError if no detection strategy recognises it.
    """
    fmt = resolve_format(sniff(data, filename))
    if fmt is None:
        raise UnknownFormatError(filename or "<bytes>")
    return fmt


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------


def _import_archive(data: bytes, filename: str) -> list[Song]:
    songs: list[Song] = []
    try:
        archive = zipfile.ZipFile(io.BytesIO(data))
    except zipfile.BadZipFile as exc:
        logger.warning("Failed to open archive '%s': %s", filename, exc)
        return songs

    with archive:
        for info in archive.infolist():
            if info.is_dir():
                continue
            member = PurePath(info.filename).name
            try:
                content = archive.read(info)
                fmt = detect(content, member)
                imported = get_importer(fmt).parse(content, member)
            except _MEMBER_ERRORS as exc:
                logger.warning("Skipping '%s' in archive '%s': %s", info.filename, filename, exc)
                continue
            logger.debug("Imported %d song(s) from '%s' (%s).", len(imported), info.filename, fmt.value)
            songs.extend(imported)
    return songs


def import_bytes(data: bytes, filename: str = "") -> list[Song]:
    """Detect the format of *data* and import every song it holds.

    Archive members fail independently.  A single document either imports
    completely or raises UnknownFormatError / InvalidFormatError.
    """
    if content_mime(data) == MIME_ZIP:
        songs = _import_archive(data, filename)
        if songs:
            return songs
        logger.warning("Archive '%s' yielded no songs; reading it as a single document.", filename)

    fmt = detect(data, filename)
    logger.debug("Detected '%s' as %s.", filename, fmt.value)
    return get_importer(fmt).parse(data, filename)


def import_path(path: str | Path) -> list[Song]:
    """Read *path* and import it with :func:`import_bytes`.

    Raises OSError if the file can't be read.
    """
    path = Path(path)
    return import_bytes(path.read_bytes(), path.name)
