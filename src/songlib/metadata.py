"""Per-song sidecar files kept in the library's ``_metadata`` directory.

Sidecar layout (``<song file name>_metadata.json``)::

    {
      "path": "amazing-grace.json",
      "dateAdded": "2024-01-01T10:00:00+00:00",
      "annotations": [{"section": "v1", "note": "slow"}]
    }
"""

import json
import logging
import os
from pathlib import Path

from . import config
from .models import SongMetadata, VerseAnnotation
from .serialize import format_datetime, parse_datetime

logger = logging.getLogger(__name__)


def metadata_to_dict(metadata: SongMetadata) -> dict:
    return {
        "path": metadata.path,
        "dateAdded": format_datetime(metadata.date_added),
        "annotations": [{"section": a.section, "note": a.note} for a in metadata.annotations],
    }


def metadata_from_dict(data: dict) -> SongMetadata:
    date_added = parse_datetime(data["dateAdded"])
    if date_added is None:
        raise ValueError("dateAdded is missing")
    return SongMetadata(
        path=str(data["path"]),
        date_added=date_added,
        annotations=[
            VerseAnnotation(section=str(a["section"]), note=str(a["note"]))
            for a in data.get("annotations") or []
        ],
    )


class MetadataStore:
    """Reads and writes sidecars in one directory."""

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)

    def sidecar_path(self, path: str) -> Path:
        return self.directory / f"{path}{config.METADATA_SUFFIX}"

    def load_all(self) -> dict[str, SongMetadata]:
        """Return every readable sidecar keyed by song path.

        Unreadable sidecars are logged and left out.
        """
        records: dict[str, SongMetadata] = {}
        for sidecar in sorted(self.directory.glob(f"*{config.METADATA_SUFFIX}")):
            try:
                metadata = metadata_from_dict(json.loads(sidecar.read_text(encoding="utf-8")))
            except (OSError, ValueError, KeyError, TypeError) as exc:
                logger.warning("Failed to read metadata file '%s': %s", sidecar, exc)
                continue
            records[metadata.path] = metadata
        return records

    def create(self, metadata: SongMetadata) -> bool:
        """Write a sidecar for a previously unseen path.

        An existing sidecar is never overwritten; returns False in that case.
        """
        try:
            with open(self.sidecar_path(metadata.path), "x", encoding="utf-8") as f:
                json.dump(metadata_to_dict(metadata), f, indent=2, ensure_ascii=False)
        except FileExistsError:
            logger.debug("Metadata for '%s' already exists, leaving it alone.", metadata.path)
            return False
        return True

    def write(self, metadata: SongMetadata) -> None:
        """Replace the sidecar for ``metadata.path``."""
        target = self.sidecar_path(metadata.path)
        tmp = target.with_name(target.name + ".tmp")
        tmp.write_text(
            json.dumps(metadata_to_dict(metadata), indent=2, ensure_ascii=False), encoding="utf-8"
        )
        os.replace(tmp, target)

    def delete(self, path: str) -> None:
        self.sidecar_path(path).unlink(missing_ok=True)
