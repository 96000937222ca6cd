"""Filesystem persistence for collected routes."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from ..config import settings

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r'[\\/:*?"<>|\x00-\x1f]')


class RecordStore:
    """Write route documents and their geometry under ``<root>/<city>/``.

    Two routes deriving the same file name overwrite each other; the last
    write wins.
    """

    JSON_SUFFIX = ".json"
    GEOJSON_SUFFIX = ".geojson"

    def __init__(self, root: Optional[Union[str, Path]] = None) -> None:
        self.root = Path(root) if root is not None else settings.routes_path

    @staticmethod
    def safe_name(name: Optional[str]) -> str:
        """Derive a filesystem-safe base name from a route display name."""
        cleaned = _UNSAFE_CHARS.sub("_", str(name or "")).strip().strip(".")
        return cleaned or "unknown"

    def city_dir(self, city: str) -> Path:
        return self.root / city.strip().lower()

    def save(
        self,
        city: str,
        document: Dict[str, Any],
        feature_collection: Dict[str, Any],
        base_name: Optional[str],
    ) -> Tuple[Path, Path]:
        """
        Persist the enriched document and its feature collection.

        Returns:
            Paths of the JSON document and the GeoJSON sibling.
        """
        directory = self.city_dir(city)
        directory.mkdir(parents=True, exist_ok=True)

        stem = self.safe_name(base_name)
        json_path = directory / f"{stem}{self.JSON_SUFFIX}"
        geojson_path = directory / f"{stem}{self.GEOJSON_SUFFIX}"

        self._write_json(json_path, document)
        logger.info("Saved route document %s", json_path.name)
        self._write_json(geojson_path, feature_collection)
        logger.info("Saved route geometry %s", geojson_path.name)
        return json_path, geojson_path

    @staticmethod
    def _write_json(path: Path, payload: Dict[str, Any]) -> None:
        with path.open("w", encoding="utf-8") as fh:
            json.dump(payload, fh, ensure_ascii=False, indent=2)
