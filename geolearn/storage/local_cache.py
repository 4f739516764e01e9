"""
Local cache tier - synchronous session documents.

One JSON document per key, always overwritten wholesale. With no directory
the documents live in memory for the lifetime of the process.
"""

import json
import re
from pathlib import Path
from typing import Any, Dict, Optional

from geolearn.logging_config import get_logger

logger = get_logger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class LocalCache:
    """Key/value document cache for a single learner session."""

    def __init__(self, directory: Optional[Path] = None):
        self.directory = Path(directory) if directory is not None else None
        self._memory: Dict[str, str] = {}
        if self.directory is not None:
            self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.directory / f"{_UNSAFE_CHARS.sub('_', key)}.json"

    def read(self, key: str) -> Optional[Any]:
        if self.directory is None:
            raw = self._memory.get(key)
        else:
            path = self._path(key)
            raw = path.read_text(encoding="utf-8") if path.exists() else None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning("Discarding unreadable local document %s: %s", key, exc)
            return None

    def write(self, key: str, document: Any) -> None:
        raw = json.dumps(document)
        if self.directory is None:
            self._memory[key] = raw
            return
        path = self._path(key)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(raw, encoding="utf-8")
        tmp.replace(path)

    def delete(self, key: str) -> None:
        if self.directory is None:
            self._memory.pop(key, None)
        else:
            self._path(key).unlink(missing_ok=True)
