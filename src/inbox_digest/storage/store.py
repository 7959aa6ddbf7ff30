from __future__ import annotations

import json
import logging
import os
import re
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from inbox_digest.errors import PersistenceError

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9@._+-]")


class DocumentStore(Protocol):
    def get(self, collection: str, key: str) -> Optional[Dict[str, Any]]: ...
    def set(self, collection: str, key: str, doc: Dict[str, Any], *, merge: bool = False) -> None: ...
    def update(self, collection: str, key: str, fields: Dict[str, Any]) -> None: ...
    def delete_field(self, collection: str, key: str, field: str) -> None: ...
    def delete(self, collection: str, key: str) -> None: ...
    def list(self, collection: str) -> List[Dict[str, Any]]: ...


class JsonDocumentStore:
    """
    One JSON file per document: <root>/<collection>/<key>.json.

    Writes go through a temp file and os.replace so readers never see a
    half-written document. A process-wide lock serializes read-modify-write.
    """

    def __init__(self, root: Path):
        self._root = root
        self._lock = threading.RLock()

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def _path(self, collection: str, key: str) -> Path:
        if not key:
            raise PersistenceError("Empty document key", stage="persist")
        return self._root / collection / f"{_UNSAFE.sub('_', key)}.json"

    def _read(self, path: Path) -> Optional[Dict[str, Any]]:
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise PersistenceError(f"Cannot read {path}: {exc}", stage="persist") from exc
        if not isinstance(data, dict):
            raise PersistenceError(f"{path} does not hold a JSON object", stage="persist")
        return data

    def _write(self, path: Path, doc: Dict[str, Any]) -> None:
        tmp = path.with_suffix(".json.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(doc, indent=2, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp, path)
        except (OSError, TypeError, ValueError) as exc:
            raise PersistenceError(f"Cannot write {path}: {exc}", stage="persist") from exc

    def get(self, collection: str, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            return self._read(self._path(collection, key))

    def set(self, collection: str, key: str, doc: Dict[str, Any], *, merge: bool = False) -> None:
        path = self._path(collection, key)
        with self._lock:
            current = self._read(path) if merge else None
            payload = dict(current or {})
            payload.update(doc)
            payload.setdefault("_key", key)
            self._write(path, payload)

    def update(self, collection: str, key: str, fields: Dict[str, Any]) -> None:
        # Like Firestore: updating a missing document is an error.
        path = self._path(collection, key)
        with self._lock:
            current = self._read(path)
            if current is None:
                raise PersistenceError(f"No document {collection}/{key} to update", stage="persist")
            current.update(fields)
            self._write(path, current)

    def delete_field(self, collection: str, key: str, field: str) -> None:
        path = self._path(collection, key)
        with self._lock:
            current = self._read(path)
            if current is None:
                raise PersistenceError(f"No document {collection}/{key} to update", stage="persist")
            current.pop(field, None)
            self._write(path, current)

    def delete(self, collection: str, key: str) -> None:
        path = self._path(collection, key)
        with self._lock:
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                raise PersistenceError(f"Cannot delete {path}: {exc}", stage="persist") from exc

    def list(self, collection: str) -> List[Dict[str, Any]]:
        folder = self._root / collection
        if not folder.exists():
            return []
        with self._lock:
            docs = []
            for path in sorted(folder.glob("*.json")):
                # One unreadable document must not hide the rest of the collection.
                try:
                    doc = self._read(path)
                except PersistenceError as exc:
                    logger.error("[store] skipping %s: %s", path, exc)
                    continue
                if doc is not None:
                    docs.append(doc)
            return docs
