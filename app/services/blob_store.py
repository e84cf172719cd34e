"""
Raw feedback payloads on the local filesystem.

One JSON document per item under ``settings.blob_directory``, addressed by
a relative key such as ``feedback/<id>.json``. A payload is written to a
sibling temp file and renamed into place, so a reader sees either the old
document or the new one.
"""
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from app.config import settings

logger = logging.getLogger(__name__)

BLOB_PREFIX = "feedback"


def blob_key_for(item_id: str) -> str:
    return f"{BLOB_PREFIX}/{item_id}.json"


class FileBlobStore:

    def __init__(self, root: Optional[str] = None):
        self.root = Path(root or settings.blob_directory).resolve()

    def _resolve(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if not path.is_relative_to(self.root) or path == self.root:
            raise ValueError(f"Blob key escapes store root: {key!r}")
        return path

    def put(self, key: str, payload: Dict[str, Any]) -> None:
        target = self._resolve(key)
        target.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.stem}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as tmp:
                json.dump(payload, tmp, ensure_ascii=False)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug("blob_stored", extra={"blob.key": key})

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            return json.loads(self._resolve(key).read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None


_blob_store: Optional[FileBlobStore] = None


def get_blob_store() -> FileBlobStore:
    global _blob_store
    if _blob_store is None:
        _blob_store = FileBlobStore()
    return _blob_store
