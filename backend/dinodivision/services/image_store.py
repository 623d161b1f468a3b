"""
Filesystem content store for generated reward images.

One file per subject slug: <dir>/<slug>.<ext>. Writing a new artifact for a
slug removes siblings stored under a different extension.
"""
from __future__ import annotations

import base64
import binascii
import logging
import os
import re
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger("dinodivision.image_store")

SUPPORTED_EXTENSIONS: tuple[str, ...] = ("png", "jpg", "webp", "gif")

_EXTENSION_BY_MIME: dict[str, str] = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
}

MIME_BY_EXTENSION: dict[str, str] = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "webp": "image/webp",
    "gif": "image/gif",
}

_SLUG_SEPARATORS = re.compile(r"[^a-z0-9]+")


def slugify(subject_name: str) -> str:
    """'  Tyrannosaurus Rex! ' -> 'tyrannosaurus-rex'."""
    slug = _SLUG_SEPARATORS.sub("-", subject_name.strip().casefold()).strip("-")
    if not slug:
        raise ValueError(f"subject name {subject_name!r} has no alphanumeric characters")
    return slug


def extension_for_mime(mime_type: str) -> str:
    normalized = (mime_type or "").strip().lower()
    if not normalized.startswith("image/"):
        raise ValueError(f"Unsupported image MIME type: {mime_type!r}")
    return _EXTENSION_BY_MIME.get(normalized, "png")


def decode_base64_image(data: str) -> bytes:
    payload = (data or "").strip()
    if not payload:
        raise ValueError("image data must be non-empty base64")
    try:
        raw = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("image data must be valid base64") from exc
    if not raw:
        raise ValueError("image data decoded to zero bytes")
    return raw


@dataclass(frozen=True)
class StoredImage:
    slug: str
    path: Path
    mime_type: str

    @property
    def file_name(self) -> str:
        return self.path.name


class ImageContentStore:
    def __init__(self, root: str | Path, url_prefix: str = "/rewards"):
        self.root = Path(root)
        self.url_prefix = "/" + url_prefix.strip("/")

    def _path(self, slug: str, extension: str) -> Path:
        return self.root / f"{slug}.{extension}"

    def find(self, slug: str) -> Optional[StoredImage]:
        for ext in SUPPORTED_EXTENSIONS:
            path = self._path(slug, ext)
            if path.is_file():
                return StoredImage(slug=slug, path=path, mime_type=MIME_BY_EXTENSION[ext])
        return None

    def exists(self, slug: str) -> bool:
        return self.find(slug) is not None

    def read_base64(self, stored: StoredImage) -> str:
        return base64.b64encode(stored.path.read_bytes()).decode("ascii")

    def write(self, slug: str, mime_type: str, data_base64: str) -> StoredImage:
        """Decode and atomically write an artifact, then drop stale siblings."""
        ext = extension_for_mime(mime_type)
        raw = decode_base64_image(data_base64)
        self.root.mkdir(parents=True, exist_ok=True)
        target = self._path(slug, ext)

        fd, tmp = tempfile.mkstemp(dir=self.root, prefix=f".{slug}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(raw)
            os.replace(tmp, target)
        except OSError:
            Path(tmp).unlink(missing_ok=True)
            raise

        for other in SUPPORTED_EXTENSIONS:
            if other == ext:
                continue
            stale = self._path(slug, other)
            if stale.exists():
                logger.info("[image_store.write] removing stale %s", stale.name)
                stale.unlink(missing_ok=True)

        return StoredImage(slug=slug, path=target, mime_type=MIME_BY_EXTENSION[ext])

    def public_path(self, stored: StoredImage, cache_bust: bool = True) -> str:
        path = f"{self.url_prefix}/{stored.file_name}"
        if not cache_bust:
            return path
        return f"{path}?v={stored.path.stat().st_mtime_ns}"
