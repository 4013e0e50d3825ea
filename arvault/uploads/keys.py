"""File categories, object key generation and content-type inference."""

from __future__ import annotations

import mimetypes
import re
import time
import uuid

CATEGORY_EXTENSIONS: dict[str, frozenset[str]] = {
    "model": frozenset({"glb", "gltf", "usdz"}),
    "image": frozenset({"png", "jpg", "jpeg", "svg", "webp"}),
    "video": frozenset({"mp4", "webm", "mov"}),
    "pdf": frozenset({"pdf"}),
}
DEFAULT_CATEGORY = "document"

# Types mimetypes does not know, or guesses wrong, for 3D formats
_EXTRA_CONTENT_TYPES = {
    "glb": "model/gltf-binary",
    "gltf": "model/gltf+json",
    "usdz": "model/vnd.usdz+zip",
}

KEY_PATTERN = re.compile(
    r"^(?:model|image|video|pdf|document)/\d{13,}_[0-9a-f]{32}(?:\.[a-z0-9]{1,16})?$"
)


def file_extension(filename: str) -> str:
    """Lower-cased extension without the dot, or ``""``."""
    name = filename.rsplit("/", 1)[-1]
    if "." not in name.strip("."):
        return ""
    return name.rsplit(".", 1)[-1].lower()


def base_name(filename: str) -> str:
    """Filename without directory or extension, lower-cased."""
    name = filename.rsplit("/", 1)[-1]
    ext = file_extension(name)
    if ext:
        name = name[: -(len(ext) + 1)]
    return name.lower()


def category_for(filename: str) -> str:
    ext = file_extension(filename)
    for category, extensions in CATEGORY_EXTENSIONS.items():
        if ext in extensions:
            return category
    return DEFAULT_CATEGORY


def generate_key(filename: str, now_ms: int | None = None) -> str:
    """Build ``{category}/{millis}_{random}.{ext}``.

    Time plus 128 random bits makes keys collision-free without locking.
    """
    ext = file_extension(filename)
    if ext and not re.fullmatch(r"[a-z0-9]{1,16}", ext):
        ext = ""
    millis = now_ms if now_ms is not None else int(time.time() * 1000)
    key = f"{category_for(filename)}/{millis}_{uuid.uuid4().hex}"
    return f"{key}.{ext}" if ext else key


def is_valid_key(key: str) -> bool:
    return bool(KEY_PATTERN.match(key))


def guess_content_type(key: str, stored: str | None = None) -> str:
    """Prefer the stored content type, then infer from the extension."""
    if stored and stored != "application/octet-stream":
        return stored
    ext = file_extension(key)
    if ext in _EXTRA_CONTENT_TYPES:
        return _EXTRA_CONTENT_TYPES[ext]
    guessed, _ = mimetypes.guess_type(f"file.{ext}") if ext else (None, None)
    return guessed or stored or "application/octet-stream"
