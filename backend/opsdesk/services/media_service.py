# Overview: Image uploads (product photos, avatars) stored under UPLOAD_FOLDER.

"""
Media Service

Given an uploaded file, verify it is an image, store it under the upload
folder and return the public URL it is served from. Anything that does not
open as an image is refused with MediaError.
"""

from __future__ import annotations

import io
import logging
import os
import uuid
from contextlib import contextmanager

from flask import current_app
from PIL import Image, UnidentifiedImageError


logger = logging.getLogger(__name__)

ALLOWED_FORMATS = {"JPEG": "jpg", "PNG": "png", "WEBP": "webp", "GIF": "gif"}
MEDIA_KINDS = ("products", "avatars")
AVATAR_MAX_SIDE = 512
RESAMPLE_LANCZOS = Image.Resampling.LANCZOS


class MediaError(ValueError):
    """Upload rejected."""


def upload_root() -> str:
    return current_app.config["UPLOAD_FOLDER"]


def _public_url(kind: str, filename: str) -> str:
    base = current_app.config.get("MEDIA_BASE_URL", "/media").rstrip("/")
    return f"{base}/{kind}/{filename}"


def store_upload(file_storage, kind: str = "products") -> str:
    """
    Save an uploaded image and return its public URL.

    Avatars are shrunk to fit AVATAR_MAX_SIDE. Other images are stored as
    received once Pillow has verified them.
    """
    if kind not in MEDIA_KINDS:
        raise MediaError(f"Unknown media kind '{kind}'")
    if file_storage is None or not getattr(file_storage, "filename", ""):
        raise MediaError("No file uploaded")

    data = file_storage.read()
    if not data:
        raise MediaError("Uploaded file is empty")

    try:
        with Image.open(io.BytesIO(data)) as candidate:
            candidate.verify()
        image = Image.open(io.BytesIO(data))
    except (UnidentifiedImageError, OSError, SyntaxError):
        raise MediaError("Uploaded file is not a supported image")

    with image:
        fmt = (image.format or "").upper()
        if fmt not in ALLOWED_FORMATS:
            raise MediaError(f"Unsupported image format: {fmt or 'unknown'}")

        folder = os.path.join(upload_root(), kind)
        os.makedirs(folder, exist_ok=True)
        filename = f"{uuid.uuid4().hex}.{ALLOWED_FORMATS[fmt]}"
        path = os.path.join(folder, filename)

        if kind == "avatars" and max(image.size) > AVATAR_MAX_SIDE:
            image.thumbnail((AVATAR_MAX_SIDE, AVATAR_MAX_SIDE), RESAMPLE_LANCZOS)
            image.save(path, format=fmt)
        else:
            with open(path, "wb") as fh:
                fh.write(data)
        width, height = image.size

    logger.info("Stored %s upload %s (%s, %dx%d)", kind, filename, fmt, width, height)
    return _public_url(kind, filename)


def discard(url: str | None) -> bool:
    """Delete a stored upload by its public URL. Returns True when a file was removed."""
    if not url:
        return False
    parts = url.rstrip("/").rsplit("/", 2)
    if len(parts) < 3:
        return False
    kind, filename = parts[1], parts[2]
    path = resolve_path(kind, filename)
    if path is None:
        return False
    os.remove(path)
    logger.info("Discarded %s upload %s", kind, filename)
    return True


@contextmanager
def staged_upload(file_storage, kind: str = "products"):
    """
    Store an optional upload for the duration of a write.

    Yields the public URL (None when no file was sent). If the block
    raises, the stored file is deleted and the exception propagates.
    """
    url = None
    if file_storage is not None and getattr(file_storage, "filename", ""):
        url = store_upload(file_storage, kind)
    try:
        yield url
    except Exception:
        discard(url)
        raise


def resolve_path(kind: str, filename: str) -> str | None:
    """Filesystem path for a stored upload, or None if it does not exist."""
    if kind not in MEDIA_KINDS:
        return None
    safe_name = os.path.basename(filename)
    if safe_name != filename:
        return None
    path = os.path.join(upload_root(), kind, safe_name)
    return path if os.path.isfile(path) else None
