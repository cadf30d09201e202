"""
Image fingerprinting.

Content-derived cache keys for meal photos. SHA-256 is used for
collision resistance only; the key is not a security control.

Only in-process callers may hand over a `Path`. Strings (URLs, data
URIs, anything arriving from a request body) are hashed as text and
never resolved against the local filesystem.
"""

from __future__ import annotations

import asyncio
import hashlib
from pathlib import Path
from typing import Union

import structlog

logger = structlog.get_logger(__name__)

ImageSource = Union[bytes, str, Path]


def _digest(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def fingerprint(source: ImageSource) -> str:
    """Compute a deterministic SHA-256 fingerprint for an image.

    - bytes: digest of the bytes
    - Path: digest of the file contents
    - str (URL, data URI, any reference): digest of the string itself

    Args:
        source: Raw image bytes, a local Path, or a URI string

    Returns:
        Hex digest (64 chars)

    Raises:
        OSError: If a local file cannot be read

    Example:
        >>> fingerprint(b"jpeg-bytes") == fingerprint(b"jpeg-bytes")
        True
    """
    if isinstance(source, (bytes, bytearray)):
        return _digest(bytes(source))

    if isinstance(source, Path):
        return _digest(source.read_bytes())

    return _digest(str(source).encode("utf-8"))


def fingerprint_or_fallback(source: ImageSource) -> str:
    """Fingerprint an image, degrading to the raw reference on failure.

    A weaker key only costs a cache miss, so hashing failures never
    abort the analysis flow.

    Args:
        source: Raw image bytes, a local Path, or a URI string

    Returns:
        Hex digest, or the path string when the file could not be read
    """
    try:
        return fingerprint(source)
    except OSError as e:
        logger.warning(
            "Image fingerprint failed, using raw path as cache key",
            source=str(source),
            error=str(e),
        )
        return str(source)


async def fingerprint_async(source: ImageSource) -> str:
    """`fingerprint_or_fallback`, with file reads moved off the event loop."""
    if isinstance(source, Path):
        return await asyncio.to_thread(fingerprint_or_fallback, source)
    return fingerprint_or_fallback(source)
