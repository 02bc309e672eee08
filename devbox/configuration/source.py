"""Configuration document source resolution.

A document comes from exactly one of: a URI, a local file, or an inline
value passed on the command line.
"""

import json
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional
from urllib.parse import urlparse
from urllib.request import url2pathname

import httpx
import structlog

from devbox.common.errors import InvalidInputError, MissingConfigurationError

logger = structlog.get_logger(__name__)


class SourceKind(str, Enum):
    """Kind of location a configuration path refers to."""

    URI = "uri"
    FILE = "file"


def is_absolute_uri(value: str) -> bool:
    """Check whether a string is a well-formed absolute URI.

    A scheme of a single letter is a Windows drive ("C:\\..."), not a URI.
    """
    parsed = urlparse(value)
    if len(parsed.scheme) < 2 or any(ch.isspace() for ch in value):
        return False
    if parsed.scheme == "file":
        return bool(parsed.path)
    return bool(parsed.netloc)


def classify_source(configuration_path: str) -> SourceKind:
    """Classify a configuration path as a URI or an existing file.

    Raises:
        InvalidInputError: If the path is neither.
    """
    if is_absolute_uri(configuration_path):
        return SourceKind.URI
    if Path(configuration_path).is_file():
        return SourceKind.FILE
    raise InvalidInputError(
        f"Configuration path {configuration_path!r} is neither an absolute URI "
        "nor an existing file"
    )


def fetch_uri(uri: str, timeout: float = 30.0) -> str:
    """Return the text behind a URI.

    file: URIs are read from disk; anything else is fetched over HTTP.

    Raises:
        InvalidInputError: If the content cannot be retrieved.
    """
    parsed = urlparse(uri)
    if parsed.scheme == "file":
        local_path = Path(url2pathname(parsed.path))
        try:
            return local_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise InvalidInputError(f"Cannot read {uri}: {exc}") from exc

    try:
        response = httpx.get(uri, timeout=timeout, follow_redirects=True)
        response.raise_for_status()
    except httpx.HTTPError as exc:
        raise InvalidInputError(f"Cannot fetch {uri}: {exc}") from exc
    return response.text


def coerce_to_text(value: Any) -> str:
    """Turn an inline configuration value into document text."""
    if isinstance(value, str):
        return value
    if isinstance(value, bytes):
        return value.decode("utf-8")
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, indent=2)
    return str(value)


def resolve_configuration(
    configuration_path: Optional[str] = None,
    inline_configuration: Any = None,
    fetch: Callable[[str], str] = fetch_uri,
) -> str:
    """Produce the configuration document from the supplied source.

    Args:
        configuration_path: URI or local file path.
        inline_configuration: Document text or a structured value.
        fetch: Function retrieving URI content, replaceable in tests.

    Returns:
        The configuration document text.

    Raises:
        InvalidInputError: If both sources are given, or the path is
            neither a URI nor an existing file.
        MissingConfigurationError: If no source is given.
    """
    has_path = bool(configuration_path)
    has_inline = inline_configuration is not None and inline_configuration != ""

    if has_path and has_inline:
        raise InvalidInputError(
            "configuration path and inline configuration are mutually exclusive"
        )

    if has_path:
        kind = classify_source(configuration_path)
        logger.info("Resolving configuration", source=kind.value, path=configuration_path)
        if kind is SourceKind.URI:
            return fetch(configuration_path)
        try:
            return Path(configuration_path).read_text(encoding="utf-8")
        except OSError as exc:
            raise InvalidInputError(f"Cannot read {configuration_path}: {exc}") from exc

    if has_inline:
        logger.info("Using inline configuration")
        return coerce_to_text(inline_configuration)

    raise MissingConfigurationError(
        "Either a configuration path or inline configuration is required"
    )
