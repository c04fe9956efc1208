"""Utility functions for loading schema snapshots.

A snapshot is the JSON (or YAML) dump of a Rails schema produced by the
backend introspection task. It can be read from disk or fetched over HTTP.
"""

import json
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import requests
import yaml

from .logging_config import get_logger

logger = get_logger(__name__)

YAML_SUFFIXES = {".yml", ".yaml"}


class SchemaLoaderError(Exception):
    """Raised when a schema snapshot cannot be read or parsed."""

    pass


def load_schema_from_file(file_path: str | Path) -> dict[str, Any]:
    """Load a schema snapshot from a local JSON or YAML file.

    Args:
        file_path: Path to the snapshot.

    Returns:
        The parsed snapshot mapping.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        SchemaLoaderError: If the file cannot be read or parsed.
    """
    file_path = Path(file_path)
    logger.debug("Loading schema snapshot from %s", file_path)

    if not file_path.exists():
        logger.error("Schema snapshot not found: %s", file_path)
        raise FileNotFoundError(f"Schema snapshot not found: {file_path}")

    try:
        text = file_path.read_text(encoding="utf-8")
    except OSError as e:
        logger.error("Error reading %s: %s", file_path, e, exc_info=True)
        raise SchemaLoaderError(f"Error reading {file_path}: {e}") from e

    try:
        if file_path.suffix.lower() in YAML_SUFFIXES:
            data = yaml.safe_load(text)
        else:
            data = json.loads(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        logger.error("Invalid schema snapshot %s: %s", file_path, e)
        raise SchemaLoaderError(f"Invalid schema snapshot {file_path}: {e}") from e

    if not isinstance(data, dict):
        raise SchemaLoaderError(
            f"Schema snapshot {file_path} must contain a mapping, got {type(data).__name__}"
        )

    logger.info("Loaded schema snapshot from %s", file_path)
    return data


def load_schema_from_url(url: str, timeout: int = 30) -> dict[str, Any]:
    """Fetch a schema snapshot from an HTTP(S) endpoint.

    Args:
        url: Endpoint returning the snapshot as JSON.
        timeout: Request timeout in seconds.

    Raises:
        ValueError: If the URL is malformed.
        SchemaLoaderError: If the request fails or the body isn't JSON.
    """
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"Invalid URL: {url}")

    logger.debug("Fetching schema snapshot from %s", url)
    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
        data = response.json()
    except requests.exceptions.Timeout as e:
        raise SchemaLoaderError(f"Request timed out after {timeout}s: {url}") from e
    except requests.exceptions.RequestException as e:
        raise SchemaLoaderError(f"Failed to fetch {url}: {e}") from e
    except ValueError as e:
        raise SchemaLoaderError(f"Invalid JSON from {url}: {e}") from e

    if not isinstance(data, dict):
        raise SchemaLoaderError(f"Schema snapshot from {url} must be a JSON object")

    logger.info("Fetched schema snapshot from %s", url)
    return data


def load_schema(source: str | Path) -> dict[str, Any]:
    """Load a snapshot from either a URL or a file path."""
    if isinstance(source, str) and source.startswith(("http://", "https://")):
        return load_schema_from_url(source)
    return load_schema_from_file(source)
