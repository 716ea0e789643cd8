# yaml_parser.py
import logging
from typing import Any

import yaml
from pydantic import ValidationError

from models import BookSpecModel

logger = logging.getLogger(__name__)


def normalize_keys_recursive(data: Any) -> Any:
    """
    Recursively normalizes keys in a dictionary to lowercase and replaces spaces
    with underscores, so "Core Argument" and "core_argument" are read alike.
    """
    if isinstance(data, dict):
        return {
            str(key).lower().replace(" ", "_"): normalize_keys_recursive(value)
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [normalize_keys_recursive(item) for item in data]
    return data


def load_yaml_file(filepath: str, normalize_keys: bool = True) -> dict[str, Any] | None:
    """
    Loads and parses a YAML file.

    Args:
        filepath: Path to the YAML file.
        normalize_keys: Whether to recursively normalize dictionary keys
                        (lowercase, spaces to underscores). Defaults to True.

    Returns:
        A dictionary representing the YAML content, an empty dictionary for an
        empty file, or None if the file is missing or cannot be parsed.
    """
    if not filepath.endswith((".yaml", ".yml")):
        logger.error(f"File specified is not a YAML file: {filepath}")
        return None
    try:
        with open(filepath, encoding="utf-8") as f:
            content = yaml.safe_load(f)
    except FileNotFoundError:
        logger.warning(f"YAML file '{filepath}' not found.")
        return None
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Error reading YAML file {filepath}: {e}", exc_info=True)
        return None

    if content is None:
        return {}
    if not isinstance(content, dict):
        logger.error(
            f"YAML file {filepath} must have a dictionary as its root element, got {type(content).__name__}."
        )
        return None
    return normalize_keys_recursive(content) if normalize_keys else content


def load_book_spec(filepath: str) -> BookSpecModel | None:
    """Load and validate a book description file.

    Returns None when the file cannot be read or does not describe a book.
    """
    content = load_yaml_file(filepath)
    if not content:
        return None
    try:
        spec = BookSpecModel.model_validate(content)
    except ValidationError as e:
        logger.error(f"Invalid book file {filepath}: {e}")
        return None
    if not spec.units:
        logger.warning(f"Book file {filepath} lists no units.")
    return spec
