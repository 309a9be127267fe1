"""Input parsing utilities for CLI commands."""

import json
from pathlib import Path
from typing import Any


def read_text_file(path: str) -> str:
    """Read a whole text file.

    Raises:
        FileNotFoundError: If file doesn't exist
    """
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    return file_path.read_text(encoding="utf-8")


def parse_record(value: str) -> dict[str, Any]:
    """Parse a record given inline as JSON or as ``@path/to/record.json``.

    Raises:
        ValueError: If the JSON is invalid or not an object
    """
    text = read_text_file(value[1:]) if value.startswith("@") else value
    try:
        record = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid record JSON: {e.msg}") from e
    if not isinstance(record, dict):
        raise ValueError("Record must be a JSON object mapping field API names to values")
    return record
