"""Canned API payloads for running the pipeline offline."""

import json
from pathlib import Path
from typing import Any, Optional

from ..shared.models import DecodeError

TESTDATA_DIR = Path(__file__).resolve().parent.parent / "testdata"


class FixtureDataError(Exception):
    """Fixture file is missing."""
    pass


def load_fixture(filename: str, testdata_dir: Optional[str] = None) -> Any:
    """
    Load a JSON fixture such as ``metrics.json``.

    Args:
        filename: File name inside the testdata directory
        testdata_dir: Override for the packaged testdata directory

    Returns:
        Decoded JSON document
    """
    directory = Path(testdata_dir) if testdata_dir else TESTDATA_DIR
    path = directory / filename
    if not path.is_file():
        raise FixtureDataError(f"Test data file not found: {path}")

    with open(path, 'r', encoding='utf-8') as file:
        try:
            return json.load(file)
        except json.JSONDecodeError as e:
            raise DecodeError(f"Invalid JSON in test data file {path}: {e}") from e
