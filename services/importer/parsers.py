"""
Input file parsing - CSV or JSON clinic lists into raw records.

Headers/keys are loosely matched: lowercased, stripped of punctuation, then
aliased (address1 -> address, phonenumber -> phone, zipcode -> zip, ...).
"""

import csv
import io
import json
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from loguru import logger

from services.importer.models import RawRecord


HEADER_ALIASES = {
    "address1": "address",
    "streetaddress": "address",
    "street": "address",
    "phonenumber": "phone",
    "telephone": "phone",
    "zipcode": "zip",
    "postalcode": "zip",
    "clinicname": "name",
    "businessname": "name",
    "websiteurl": "website",
    "url": "website",
    "package": "tier",
    "plan": "tier",
}

DEFAULT_SAMPLE_PATHS = (
    "data/sample-clinics.csv",
    "sample-clinics.csv",
    "data/sample-clinics.json",
    "sample-clinics.json",
)


def normalize_key(key: Any) -> str:
    cleaned = re.sub(r"[^a-z0-9]", "", str(key).lower())
    return HEADER_ALIASES.get(cleaned, cleaned)


def _normalize_row(row: Dict[Any, Any]) -> Optional[RawRecord]:
    record = {}
    for key, value in row.items():
        if key is None:
            continue  # extra unnamed CSV columns
        record[normalize_key(key)] = value.strip() if isinstance(value, str) else value
    if not any(v not in (None, "") for v in record.values()):
        return None
    return record


def parse_csv(content: str, delimiter: str = ",") -> List[RawRecord]:
    reader = csv.DictReader(io.StringIO(content), delimiter=delimiter)
    records = []
    for row in reader:
        record = _normalize_row(row)
        if record is not None:
            records.append(record)
    return records


def parse_json(content: str) -> List[RawRecord]:
    """Accept a single object or an array of objects."""
    data = json.loads(content)
    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list):
        raise ValueError("JSON input must be an object or an array of objects")

    records = []
    for i, item in enumerate(data):
        if not isinstance(item, dict):
            logger.warning(f"Skipping JSON item {i}: not an object")
            continue
        record = _normalize_row(item)
        if record is not None:
            records.append(record)
    return records


def detect_format(path: Union[str, Path], content: str) -> str:
    """Extension first, then the first non-blank character."""
    suffix = Path(path).suffix.lower()
    if suffix == ".csv":
        return "csv"
    if suffix == ".json":
        return "json"
    return "json" if content.lstrip()[:1] in ("[", "{") else "csv"


def parse_content(content: str, path: Union[str, Path] = "") -> List[RawRecord]:
    if detect_format(path, content) == "json":
        return parse_json(content)
    return parse_csv(content)


def parse_input_file(path: Union[str, Path]) -> List[RawRecord]:
    """
    Read and parse an input file.

    Raises:
        FileNotFoundError: path does not exist
        ValueError: JSON content is malformed or has the wrong shape
    """
    file_path = Path(path)
    content = file_path.read_text(encoding="utf-8-sig")
    records = parse_content(content, file_path)
    logger.info(f"Parsed {len(records)} records from {file_path.name}")
    return records


def find_default_input(base_dir: Union[str, Path] = ".") -> Optional[Path]:
    """First existing sample file from the default search path."""
    base = Path(base_dir)
    for candidate in DEFAULT_SAMPLE_PATHS:
        path = base / candidate
        if path.is_file():
            return path
    return None
