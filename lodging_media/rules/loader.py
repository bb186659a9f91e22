import copy
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from lodging_media.rules.models import MIB, MediaRules

_FOUR_SIZES = [
    {"name": "thumbnail", "max_dimension": 150},
    {"name": "small", "max_dimension": 320},
    {"name": "medium", "max_dimension": 800},
    {"name": "large", "max_dimension": 1600},
]

DEFAULT_RULES: dict[str, Any] = {
    "owner_kinds": {
        "unit": {
            "prefix": "units",
            "max_count": 20,
            "max_bytes": 10 * MIB,
            "renditions": _FOUR_SIZES,
        },
        "subunit": {
            "prefix": "subunits",
            "max_count": 15,
            "max_bytes": 10 * MIB,
            "renditions": [
                {"name": "thumbnail", "max_dimension": 150},
                {"name": "medium", "max_dimension": 800},
            ],
        },
        "registration": {
            "prefix": "registrations",
            "stage": "staging",
            "promotes_to": "unit",
            "max_count": 15,
            "max_bytes": 10 * MIB,
            "renditions": _FOUR_SIZES,
        },
        "offer": {
            "prefix": "offers",
            "max_count": 1,
            "max_bytes": 10 * MIB,
        },
        "department": {
            "prefix": "departments",
            "max_count": 1,
            "max_bytes": 10 * MIB,
        },
    },
    "encoding": {"format": "JPEG", "quality": 85},
    "store": {"backend": "s3"},
    "urls": {"default_expiry_minutes": 60, "max_expiry_minutes": 10080},
    "verify_promoted_copies": True,
}


def default_rules() -> MediaRules:
    """Built-in rules; rules.yaml at the project root mirrors these."""
    return MediaRules.model_validate(copy.deepcopy(DEFAULT_RULES))


def parse_rules(content: str) -> MediaRules:
    """
    Parse and validate rules text.
    Raises ValueError if the YAML or the schema is invalid.
    """
    # Robustly strip markdown code fences
    # Look for ```yaml starting block
    lines = content.splitlines()
    yaml_lines = []
    in_block = False
    found_block = False

    for line in lines:
        s_line = line.strip()
        if s_line.startswith("```yaml"):
            in_block = True
            found_block = True
            continue
        if in_block and s_line.startswith("```"):
            in_block = False
            break

        if in_block:
            yaml_lines.append(line)

    # If we found a block, use it. Otherwise assume the whole file is YAML
    if found_block:
        clean_content = "\n".join(yaml_lines)
    else:
        clean_content = content

    try:
        data = yaml.safe_load(clean_content)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML syntax in rules file: {e}") from e

    try:
        return MediaRules.model_validate(data)
    except ValidationError as e:
        # Re-raise with a clear message for the caller/logs
        raise ValueError(f"Rules validation failed:\n{e}") from e


def load_rules(path: Path) -> MediaRules:
    """
    Load and validate the rules file.
    Raises FileNotFoundError if file missing.
    Raises ValueError if syntax or schema invalid.
    """
    if not path.exists():
        raise FileNotFoundError(f"Rules file not found at: {path}")

    with open(path) as f:
        content = f.read()

    return parse_rules(content)
