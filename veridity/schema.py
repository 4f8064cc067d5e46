"""JSON Schema validation infrastructure.

Schemas ship inside the package under ``veridity/schemas`` and are addressed
by file name (e.g. ``zkproof.schema.json``). Validators are cached.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any, List

from jsonschema import Draft202012Validator

from veridity.core import PACKAGE_ROOT, load_json

SCHEMAS_DIR = PACKAGE_ROOT / "schemas"

ZKPROOF_SCHEMA = "zkproof.schema.json"
VERIFICATION_KEY_SCHEMA = "verification-key.schema.json"


@lru_cache(maxsize=None)
def schema_validator(schema_name: str) -> Draft202012Validator:
    """Create a validator for a bundled schema file.

    Raises:
        FileNotFoundError: when no schema with that name is bundled
    """
    schema_path = SCHEMAS_DIR / schema_name
    if not schema_path.is_file():
        raise FileNotFoundError(f"schema not found: {schema_path}")
    schema = load_json(schema_path)
    Draft202012Validator.check_schema(schema)
    return Draft202012Validator(schema)


def validate_against_schema(obj: Any, schema_name: str) -> List[str]:
    """Validate an object against a bundled schema.

    Returns:
        List of validation error messages (empty if valid)
    """
    validator = schema_validator(schema_name)
    return [
        f"{error.json_path}: {error.message}"
        for error in sorted(validator.iter_errors(obj), key=lambda e: e.json_path)
    ]
