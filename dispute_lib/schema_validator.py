"""JSON Schema checks for snapshot files and incoming dispute payloads."""

import json
from functools import lru_cache
from importlib.resources import files
from typing import Any, Dict, List

from jsonschema import Draft7Validator

from .errors import InvalidDisputeError, SnapshotIntegrityError

SNAPSHOT_SCHEMA = "snapshot.schema.json"
DISPUTE_REQUEST_SCHEMA = "dispute_request.schema.json"


@lru_cache(maxsize=None)
def _validator(schema_name: str) -> Draft7Validator:
    """Load a bundled schema from dispute_lib/schemas and build its validator."""
    schema_file = files("dispute_lib").joinpath("schemas").joinpath(schema_name)
    with schema_file.open("r") as f:
        schema = json.load(f)
    Draft7Validator.check_schema(schema)
    return Draft7Validator(schema)


def collect_violations(schema_name: str, instance: Any) -> List[str]:
    """
    Return every schema violation as "path: message", in document order.

    Args:
        schema_name: File name of a bundled schema
        instance: Parsed JSON document

    Returns:
        List of violation strings, empty if the document is valid
    """
    errors = sorted(_validator(schema_name).iter_errors(instance), key=lambda e: list(e.path))
    violations = []
    for error in errors:
        error_path = " -> ".join(str(p) for p in error.path) if error.path else "root"
        violations.append(f"{error_path}: {error.message}")
    return violations


def validate_snapshot(document: Dict[str, Any], source: str = "<memory>") -> None:
    """
    Check a raw snapshot document before it reaches the core.

    Raises:
        SnapshotIntegrityError: If the document does not match the snapshot schema
    """
    violations = collect_violations(SNAPSHOT_SCHEMA, document)
    if violations:
        raise SnapshotIntegrityError(source, violations)


def validate_dispute_request(payload: Dict[str, Any]) -> None:
    """
    Check an incoming dispute payload (loanId, disputeIndex, state, createdAt).

    Raises:
        InvalidDisputeError: Listing every violation found
    """
    violations = collect_violations(DISPUTE_REQUEST_SCHEMA, payload)
    if violations:
        raise InvalidDisputeError(f"Dispute validation failed: {'; '.join(violations)}")
