"""
Parse raw model output and check it against the versioned schema documents.
"""

import json
import math
import os
import re
from functools import lru_cache

import yaml
from jsonschema import Draft202012Validator

from swolegen.errors import SchemaValidationError

KIND_ANALYZER_PLAN = "analyzer_plan"
KIND_WORKOUT = "workout"

SCHEMAS_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "schemas")
SCHEMA_FILES = {
    KIND_ANALYZER_PLAN: "analyzer-v1.json",
    KIND_WORKOUT: "workout-v1.2.json",
}

# Error prefixes match the wire format each artifact is requested in.
ERROR_LABELS = {
    KIND_ANALYZER_PLAN: "analyzer json",
    KIND_WORKOUT: "workout yaml",
}

FENCE_OPEN_RE = re.compile(r"^```\w*\n?")
FENCE_CLOSE_RE = re.compile(r"\n?```$")


class _WorkoutLoader(yaml.SafeLoader):
    """SafeLoader that leaves ISO dates as strings."""


_WorkoutLoader.yaml_implicit_resolvers = {
    first: [
        resolver
        for resolver in resolvers
        if resolver[0] != "tag:yaml.org,2002:timestamp"
    ]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


@lru_cache(maxsize=None)
def load_schema_text(kind):
    """Return the raw schema document for ``kind``."""
    if kind not in SCHEMA_FILES:
        raise ValueError(f"unknown artifact kind: {kind}")
    with open(os.path.join(SCHEMAS_DIR, SCHEMA_FILES[kind]), "r") as f:
        return f.read()


@lru_cache(maxsize=None)
def _validator(kind):
    return Draft202012Validator(json.loads(load_schema_text(kind)))


def strip_code_fences(text):
    text = (text or "").strip()
    if text.startswith("```"):
        text = FENCE_OPEN_RE.sub("", text)
        text = FENCE_CLOSE_RE.sub("", text)
        text = text.strip()
    return text


def _reject_constant(token):
    raise ValueError(f"non-finite number {token} is not valid JSON")


def _check_finite(value):
    if isinstance(value, float) and not math.isfinite(value):
        raise ValueError(f"non-finite number {value} is not allowed")
    if isinstance(value, dict):
        for item in value.values():
            _check_finite(item)
    elif isinstance(value, list):
        for item in value:
            _check_finite(item)


def _parse(kind, raw_text):
    text = strip_code_fences(raw_text)
    if kind == KIND_WORKOUT:
        value = yaml.load(text, Loader=_WorkoutLoader)
        _check_finite(value)
        return value
    return json.loads(text, parse_constant=_reject_constant)


def _error_path(error):
    parts = [str(part) for part in error.absolute_path]
    return "/".join(parts) if parts else "(root)"


def schema_errors(kind, instance):
    """List every constraint ``instance`` breaks as ``<path>: <message>``."""
    errors = sorted(
        _validator(kind).iter_errors(instance),
        key=lambda e: [str(part) for part in e.absolute_path],
    )
    return [f"{_error_path(error)}: {error.message}" for error in errors]


def validate_artifact(kind, raw_text):
    """
    Parse ``raw_text`` as the artifact ``kind`` and validate it.

    Args:
        kind: KIND_ANALYZER_PLAN or KIND_WORKOUT
        raw_text: Raw provider output

    Returns:
        The parsed value (a dict) when it conforms to the schema.

    Raises:
        SchemaValidationError: on malformed syntax or any schema violation.
    """
    label = ERROR_LABELS.get(kind)
    if label is None:
        raise ValueError(f"unknown artifact kind: {kind}")

    try:
        value = _parse(kind, raw_text)
    except (ValueError, yaml.YAMLError) as exc:
        detail = " ".join(str(exc).split())
        raise SchemaValidationError(
            kind, f"{label} parse: {detail}", details=[detail], parse_error=True
        ) from exc

    details = schema_errors(kind, value)
    if details:
        raise SchemaValidationError(kind, f"{label} invalid: " + "; ".join(details), details=details)
    return value


def validate_value(kind, value):
    """Validate an already-decoded value; returns it unchanged on success."""
    try:
        _check_finite(value)
    except ValueError as exc:
        raise SchemaValidationError(kind, f"{ERROR_LABELS[kind]} invalid: {exc}", details=[str(exc)]) from exc
    details = schema_errors(kind, value)
    if details:
        raise SchemaValidationError(kind, f"{ERROR_LABELS[kind]} invalid: " + "; ".join(details), details=details)
    return value
