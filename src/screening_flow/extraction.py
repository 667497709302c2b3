"""Path extraction — pull a question's value out of an external record payload.

Questions carry an ``external_mapping.path`` such as ``Observation.ldl``
or ``Condition.diabetes``.  Known paths are looked up in ``_EXTRACTORS``,
which knows the concrete keys the external source uses for them (e.g.
``asthma_copd_diagnosis``) and how to search the parsed lab results.
Unknown paths fall back to a generic dotted lookup:

  1. ``payload[field]``               (``{"ldl": 110}``)
  2. ``payload[Resource][field]``     (``{"Observation": {"ldl": 110}}``)
  3. a nested walk over every segment
  4. ``payload[first segment]``

Extraction never raises on malformed payloads; anything unexpected reads
as "not present".
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from screening_flow.models.fast_path import FetchResult, Found, NotFound
from screening_flow.models.question import Question

logger = logging.getLogger(__name__)

# Keys under which a parsed record lists lab observations
_LAB_KEYS = ("lab_results", "labResults")
_MEDICATION_KEYS = ("medications",)


# ---------------------------------------------------------------------------
# Lookup helpers
# ---------------------------------------------------------------------------

def _first_key(payload: dict, *keys: str) -> Any:
    for key in keys:
        value = payload.get(key)
        if value is not None:
            return value
    return None


def _list_at(payload: dict, keys: tuple[str, ...]) -> list:
    for key in keys:
        value = payload.get(key)
        if isinstance(value, list):
            return value
    return []


def _lab_value(payload: dict, *names: str) -> Any:
    """Most recent lab result whose test name contains any of ``names``."""
    wanted = [n.lower() for n in names]
    matches = []
    for entry in _list_at(payload, _LAB_KEYS):
        if not isinstance(entry, dict):
            continue
        test = str(entry.get("test") or entry.get("name") or "").lower()
        if any(n in test for n in wanted) and entry.get("value") is not None:
            matches.append(entry)
    if not matches:
        return None
    # ISO dates sort lexically; undated entries rank last
    matches.sort(key=lambda e: str(e.get("date") or ""), reverse=True)
    return matches[0]["value"]


def _active_medications(payload: dict) -> list[str] | None:
    names = [
        str(m.get("name"))
        for m in _list_at(payload, _MEDICATION_KEYS)
        if isinstance(m, dict) and m.get("name") and m.get("status", "active") == "active"
    ]
    return names or None


def _keys(*keys: str) -> Callable[[dict], Any]:
    return lambda payload: _first_key(payload, *keys)


def _keys_or_lab(keys: tuple[str, ...], lab_names: tuple[str, ...]) -> Callable[[dict], Any]:
    def extract(payload: dict) -> Any:
        value = _first_key(payload, *keys)
        if value is not None:
            return value
        return _lab_value(payload, *lab_names)
    return extract


# Known paths and how the external source reports them.
_EXTRACTORS: dict[str, Callable[[dict], Any]] = {
    "Condition.asthma_copd": _keys("asthma_copd_diagnosis", "asthma_copd"),
    "Condition.diabetes": _keys("diabetes_diagnosis", "diabetes"),
    "Observation.ldl": _keys_or_lab(("ldl", "ldl_cholesterol"), ("ldl",)),
    "Observation.a1c": _keys_or_lab(("a1c", "hba1c"), ("a1c", "hemoglobin a1c")),
    "Patient.age": _keys("age"),
    "Patient.age_verified": _keys("age_verified"),
    "Encounter.recent_checkup": _keys("recent_checkup"),
    "MedicationStatement.active": _active_medications,
}


def _generic_lookup(payload: dict, path: str) -> Any:
    parts = path.split(".")

    if len(parts) == 2:
        resource, field = parts
        if payload.get(field) is not None:
            return payload[field]
        nested = payload.get(resource)
        if isinstance(nested, dict) and nested.get(field) is not None:
            return nested[field]

    node: Any = payload
    for part in parts:
        if not isinstance(node, dict) or part not in node:
            node = None
            break
        node = node[part]
    if node is not None:
        return node

    return payload.get(parts[0])


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def extract_value(payload: dict | None, path: str | None) -> Any | None:
    """Return the value at ``path`` in ``payload``, or None if absent."""
    if not payload or not path or not isinstance(payload, dict):
        return None

    extractor = _EXTRACTORS.get(path)
    if extractor is not None:
        value = extractor(payload)
        if value is not None:
            return value

    return _generic_lookup(payload, path)


def resolve(question: Question, payload: dict | None) -> FetchResult:
    """Resolve one question against an external payload."""
    mapping = question.external_mapping
    if mapping is None:
        return NotFound(question_id=question.id)

    value = extract_value(payload, mapping.path)
    if value is None:
        logger.debug("No value for %s at %s", question.id, mapping.path)
        return NotFound(question_id=question.id)
    return Found(question_id=question.id, value=value)
