"""Subscription criteria parsing and evaluation.

Criteria follow a small subset of FHIR search syntax:
``<ResourceType>?<key>=<value>&<key>=<value>``. Every parameter must match for the
criteria to match, and a parameter name we do not understand makes the whole
criteria fail rather than being ignored.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Tuple
from urllib.parse import unquote_plus

from fhirhook.errors import InvalidCriteria


@dataclass(frozen=True)
class ParsedCriteria:
    resource_type: str
    params: Tuple[Tuple[str, str], ...] = ()


def parse_criteria(criteria: str) -> ParsedCriteria:
    """Split criteria into the resource type and ordered (key, value) pairs."""
    resource_type, _, query_string = criteria.partition("?")
    params = []
    for piece in query_string.split("&"):
        if not piece:
            continue
        key, _, value = piece.partition("=")
        params.append((unquote_plus(key), unquote_plus(value)))
    return ParsedCriteria(resource_type=resource_type, params=tuple(params))


def _child(node: Any, name: str) -> Any:
    if isinstance(node, Mapping):
        return node.get(name)
    return None


def _match_profile(resource: Mapping[str, Any], value: str) -> bool:
    profiles = _child(_child(resource, "meta"), "profile")
    if not isinstance(profiles, (list, tuple)):
        return False
    return value in profiles


def _match_status(resource: Mapping[str, Any], value: str) -> bool:
    return resource.get("status") == value


def _match_code(resource: Mapping[str, Any], value: str) -> bool:
    codings = _child(_child(resource, "code"), "coding")
    if not isinstance(codings, (list, tuple)):
        return False
    return any(_child(coding, "code") == value for coding in codings)


def _match_subject(resource: Mapping[str, Any], value: str) -> bool:
    # Accepts "Patient/123" as well as the bare id "123".
    reference = _child(_child(resource, "subject"), "reference")
    if not isinstance(reference, str):
        return False
    return reference == value or reference.endswith(f"/{value}")


def _match_active(resource: Mapping[str, Any], value: str) -> bool:
    active = resource.get("active")
    if not isinstance(active, bool):
        return False
    return active == (value == "true")


PREDICATES: Dict[str, Callable[[Mapping[str, Any], str], bool]] = {
    "_profile": _match_profile,
    "status": _match_status,
    "code": _match_code,
    "subject": _match_subject,
    "active": _match_active,
}

SUPPORTED_PARAMETERS = frozenset(PREDICATES)


SUPPORTED_RESOURCE_TYPES = ("Patient", "Observation", "Practitioner", "Organization", "Encounter")


def validate_criteria(criteria: str) -> ParsedCriteria:
    """Reject criteria at registration time; evaluation itself never raises."""
    if not criteria or not isinstance(criteria, str):
        raise InvalidCriteria("Invalid subscription criteria format")
    parsed = parse_criteria(criteria)
    if parsed.resource_type not in SUPPORTED_RESOURCE_TYPES:
        raise InvalidCriteria(f"Unsupported resource type in criteria: {parsed.resource_type}")
    return parsed


class CriteriaEvaluator:
    """Evaluates criteria strings against one resource."""

    def __init__(self, resource: Mapping[str, Any]):
        self.resource = resource if isinstance(resource, Mapping) else {}

    @property
    def resource_type(self):
        return self.resource.get("resourceType")

    def matches_criteria(self, criteria: str) -> bool:
        if not criteria:
            return False
        if not self.resource_type:
            return False

        parsed = parse_criteria(criteria)
        if parsed.resource_type != self.resource_type:
            return False

        for key, value in parsed.params:
            predicate = PREDICATES.get(key)
            if predicate is None:
                return False
            if not predicate(self.resource, value):
                return False
        return True
