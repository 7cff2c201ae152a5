"""Helpers for reading loosely-structured Supabase CLI output.

The CLI's JSON output is not schema-stable across versions and is sometimes
wrapped in log noise, so every reader here works on plain parsed JSON values
and tries an explicit, ordered list of candidate field names. First match wins.
"""

from __future__ import annotations

import json
from typing import Any, Iterable, Optional, Sequence
from urllib.parse import urlsplit

ORG_ID_FIELDS: tuple[str, ...] = ("id", "org_id", "organization_id", "slug")
PROJECT_REF_FIELDS: tuple[str, ...] = ("id", "ref", "project_ref", "projectRef")
API_KEY_LIST_FIELDS: tuple[str, ...] = ("keys", "data", "api_keys")
API_KEY_VALUE_FIELDS: tuple[str, ...] = ("key", "api_key", "apiKey", "secret", "value")
API_KEY_NAME_FIELDS: tuple[str, ...] = ("name", "role", "type")


def parse_loose(text: Optional[str]) -> Any:
    """Parse JSON from CLI stdout, tolerating log lines around the payload.

    Returns None when nothing parseable is found; never raises for bad input.
    """

    trimmed = (text or "").strip()
    if not trimmed:
        return None

    try:
        return json.loads(trimmed)
    except ValueError:
        pass

    openings = [i for i in (trimmed.find("{"), trimmed.find("[")) if i >= 0]
    if not openings:
        return None
    start = min(openings)
    end = max(trimmed.rfind("}"), trimmed.rfind("]"))
    if end <= start:
        return None

    try:
        return json.loads(trimmed[start : end + 1])
    except ValueError:
        return None


def _non_empty_str(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _first_present(record: dict[str, Any], fields: Sequence[str]) -> Any:
    for field in fields:
        value = record.get(field)
        if value is not None:
            return value
    return None


def _first_string_field(record: Any, fields: Sequence[str]) -> Optional[str]:
    if not isinstance(record, dict):
        return None
    for field in fields:
        value = _non_empty_str(record.get(field))
        if value is not None:
            return value
    return None


def pick_org_id(orgs: Iterable[Any]) -> Optional[str]:
    """Return the org identifier of the first record that carries one."""

    for org in orgs:
        org_id = _first_string_field(org, ORG_ID_FIELDS)
        if org_id is not None:
            return org_id
    return None


def extract_project_ref(value: Any) -> Optional[str]:
    """Read the project ref from `projects create` output (flat or under "project")."""

    if not isinstance(value, dict):
        return None

    ref = _first_string_field(value, PROJECT_REF_FIELDS)
    if ref is not None:
        return ref
    return _first_string_field(value.get("project"), PROJECT_REF_FIELDS)


def _api_key_list(value: Any) -> Optional[list[Any]]:
    if isinstance(value, list):
        return value
    if isinstance(value, dict):
        candidate = _first_present(value, API_KEY_LIST_FIELDS)
        if isinstance(candidate, list):
            return candidate
    return None


def extract_service_role_key(value: Any) -> Optional[str]:
    """Return the first key whose name/role/type mentions "service"."""

    keys = _api_key_list(value)
    if keys is None:
        return None

    for entry in keys:
        if not isinstance(entry, dict):
            continue
        name = _first_present(entry, API_KEY_NAME_FIELDS)
        key = _non_empty_str(_first_present(entry, API_KEY_VALUE_FIELDS))
        if key is not None and "service" in str(name if name is not None else "").lower():
            return key
    return None


def project_ref_from_url(url: Optional[str], *, platform_suffix: str = ".supabase.co") -> Optional[str]:
    """Derive the project ref from a backend URL like https://<ref>.supabase.co."""

    if not url or not url.strip():
        return None
    try:
        host = (urlsplit(url.strip()).hostname or "").lower()
    except ValueError:
        return None

    if not host.endswith(platform_suffix.lower()):
        return None
    ref = host.split(".")[0]
    return ref or None
