"""Parsing of the admin set and credential map from configuration strings.

Both values come from environment variables that operators fill in by hand,
so several shapes are accepted. Parsing happens once when the application
configuration is built.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Literal

from usagegate.app.core.identity import sanitize_user_id

AdminSourceKind = Literal["empty", "delimited", "json_list", "json_object"]

_ID_FIELDS = ("id", "userId", "user", "name")
_CREDENTIAL_ID_FIELDS = ("id", "user", "userId")
_CREDENTIAL_SECRET_FIELDS = ("passwordHash", "hash", "password")

_LIST_SPLIT = re.compile(r"[,;\s]+")
_PAIR_SPLIT = re.compile(r"[,;\n\r]+")


@dataclass(frozen=True)
class AdminSource:
    """Recognized shape of the admin configuration and its canonical ids."""

    kind: AdminSourceKind
    ids: frozenset[str]

    def __contains__(self, safe_id: object) -> bool:
        return safe_id in self.ids


def _first_field(entry: dict, fields: tuple[str, ...]) -> Any:
    for name in fields:
        value = entry.get(name)
        if value:
            return value
    return None


def _try_json(raw: str) -> Any:
    # Only structured values are worth decoding; a bare "alice" is a list.
    if not raw.startswith(("[", "{")):
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return None


def _admin_ids_from_list(items: list) -> set[str]:
    ids: set[str] = set()
    for entry in items:
        if not entry:
            continue
        if isinstance(entry, dict):
            safe_id = sanitize_user_id(_first_field(entry, _ID_FIELDS))
        else:
            safe_id = sanitize_user_id(entry)
        if safe_id:
            ids.add(safe_id)
    return ids


def _admin_ids_from_object(mapping: dict) -> set[str]:
    ids: set[str] = set()
    for key, value in mapping.items():
        if not value:
            continue
        # true, 1, "admin" and any other truthy scalar all mark the key itself.
        if isinstance(value, dict):
            safe_id = sanitize_user_id(_first_field(value, _ID_FIELDS) or key)
        else:
            safe_id = sanitize_user_id(key)
        if safe_id:
            ids.add(safe_id)
    return ids


def parse_admin_set(raw: str | None) -> AdminSource:
    """Parse the configured admin set.

    Accepted shapes:

    - ``"alice, bob carol"``: comma, semicolon or whitespace delimited ids
    - ``'["alice", {"id": "bob"}]'``: JSON array of ids or objects with an
      ``id``/``userId``/``user``/``name`` field
    - ``'{"alice": true, "bob": "admin", "carol": false}'``: JSON object whose
      truthy values mark membership

    All ids are sanitized, so the resulting set can be checked against
    sanitized subjects directly.
    """
    raw = (raw or "").strip()
    if not raw:
        return AdminSource(kind="empty", ids=frozenset())

    parsed = _try_json(raw)
    if isinstance(parsed, list):
        return AdminSource(kind="json_list", ids=frozenset(_admin_ids_from_list(parsed)))
    if isinstance(parsed, dict):
        return AdminSource(kind="json_object", ids=frozenset(_admin_ids_from_object(parsed)))

    ids = {sanitize_user_id(part) for part in _LIST_SPLIT.split(raw)}
    ids.discard("")
    return AdminSource(kind="delimited", ids=frozenset(ids))


def parse_credentials(raw: str | None) -> dict[str, str]:
    """Parse the credential map into ``{safe_id: stored_secret}``.

    Accepts a JSON array of ``{"id": ..., "passwordHash": ...}`` objects, a
    JSON object mapping ids to secrets, or ``user:secret`` pairs separated by
    commas, semicolons or newlines. Stored secrets are bcrypt hashes,
    ``plain:``-prefixed passwords or bare passwords.
    """
    raw = (raw or "").strip()
    credentials: dict[str, str] = {}
    if not raw:
        return credentials

    parsed = _try_json(raw)
    if isinstance(parsed, list):
        for entry in parsed:
            if not isinstance(entry, dict):
                continue
            safe_id = sanitize_user_id(_first_field(entry, _CREDENTIAL_ID_FIELDS))
            secret = _first_field(entry, _CREDENTIAL_SECRET_FIELDS)
            if safe_id and secret:
                credentials[safe_id] = str(secret)
        return credentials
    if isinstance(parsed, dict):
        for key, value in parsed.items():
            safe_id = sanitize_user_id(key)
            if safe_id and value:
                credentials[safe_id] = str(value)
        return credentials

    for pair in _PAIR_SPLIT.split(raw):
        user, sep, secret = pair.partition(":")
        if not sep:
            continue
        safe_id = sanitize_user_id(user)
        secret = secret.strip()
        if safe_id and secret:
            credentials[safe_id] = secret
    return credentials
