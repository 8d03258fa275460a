"""User identifier sanitization.

Every user id that reaches storage, tokens or the admin set is first reduced
to the ``[A-Za-z0-9._-]`` alphabet so it can double as an object key segment.
"""

import re
from typing import Any

from usagegate.app.exceptions import InvalidIdentityError

_DISALLOWED = re.compile(r"[^A-Za-z0-9._-]")


def sanitize_user_id(raw: Any) -> str:
    """Return the canonical, storage-safe form of ``raw``.

    Surrounding whitespace is trimmed and every disallowed character
    (path separators included) becomes ``_``. ``None`` and whitespace-only
    input yield ``""``, which callers must treat as invalid.

    Examples:
        >>> sanitize_user_id("  alice@example.com ")
        'alice_example.com'
        >>> sanitize_user_id("../etc/passwd")
        '.._etc_passwd'
    """
    if raw is None:
        return ""
    return _DISALLOWED.sub("_", str(raw).strip())


def require_safe_id(raw: Any) -> str:
    """Sanitize ``raw`` and reject an empty result.

    Raises:
        InvalidIdentityError: If nothing is left after sanitizing.
    """
    safe_id = sanitize_user_id(raw)
    if not safe_id:
        raise InvalidIdentityError()
    return safe_id
