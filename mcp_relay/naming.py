"""
Local identifier policy.

Local identifiers must match [A-Za-z0-9_-]{1,64}. In scoped mode the tool's
display name is sanitized as-is; in unscoped mode the sanitized server id
and the tool slug are joined so tools from different servers never collide.

Truncation to 64 characters can still make two long names collide. That is
left to the registrar, which keeps the first and logs the rest.
"""

from __future__ import annotations

import re

MAX_IDENTIFIER_LENGTH = 64
NAMESPACE_SEPARATOR = "_"

_ILLEGAL = re.compile(r"[^A-Za-z0-9_-]")
_LEGAL = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def sanitize(raw_name: str) -> str:
    """Replace every illegal character with "_" and truncate to 64 characters."""
    return _ILLEGAL.sub("_", raw_name or "")[:MAX_IDENTIFIER_LENGTH]


def is_legal_identifier(name: str) -> bool:
    return bool(_LEGAL.match(name))


def scoped_identifier(name: str) -> str:
    """Identifier for a capability of the single target server. May be empty."""
    return sanitize(name)


def namespaced_identifier(server_id: str, key: str) -> str:
    """Identifier for a capability exposed alongside other servers' capabilities."""
    joined = f"{sanitize(server_id)}{NAMESPACE_SEPARATOR}{sanitize(key)}"
    return joined[:MAX_IDENTIFIER_LENGTH]


def tool_identifier(server_id: str, name: str, slug: str, scoped: bool) -> str:
    """
    Pick the local identifier for a tool.

    Scoped mode uses the display name; unscoped mode uses server id + slug,
    because slugs are unique per server and server ids are unique globally.
    """
    if scoped:
        return scoped_identifier(name)
    return namespaced_identifier(server_id, slug)
