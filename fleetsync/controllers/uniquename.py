"""
Fleet-wide unique names for hub projections.

Names are deterministic: the same identity always yields the same name, so
re-deriving a name after a crash lands on the projection written earlier.
A readable prefix built from the identity is followed by a short digest of
the full identity, which keeps identities that differ only in how their
parts are split (``a-b``/``c`` versus ``a``/``b-c``) apart.

Every name is a valid RFC 1123 label: at most 63 characters of lowercase
alphanumerics and '-', starting and ending with an alphanumeric.
"""

import hashlib
import re

MAX_NAME_LENGTH = 63
DIGEST_LENGTH = 8

_INVALID_CHARS = re.compile(r"[^a-z0-9-]+")
_RFC1123_LABEL = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")


def _sanitize(part: str) -> str:
    return _INVALID_CHARS.sub("-", part.lower()).strip("-")


def format_unique_name(*parts: str) -> str:
    """
    Format a unique name from identity parts.

    Args:
        parts: Identity parts, most significant first

    Returns:
        "<prefix>-<digest>", or just the digest if no part has a usable
        character
    """
    digest = hashlib.sha256("\x00".join(parts).encode("utf-8")).hexdigest()[:DIGEST_LENGTH]

    prefix = "-".join(p for p in (_sanitize(part) for part in parts) if p)
    prefix = prefix[: MAX_NAME_LENGTH - DIGEST_LENGTH - 1].rstrip("-")

    if not prefix:
        return digest
    return f"{prefix}-{digest}"


def fleet_unique_name(cluster_id: str, namespace: str, name: str) -> str:
    """
    Name an object uniquely across every member cluster of the fleet.

    Args:
        cluster_id: Member cluster ID
        namespace: Object namespace in the member cluster
        name: Object name in the member cluster
    """
    return format_unique_name(cluster_id, namespace, name)


def internal_service_export_name(namespace: str, name: str) -> str:
    """
    Name the hub projection of a ServiceExport.

    The member cluster is already encoded in the reserved hub namespace, so
    only the namespace and name take part.
    """
    return format_unique_name(namespace, name)


def is_valid_name(name: str) -> bool:
    """Check a name is an RFC 1123 label."""
    return len(name) <= MAX_NAME_LENGTH and bool(_RFC1123_LABEL.match(name))
