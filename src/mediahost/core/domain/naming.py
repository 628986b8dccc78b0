"""Identifier validation and resource naming.

Customer ids and slugs end up in shell commands, filesystem paths and
container names. They are validated here before any of that happens.
"""

import re

from mediahost.core.errors import InvalidRequestError

CUSTOMER_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{0,63}$")
# Single DNS label
SLUG_PATTERN = re.compile(r"^[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$")

RESERVED_SLUGS = frozenset({"www", "api", "admin", "app", "mail", "status"})


def validate_customer_id(customer_id: str) -> str:
    if not CUSTOMER_ID_PATTERN.fullmatch(customer_id):
        raise InvalidRequestError(f"Invalid customer id: {customer_id!r}")
    return customer_id


def normalize_slug(slug: str) -> str:
    """Lowercase and validate a subdomain slug."""
    normalized = slug.strip().lower()
    if not SLUG_PATTERN.fullmatch(normalized):
        raise InvalidRequestError(
            "Subdomain must be 1-63 characters of a-z, 0-9 and '-', "
            "starting and ending with a letter or digit"
        )
    if normalized in RESERVED_SLUGS:
        raise InvalidRequestError(f"Subdomain {normalized!r} is reserved")
    return normalized


class ResourceNaming:
    """Centralized naming conventions for per-customer resources."""

    def __init__(self, prefix: str, domain: str) -> None:
        self._prefix = prefix
        self._domain = domain

    @property
    def prefix(self) -> str:
        return self._prefix

    def instance_name(self, customer_id: str, slug: str) -> str:
        # Slugs never contain "_", so the split point is unambiguous
        return f"{self._prefix}{customer_id}_{slug}"

    def config_volume_name(self, instance_name: str) -> str:
        return f"{instance_name}-config"

    def public_url(self, slug: str) -> str:
        return f"https://{slug}.{self._domain}"
