"""
auth/permissions.py -- Capability codes and the per-user permission set.

A user's permissions are fetched once per request via
PermissionStore.get_all_for_user(); checking a code is then a pure set
membership test with no further storage calls.
"""

from __future__ import annotations

from collections.abc import Iterable

MOVIES_READ = "movies:read"
MOVIES_WRITE = "movies:write"

# Codes seeded into the permissions catalog. Grants for codes outside the
# catalog match nothing and are silently dropped.
CATALOG: tuple[str, ...] = (MOVIES_READ, MOVIES_WRITE)


class Permissions(frozenset):
    """Immutable set of capability codes held by one user."""

    def __new__(cls, codes: Iterable[str] = ()) -> "Permissions":
        return super().__new__(cls, codes)

    def includes(self, code: str) -> bool:
        return code in self
