"""
auth/ports.py -- Capability interfaces for the auth components.

Route handlers and TokenAuthority depend on these Protocols, not on the
SQLAlchemy stores, so the stores can be swapped for in-memory fakes in
tests. auth/store.py provides the production implementations.
"""

from __future__ import annotations

from typing import Protocol

from auth.models import Token, User
from auth.permissions import Permissions


class UserRepository(Protocol):
    def insert(self, user: User) -> None: ...
    def get_by_email(self, email: str) -> User: ...
    def get_by_id(self, user_id: int) -> User: ...
    def update(self, user: User) -> None: ...
    def get_for_token(self, scope: str, digest: str, now: str) -> User: ...


class TokenRepository(Protocol):
    def insert(self, token: Token) -> None: ...
    def delete_all_for_user(self, scope: str, user_id: int) -> int: ...


class PermissionRepository(Protocol):
    def get_all_for_user(self, user_id: int) -> Permissions: ...
    def add_for_user(self, user_id: int, *codes: str) -> None: ...
