"""
guildkeeper.engine.errors — Member Database Error Taxonomy
===========================================================

Two families of failure leave the member database:

* :class:`PreconditionError` — the caller asked for something the identity
  graph forbids (stealing a linked profile, unbinding a guild partial's only
  link, ...).  These are user-facing rejections; the command layer turns
  them into messages.
* :class:`StorageError` — the database itself failed.  The enclosing
  transaction is always rolled back.

Parse failures of ranks / query tokens stay plain :class:`ValueError`.
"""

from __future__ import annotations

import enum
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

if TYPE_CHECKING:
    from guildkeeper.database.models import MemberType


class ProfileType(enum.StrEnum):
    """Kinds of profile a member can be linked to."""
    DISCORD = "discord"
    WYNN = "wynn"
    GUILD = "guild"


class MemberDBError(Exception):
    """Root of every error raised by the member database."""


# ---------------------------------------------------------------------------
# Precondition violations
# ---------------------------------------------------------------------------
class PreconditionError(MemberDBError):
    """A requested mutation would break the identity graph's rules."""


class MemberAlreadyExist(PreconditionError):
    def __init__(self, mid: int) -> None:
        self.mid = mid
        super().__init__(f"Member already exists with id {mid}")


class WrongMemberType(PreconditionError):
    def __init__(self, member_type: MemberType) -> None:
        self.member_type = member_type
        super().__init__(f"Wrong member type '{member_type}'")


class LinkOverride(PreconditionError):
    def __init__(self, profile_type: ProfileType, mid: int) -> None:
        self.profile_type = profile_type
        self.mid = mid
        super().__init__(
            f"Attempts to override an existing link to '{mid}' in profile '{profile_type}'"
        )


class MemberNotFound(PreconditionError):
    def __init__(self, mid: int) -> None:
        self.mid = mid
        super().__init__(f"No member with id {mid}")


class RankPermissionDenied(PreconditionError):
    """A privileged rank change was refused."""


# ---------------------------------------------------------------------------
# Storage failures
# ---------------------------------------------------------------------------
class StorageError(MemberDBError):
    """Wraps a database error with the operation that was running."""

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(operation)

    def __str__(self) -> str:
        cause = self.__cause__
        if cause is None:
            return self.operation
        return f"{self.operation}: {type(cause).__name__}: {cause}"


class TransactionAborted(MemberDBError):
    """The caller gave up before commit; the transaction was rolled back."""


@contextmanager
def storage_context(operation: str) -> Iterator[None]:
    """Re-raise any SQLAlchemy error inside the block as :class:`StorageError`.

    Usage::

        with storage_context("Failed to fetch member.discord"):
            session.execute(...)
    """
    try:
        yield
    except SQLAlchemyError as exc:
        raise StorageError(operation) from exc
