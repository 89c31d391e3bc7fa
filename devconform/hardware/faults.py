"""Fault values raised by device clients."""
from __future__ import annotations

import enum
from typing import Optional


class FaultKind(enum.Enum):
    NOT_IMPLEMENTED = "not_implemented"
    INVALID_VALUE = "invalid_value"
    OTHER = "other"


class MemberType(enum.Enum):
    PROPERTY = "property"
    METHOD = "method"


class DeviceFault(Exception):
    """A failure reported by the device under test.

    Transport adapters translate their native errors into this type so the
    classifier can judge faults from data instead of exception classes.
    ``member_type`` is set when a not-implemented fault names the kind of
    member it applies to; ``None`` means the fault applies to either kind.
    """

    def __init__(
        self,
        kind: FaultKind,
        message: str,
        *,
        member: Optional[str] = None,
        member_type: Optional[MemberType] = None,
        error_number: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.member = member
        self.member_type = member_type
        self.error_number = error_number

    @classmethod
    def not_implemented(
        cls,
        member: str,
        member_type: Optional[MemberType] = None,
        message: Optional[str] = None,
    ) -> "DeviceFault":
        label = "Property" if member_type is MemberType.PROPERTY else "Method" if member_type is MemberType.METHOD else "Member"
        return cls(
            FaultKind.NOT_IMPLEMENTED,
            message or f"{label} {member} is not implemented",
            member=member,
            member_type=member_type,
        )

    @classmethod
    def invalid_value(cls, member: str, message: str) -> "DeviceFault":
        return cls(FaultKind.INVALID_VALUE, message, member=member)

    def __repr__(self) -> str:
        return f"DeviceFault({self.kind.name}, {self.message!r}, member={self.member!r})"


def fault_kind(exc: BaseException) -> FaultKind:
    """Return the fault kind of *exc*; foreign exceptions count as OTHER."""

    if isinstance(exc, DeviceFault):
        return exc.kind
    return FaultKind.OTHER
