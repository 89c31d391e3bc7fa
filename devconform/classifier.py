"""Judge device faults against the expected implementedness of a member."""
from __future__ import annotations

import enum
from dataclasses import dataclass

from .hardware.faults import DeviceFault, FaultKind, MemberType, fault_kind


class Requirement(enum.Enum):
    MANDATORY = "mandatory"
    MUST_BE_IMPLEMENTED = "must_be_implemented"
    MUST_NOT_BE_IMPLEMENTED = "must_not_be_implemented"
    OPTIONAL = "optional"


class Outcome(enum.Enum):
    OK = "OK"
    INFO = "INFO"
    ISSUE = "ISSUE"
    ERROR = "ERROR"


@dataclass(slots=True, frozen=True)
class Classification:
    outcome: Outcome
    message: str


def _fault_name(member_type: MemberType) -> str:
    return "PropertyNotImplemented" if member_type is MemberType.PROPERTY else "MethodNotImplemented"


def _wrong_member_kind(fault: BaseException, member_type: MemberType) -> bool:
    claimed = fault.member_type if isinstance(fault, DeviceFault) else None
    return claimed is not None and claimed is not member_type


def _fault_text(fault: BaseException) -> str:
    if isinstance(fault, DeviceFault):
        return fault.message
    text = str(fault)
    return f"{type(fault).__name__}: {text}" if text else type(fault).__name__


def classify(
    fault: BaseException,
    requirement: Requirement,
    member_type: MemberType,
    context: str = "",
) -> Classification:
    """Map *fault* raised by a member of *member_type* to an outcome.

    Not-implemented faults are judged against *requirement*. A not-implemented
    fault naming the other member kind is always an issue. Any other fault is
    an error unless the member is optional, in which case it is an issue.
    """

    prefix = f"{context} and a" if context else "A"
    kind = fault_kind(fault)
    name = _fault_name(member_type)

    if kind is FaultKind.NOT_IMPLEMENTED:
        if _wrong_member_kind(fault, member_type):
            other = _fault_name(fault.member_type)  # type: ignore[union-attr, arg-type]
            return Classification(Outcome.ISSUE, f"Received a {other} error instead of a {name} error")
        if requirement is Requirement.MANDATORY:
            return Classification(
                Outcome.ERROR,
                f"This member is mandatory but returned a {name} error, it must function correctly.",
            )
        if requirement is Requirement.MUST_BE_IMPLEMENTED:
            return Classification(
                Outcome.ERROR,
                f"{prefix} {name} error was returned, this member must function correctly.",
            )
        if requirement is Requirement.MUST_NOT_BE_IMPLEMENTED:
            return Classification(Outcome.OK, f"{prefix} {name} error was generated as expected")
        return Classification(Outcome.OK, f"Optional member returned a {name} error.")

    detail = _fault_text(fault)
    if requirement is Requirement.OPTIONAL:
        return Classification(Outcome.ISSUE, f"Unexpected error{f' - {context}' if context else ''}: {detail}")
    if requirement is Requirement.MUST_NOT_BE_IMPLEMENTED:
        return Classification(
            Outcome.ERROR,
            f"{prefix} {name} error was expected but a different error was returned: {detail}",
        )
    return Classification(Outcome.ERROR, f"Unexpected error{f' - {context}' if context else ''}: {detail}")


def is_invalid_value(fault: BaseException) -> bool:
    return fault_kind(fault) is FaultKind.INVALID_VALUE


def is_not_implemented(fault: BaseException) -> bool:
    return fault_kind(fault) is FaultKind.NOT_IMPLEMENTED
