from __future__ import annotations

import pytest

from devconform.classifier import Outcome, Requirement, classify, is_invalid_value, is_not_implemented
from devconform.hardware.faults import DeviceFault, FaultKind, MemberType


def _not_implemented(member_type: MemberType | None = MemberType.METHOD) -> DeviceFault:
    return DeviceFault.not_implemented("OpenCover", member_type)


@pytest.mark.parametrize(
    ("requirement", "expected"),
    [
        (Requirement.MANDATORY, Outcome.ERROR),
        (Requirement.MUST_BE_IMPLEMENTED, Outcome.ERROR),
        (Requirement.MUST_NOT_BE_IMPLEMENTED, Outcome.OK),
        (Requirement.OPTIONAL, Outcome.OK),
    ],
)
def test_not_implemented_fault_follows_requirement(requirement: Requirement, expected: Outcome) -> None:
    result = classify(_not_implemented(), requirement, MemberType.METHOD)
    assert result.outcome is expected


@pytest.mark.parametrize(
    ("requirement", "expected"),
    [
        (Requirement.MANDATORY, Outcome.ERROR),
        (Requirement.MUST_BE_IMPLEMENTED, Outcome.ERROR),
        (Requirement.MUST_NOT_BE_IMPLEMENTED, Outcome.ERROR),
        (Requirement.OPTIONAL, Outcome.ISSUE),
    ],
)
def test_other_faults_are_errors_unless_optional(requirement: Requirement, expected: Outcome) -> None:
    fault = DeviceFault(FaultKind.OTHER, "Driver exploded", member="OpenCover")
    assert classify(fault, requirement, MemberType.METHOD).outcome is expected
    assert classify(RuntimeError("boom"), requirement, MemberType.METHOD).outcome is expected


def test_not_implemented_without_member_kind_matches_either() -> None:
    fault = _not_implemented(member_type=None)
    assert classify(fault, Requirement.MUST_NOT_BE_IMPLEMENTED, MemberType.PROPERTY).outcome is Outcome.OK
    assert classify(fault, Requirement.MUST_NOT_BE_IMPLEMENTED, MemberType.METHOD).outcome is Outcome.OK


def test_wrong_member_kind_is_an_issue_for_every_requirement() -> None:
    fault = DeviceFault.not_implemented("MaxBrightness", MemberType.METHOD)
    for requirement in Requirement:
        result = classify(fault, requirement, MemberType.PROPERTY)
        assert result.outcome is Outcome.ISSUE
        assert "MethodNotImplemented" in result.message
        assert "PropertyNotImplemented" in result.message


def test_context_is_included_in_messages() -> None:
    result = classify(
        _not_implemented(),
        Requirement.MUST_NOT_BE_IMPLEMENTED,
        MemberType.METHOD,
        "CoverStatus is 'NotPresent'",
    )
    assert result.message == "CoverStatus is 'NotPresent' and a MethodNotImplemented error was generated as expected"

    other = classify(ValueError("bad"), Requirement.MUST_BE_IMPLEMENTED, MemberType.METHOD, "OpenCover")
    assert other.message == "Unexpected error - OpenCover: ValueError: bad"


def test_fault_predicates() -> None:
    assert is_invalid_value(DeviceFault.invalid_value("CalibratorOn", "too bright"))
    assert not is_invalid_value(ValueError("plain exceptions are not device faults"))
    assert is_not_implemented(_not_implemented())
    assert not is_not_implemented(NotImplementedError("only tagged faults count"))
