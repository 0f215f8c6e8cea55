"""Entry points used by the exercise platform: run, compare and grade."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Union

from .comparator import compare_output
from .interpreter import Interpreter, RunResult
from .rules import RuleReport, validate_rules

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

__all__ = ["TestCase", "Challenge", "Verdict", "evaluate", "validate_rules", "grade", "coerce_challenge"]


def _pick(data: Mapping[str, Any], *names: str, default: Any = None) -> Any:
    for name in names:
        if name in data and data[name] is not None:
            return data[name]
    return default


@dataclass
class TestCase:
    # not a pytest class
    __test__ = False

    input: str = ""
    expected_output: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "TestCase":
        return cls(
            input=str(_pick(data, "input", default="")),
            expected_output=str(_pick(data, "expected_output", "expectedOutput", default="")),
        )


@dataclass
class Challenge:
    """What a submission is graded against.

    `expected_output` takes precedence; otherwise every test case runs with
    its `input` lines fed to `input()`. With neither, any run that does not
    fail succeeds.
    """

    expected_output: Optional[str] = None
    test_cases: List[TestCase] = field(default_factory=list)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Challenge":
        cases = _pick(data, "test_cases", "testCases", default=[]) or []
        expected = _pick(data, "expected_output", "expectedOutput")
        return cls(
            expected_output=None if expected is None else str(expected),
            test_cases=[c if isinstance(c, TestCase) else TestCase.from_mapping(c) for c in cases],
        )

    @property
    def total(self) -> int:
        if self.expected_output is None and self.test_cases:
            return len(self.test_cases)
        return 1


def coerce_challenge(challenge: Union[None, Challenge, Mapping[str, Any]]) -> Challenge:
    if challenge is None:
        return Challenge()
    if isinstance(challenge, Challenge):
        return challenge
    return Challenge.from_mapping(challenge)


@dataclass
class Verdict:
    success: bool
    output: str
    diagnostic: Optional[str] = None
    passed: int = 0
    total: int = 1
    violations: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "output": self.output,
            "diagnostic": self.diagnostic,
            "passed": self.passed,
            "total": self.total,
            "violations": list(self.violations),
            "warnings": list(self.warnings),
        }


def _run(source: str, inputs: Optional[str], settings: Optional[Dict[str, Any]]) -> RunResult:
    # fresh interpreter per run so no output or state leaks between runs
    return Interpreter().run(source, inputs=inputs, settings=settings)


def evaluate(
    source: str,
    challenge: Union[None, Challenge, Mapping[str, Any]],
    settings: Optional[Dict[str, Any]] = None,
) -> Verdict:
    """Run `source` and judge its output against `challenge`.

    Returns:
        Verdict. On a runtime failure the output printed before the failure
        is kept and `diagnostic` describes the failure.
    """
    challenge = coerce_challenge(challenge)

    if challenge.expected_output is None and challenge.test_cases:
        return _evaluate_test_cases(source, challenge, settings)

    result = _run(source, None, settings)
    if result.error is not None:
        return Verdict(False, result.output, result.diagnostic, 0, 1, [], result.warnings)
    if challenge.expected_output is None:
        return Verdict(True, result.output, None, 1, 1, [], result.warnings)
    success = compare_output(result.output, challenge.expected_output)
    return Verdict(success, result.output, None, 1 if success else 0, 1, [], result.warnings)


def _evaluate_test_cases(source: str, challenge: Challenge, settings: Optional[Dict[str, Any]]) -> Verdict:
    passed = 0
    output: Optional[str] = None
    diagnostic: Optional[str] = None
    warnings: List[str] = []
    for case in challenge.test_cases:
        result = _run(source, case.input, settings)
        if output is None:
            output = result.output
        for warning in result.warnings:
            if warning not in warnings:
                warnings.append(warning)
        if result.error is not None:
            diagnostic = diagnostic or result.diagnostic
            continue
        if compare_output(result.output, case.expected_output):
            passed += 1
    total = len(challenge.test_cases)
    logger.debug("test cases: %d/%d passed", passed, total)
    return Verdict(passed == total, output or "", diagnostic, passed, total, [], warnings)


def grade(
    source: str,
    challenge: Union[None, Challenge, Mapping[str, Any]],
    active_rules: Optional[List[str]] = None,
    settings: Optional[Dict[str, Any]] = None,
) -> Verdict:
    """Check the rules, then evaluate. Rule violations stop before execution."""
    challenge = coerce_challenge(challenge)
    report: RuleReport = validate_rules(source, active_rules or [])
    if not report.valid:
        logger.info("submission rejected: %d rule violation(s)", len(report.violations))
        return Verdict(False, "", None, 0, challenge.total, list(report.violations), [])
    return evaluate(source, challenge, settings)
