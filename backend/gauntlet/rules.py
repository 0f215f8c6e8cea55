"""Static policy checks run against submitted source before execution.

Each level of the exercise carries free-text rule descriptions ("No
hardcoding values!", "Loops must terminate"). A rule activates every check
in the catalogue whose trigger keywords it contains (case-insensitive); an
active check reports a violation when its predicate holds on the raw source.
Nothing here parses or runs the code.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Tuple

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


@dataclass(frozen=True)
class RuleCheck:
    """One catalogue entry.

    `triggers` is a tuple of keyword groups; a rule text triggers the check
    when it contains every keyword of at least one group.
    """

    name: str
    triggers: Tuple[Tuple[str, ...], ...]
    message: str
    predicate: Callable[[str], bool] = field(repr=False, compare=False)

    def triggered_by(self, rule: str) -> bool:
        text = rule.lower()
        return any(all(word in text for word in group) for group in self.triggers)


@dataclass
class RuleReport:
    valid: bool
    violations: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {"valid": self.valid, "violations": list(self.violations)}


_PRINT_NUMBER = re.compile(r"print\(\s*-?\d+(?:\.\d+)?\s*\)")
_PRINT_STRING = re.compile(r"print\(\s*[\"'][^\"']*[\"']\s*\)")
_GLOBAL_STMT = re.compile(r"^\s*global\s+[A-Za-z_]", re.MULTILINE)
_ENDLESS_WHILE = re.compile(r"^\s*while\s+(?:True|1)\s*:", re.MULTILINE)
_CLASS_STMT = re.compile(r"^\s*class\s+[A-Za-z_]", re.MULTILINE)
_FOR_HEADER = re.compile(r"^\s*for\s+.+?\s+in\s+.+:", re.MULTILINE)
_LIBRARY_CALL = re.compile(r"\b(?:math|random|os|sys|collections)\.")


def _hardcoded(source: str) -> bool:
    return bool(_PRINT_NUMBER.search(source) or _PRINT_STRING.search(source))


def _missing_docstring(source: str) -> bool:
    return "def " in source and '"""' not in source


def _global_declared(source: str) -> bool:
    return bool(_GLOBAL_STMT.search(source))


def _endless_loop(source: str) -> bool:
    return bool(_ENDLESS_WHILE.search(source))


def _builtin_sort(source: str) -> bool:
    return ".sort(" in source or "sorted(" in source


def _no_override(source: str) -> bool:
    if not _CLASS_STMT.search(source):
        return False
    return "def __" not in source and "def toString" not in source


def _for_loop(source: str) -> bool:
    return bool(_FOR_HEADER.search(source))


def _several_locks(source: str) -> bool:
    return source.count("Lock()") > 1


def _library_call(source: str) -> bool:
    return bool(_LIBRARY_CALL.search(source))


def _sensitive_data(source: str) -> bool:
    return any(word in source for word in ("password", "secret", "key"))


CATALOGUE: Tuple[RuleCheck, ...] = (
    RuleCheck(
        "hardcoding",
        (("variables",), ("hardcoding",)),
        "Rule violation: No hardcoding values allowed! Use variables instead.",
        _hardcoded,
    ),
    RuleCheck(
        "docstring",
        (("docstring",),),
        'Rule violation: Functions must have docstrings! Add """documentation""" to your functions.',
        _missing_docstring,
    ),
    RuleCheck(
        "global",
        (("global",),),
        "Rule violation: No global variables allowed! Keep variables local to functions.",
        _global_declared,
    ),
    RuleCheck(
        "terminate",
        (("terminate",),),
        "Rule violation: Loops must terminate! Avoid while True or missing loop conditions.",
        _endless_loop,
    ),
    RuleCheck(
        "builtin-sort",
        (("sort", "built-in"),),
        "Rule violation: No built-in sort functions allowed! Implement your own sorting algorithm.",
        _builtin_sort,
    ),
    RuleCheck(
        "override",
        (("override",),),
        "Rule violation: Each class must override at least one method! Override __str__, __repr__, or another method.",
        _no_override,
    ),
    RuleCheck(
        "functional",
        (("for-loops", "functional"),),
        "Rule violation: No for-loops allowed! Use functional programming with map(), filter(), and lambda.",
        _for_loop,
    ),
    RuleCheck(
        "thread-safe",
        (("thread-safe",),),
        "Rule violation: All operations must be thread-safe! Use proper locking mechanisms.",
        _several_locks,
    ),
    RuleCheck(
        "from-scratch",
        (("library functions", "scratch"),),
        "Rule violation: Implement algorithms from scratch! No library functions allowed.",
        _library_call,
    ),
    RuleCheck(
        "custom-encryption",
        (("encrypted",), ("custom algorithms",)),
        "Rule violation: All data must be encrypted/decrypted using custom algorithms!",
        _sensitive_data,
    ),
)


def validate_rules(source: str, active_rules: Iterable[str]) -> RuleReport:
    """Check `source` against the catalogue entries the active rules trigger.

    Each check reports at most once and violations come out in catalogue
    order, whatever the order or repetition of `active_rules`.
    """
    rules = [r for r in (active_rules or []) if r]
    violations: List[str] = []
    for check in CATALOGUE:
        if not any(check.triggered_by(rule) for rule in rules):
            continue
        if check.predicate(source or ""):
            logger.debug("rule check %s violated", check.name)
            violations.append(check.message)
    return RuleReport(valid=not violations, violations=violations)


def describe_catalogue() -> List[Dict[str, Any]]:
    """Catalogue summary for API consumers."""
    return [
        {"name": check.name, "triggers": [list(group) for group in check.triggers], "message": check.message}
        for check in CATALOGUE
    ]
