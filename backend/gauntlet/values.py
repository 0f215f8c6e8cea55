"""Runtime values for the Gauntlet interpreter.

Plain Python objects (None, bool, int, float, str, list) represent the
language's scalar and list values directly. The classes below cover the rest
of the value space: user functions, the narrow class simulation, imported
native modules, and the control-flow signal threaded back up the statement
stack.
"""

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional


class _Undefined:
    """Marker bound to parameters that were not supplied by the caller."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self):
        return False

    def __repr__(self):
        return "undefined"


UNDEFINED = _Undefined()


class FlowKind(enum.Enum):
    NORMAL = "normal"
    RETURN = "return"
    BREAK = "break"
    CONTINUE = "continue"


@dataclass(frozen=True)
class Flow:
    """Result of executing a statement or block.

    `RETURN` carries the returned value up to the enclosing function;
    `BREAK`/`CONTINUE` stop at the nearest loop. Runtime failures never travel
    through this type, they are raised as `EvalError`.
    """

    kind: FlowKind
    value: Any = None

    @property
    def is_normal(self) -> bool:
        return self.kind is FlowKind.NORMAL

    @classmethod
    def returning(cls, value: Any) -> "Flow":
        return cls(FlowKind.RETURN, value)


NORMAL = Flow(FlowKind.NORMAL)
BREAK = Flow(FlowKind.BREAK)
CONTINUE = Flow(FlowKind.CONTINUE)


@dataclass(eq=False)
class Function:
    """A user-defined function.

    `body` is the slice of logical lines under the `def` header and `scope`
    is the live defining environment. The environment is copied when the
    function is called, not when it is defined, so names bound after the
    definition (including the function itself) are visible to the body.
    """

    name: str
    params: List[str]
    defaults: Dict[str, Any]
    body: list
    scope: Dict[str, Any]
    interpreter: Any = field(repr=False, compare=False)

    def __call__(self, *args, **kwargs) -> Any:
        return self.interpreter.call_function(self, list(args), kwargs)

    def __repr__(self):
        return f"<function {self.name}>"


@dataclass(eq=False)
class ClassTemplate:
    """A class header seen in source. The class body itself is never executed."""

    name: str
    parent: Optional[str]
    field_name: str = "balance"
    default: Any = 0

    def instantiate(self, args: List[Any]) -> "Instance":
        initial = args[0] if args else self.default
        return Instance(self, {self.field_name: initial})

    def __call__(self, *args):
        return self.instantiate(list(args))

    def __repr__(self):
        return f"<class '{self.name}'>"


@dataclass(eq=False)
class Instance:
    """Object produced by calling a `ClassTemplate`.

    Only two behaviours exist regardless of what the class body declares:
    `deposit` and `withdraw` against the template's single numeric field.
    """

    template: ClassTemplate
    fields: Dict[str, Any]

    def deposit(self, amount):
        name = self.template.field_name
        self.fields[name] = self.fields.get(name, 0) + amount
        return amount

    def withdraw(self, amount):
        name = self.template.field_name
        current = self.fields.get(name, 0)
        if amount <= current:
            self.fields[name] = current - amount
            return amount
        return 0

    def __repr__(self):
        return f"<{self.template.name} object>"


class LockObject:
    """Stand-in for `threading.Lock()`; acquiring never blocks."""

    def acquire(self, *args):
        return True

    def release(self):
        return None

    def __repr__(self):
        return "<unlocked lock object>"


@dataclass
class NativeModule:
    """An importable module made of plain Python callables and constants."""

    name: str
    attrs: Mapping[str, Any]

    def __repr__(self):
        return f"<module '{self.name}'>"


@dataclass
class ExceptionValue:
    """The value bound by `except ... as name`."""

    kind: str
    message: str

    def __str__(self):
        return self.message

    def __repr__(self):
        return f"{self.kind}({self.message!r})"
