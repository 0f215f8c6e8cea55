"""Line-based interpreter for Gauntlet exercise programs.

Source text is cut into logical lines, each statement is classified by its
leading keyword and dispatched to a handler. Handlers return
``(consumed, flow)``: the number of logical lines they used (header plus any
block and trailing clauses) and a `Flow` signal for return/break/continue.
Runtime failures are raised as `EvalError` and surface in the run result.
"""

import enum
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from .expressions import (
    NATIVE_MODULES,
    EvalError,
    Evaluator,
    binary_op,
    bracket_balance,
    display,
    eval_expr,
    find_assignment,
    find_header_colon,
    find_keyword,
    matching_close,
    split_top_level,
    strip_comment,
)
from .values import (
    BREAK,
    CONTINUE,
    NORMAL,
    UNDEFINED,
    ClassTemplate,
    ExceptionValue,
    Flow,
    FlowKind,
    Function,
)

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

_FIRST_WORD = re.compile(r"[A-Za-z_]\w*")
_DEF = re.compile(r"def\s+([A-Za-z_]\w*)\s*\((.*)\)\s*(?:->[^:]*)?:(.*)", re.DOTALL)
_CLASS = re.compile(r"class\s+([A-Za-z_]\w*)\s*(?:\(([^)]*)\))?\s*:(.*)", re.DOTALL)
_INIT_DEF = re.compile(r"def\s+__init__\s*\((.*)\)\s*:")
_SELF_FIELD = re.compile(r"self\.([A-Za-z_]\w*)\s*(?::[^=]*)?=(?!=)")
_FROM_IMPORT = re.compile(r"from\s+([\w.]+)\s+import\s+(.*)", re.DOTALL)
_RAISE_CALL = re.compile(r"([A-Za-z_]\w*)\s*(?:\((.*)\))?", re.DOTALL)
_CHAIN_TARGET = re.compile(r"[A-Za-z_][\w.\[\]\s,]*")

_COMPOUND_WORDS = frozenset({"if", "elif", "else", "for", "while", "try", "except", "finally", "with", "def", "class"})

# Exception kinds that an `except <parent>` clause also catches.
_EXCEPTION_PARENTS = {
    "ZeroDivisionError": "ArithmeticError",
    "OverflowError": "ArithmeticError",
    "IndexError": "LookupError",
    "KeyError": "LookupError",
}

# Runtime limits that a snippet's own `except` clauses cannot swallow.
_FATAL_KINDS = frozenset({"StepLimitError", "TimeoutError"})


@dataclass(frozen=True)
class LogicalLine:
    """One statement after joining continuations and stripping comments."""

    text: str
    indent: int
    number: int


def split_logical_lines(source: str) -> List[LogicalLine]:
    """Cut source text into logical lines.

    Continuation lines (open brackets, trailing backslash, unterminated
    triple-quoted strings) are joined onto the line that started them.
    Blank and comment-only lines are dropped, tabs count as four columns and
    `;` separates simple statements sharing a line.
    """
    raw_lines = source.replace("\r\n", "\n").split("\n")
    result: List[LogicalLine] = []
    i = 0
    while i < len(raw_lines):
        raw = raw_lines[i].expandtabs(4)
        number = i + 1
        buffer = raw.strip()
        if not buffer or buffer.startswith("#"):
            i += 1
            continue
        indent = len(raw) - len(raw.lstrip(" "))
        depth, in_triple = bracket_balance(buffer)
        while (depth > 0 or in_triple or buffer.endswith("\\")) and i + 1 < len(raw_lines):
            i += 1
            nxt = raw_lines[i]
            if in_triple:
                buffer += "\n" + nxt
            elif buffer.endswith("\\"):
                buffer = buffer[:-1].rstrip() + " " + nxt.strip()
            else:
                buffer += " " + nxt.strip()
            depth, in_triple = bracket_balance(buffer)
        text = strip_comment(buffer).strip()
        i += 1
        if not text:
            continue
        if find_header_colon(text) < 0 and ";" in text:
            result.extend(LogicalLine(part, indent, number) for part in split_top_level(text, ";") if part)
        else:
            result.append(LogicalLine(text, indent, number))
    return result


def find_block_end(lines: List[LogicalLine], header_index: int) -> int:
    """Index one past the last line of the block under `lines[header_index]`.

    The first line after the header fixes the block's indentation; the block
    ends at the first later line indented less than that. When the next line
    is not indented deeper than the header the block is empty and
    ``header_index + 1`` is returned.
    """
    start = header_index + 1
    if header_index < 0 or start >= len(lines):
        return max(0, min(start, len(lines)))
    if lines[start].indent <= lines[header_index].indent:
        return start
    width = lines[start].indent
    end = start
    while end < len(lines) and lines[end].indent >= width:
        end += 1
    return end


class StatementKind(enum.Enum):
    DEFINITION = "definition"
    CLASS = "class"
    IMPORT = "import"
    TRY = "try"
    RETURN = "return"
    RAISE = "raise"
    PASS = "pass"
    BREAK = "break"
    CONTINUE = "continue"
    GLOBAL = "global"
    WITH = "with"
    ASSERT = "assert"
    ASSIGNMENT = "assignment"
    PRINT = "print"
    LOOP_FOR = "for"
    LOOP_WHILE = "while"
    CONDITIONAL = "if"
    CLAUSE = "clause"
    EXPRESSION = "expression"


_KEYWORD_KINDS = {
    "def": StatementKind.DEFINITION,
    "class": StatementKind.CLASS,
    "import": StatementKind.IMPORT,
    "from": StatementKind.IMPORT,
    "try": StatementKind.TRY,
    "return": StatementKind.RETURN,
    "raise": StatementKind.RAISE,
    "pass": StatementKind.PASS,
    "break": StatementKind.BREAK,
    "continue": StatementKind.CONTINUE,
    "global": StatementKind.GLOBAL,
    "nonlocal": StatementKind.GLOBAL,
    "with": StatementKind.WITH,
    "assert": StatementKind.ASSERT,
}

_COMPOUND_KINDS = {
    "for": StatementKind.LOOP_FOR,
    "while": StatementKind.LOOP_WHILE,
    "if": StatementKind.CONDITIONAL,
    "elif": StatementKind.CLAUSE,
    "else": StatementKind.CLAUSE,
    "except": StatementKind.CLAUSE,
    "finally": StatementKind.CLAUSE,
}


def _first_word(text: str) -> str:
    m = _FIRST_WORD.match(text)
    return m.group() if m else ""


def classify_line(text: str) -> StatementKind:
    """Decide what kind of statement a logical line holds."""
    word = _first_word(text)
    if word in _KEYWORD_KINDS:
        return _KEYWORD_KINDS[word]
    if word not in _COMPOUND_WORDS and find_assignment(text) is not None:
        return StatementKind.ASSIGNMENT
    if word == "print" and text[5:6] == "(" and matching_close(text, 5) == len(text) - 1:
        return StatementKind.PRINT
    return _COMPOUND_KINDS.get(word, StatementKind.EXPRESSION)


@dataclass
class RunResult:
    """Outcome of `Interpreter.run`: captured output plus the failure, if any."""

    output_lines: List[str]
    warnings: List[str]
    error: Optional[EvalError] = None

    @property
    def output(self) -> str:
        return "\n".join(self.output_lines)

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def diagnostic(self) -> Optional[str]:
        return self.error.describe() if self.error is not None else None


class Interpreter:
    """Executes Gauntlet programs.

    One instance runs one program at a time; all per-run state is reset at
    the start of `run`.

    Tunable attributes (defaults are set in __init__, overridable per run via
    the `settings` dict):
    - max_loop: iterations a single `while` statement may run
    - max_call_depth: nested user function calls before a RecursionError
    - max_output_chars: total characters `print` may produce
    - max_steps: statements a single run may execute
    - max_time_s: wall-clock seconds a single run may take
    """

    def __init__(self):
        self.max_loop = 1000
        self.max_call_depth = 30
        self.max_output_chars = 20000
        self.max_steps = 100000
        self.max_time_s = 1.5
        self._call_depth = 0
        self._steps = 0
        self._deadline = 0.0
        self._output: List[str] = []
        self._pending = ""
        self._chars = 0
        self._warnings: List[str] = []
        self._inputs: List[str] = []
        self._active_errors: List[EvalError] = []
        self._line_number = 0
        self._handlers = {
            StatementKind.DEFINITION: self._handle_definition,
            StatementKind.CLASS: self._handle_class,
            StatementKind.IMPORT: self._handle_import,
            StatementKind.TRY: self._handle_try,
            StatementKind.RETURN: self._handle_return,
            StatementKind.RAISE: self._handle_raise,
            StatementKind.PASS: self._handle_simple,
            StatementKind.BREAK: self._handle_simple,
            StatementKind.CONTINUE: self._handle_simple,
            StatementKind.GLOBAL: self._handle_simple,
            StatementKind.WITH: self._handle_with,
            StatementKind.ASSERT: self._handle_assert,
            StatementKind.ASSIGNMENT: self._handle_assignment,
            StatementKind.PRINT: self._handle_print,
            StatementKind.LOOP_FOR: self._handle_for,
            StatementKind.LOOP_WHILE: self._handle_while,
            StatementKind.CONDITIONAL: self._handle_if,
            StatementKind.CLAUSE: self._handle_clause,
            StatementKind.EXPRESSION: self._handle_expression,
        }

    # --- run ------------------------------------------------------------------

    def run(
        self,
        code: str,
        inputs: Union[None, str, List[str]] = None,
        settings: Optional[Dict[str, Any]] = None,
    ) -> RunResult:
        """Execute `code` and capture what it prints.

        Args:
            code: program source
            inputs: lines served to `input()`, as a list or newline separated text
            settings: optional overrides for the tunable attributes

        Returns:
            RunResult with the output produced before any failure, the
            warnings raised along the way and the failure itself (or None).
        """
        settings_local: Dict[str, Any] = settings or {}
        self.max_loop = int(settings_local.get("max_loop", self.max_loop))
        self.max_call_depth = int(settings_local.get("max_call_depth", self.max_call_depth))
        self.max_output_chars = int(settings_local.get("max_output_chars", self.max_output_chars))
        self.max_steps = int(settings_local.get("max_steps", self.max_steps))
        self.max_time_s = float(settings_local.get("max_time_s", self.max_time_s))

        if isinstance(inputs, str):
            inputs = inputs.splitlines()
        self._inputs = list(inputs or [])
        self._output = []
        self._pending = ""
        self._chars = 0
        self._warnings = []
        self._active_errors = []
        self._call_depth = 0
        self._steps = 0
        self._deadline = time.time() + self.max_time_s

        lines = split_logical_lines(code)
        logger.debug("run start: %d logical lines", len(lines))
        env: Dict[str, Any] = {}
        error: Optional[EvalError] = None
        try:
            self.execute_block(lines, env)
        except EvalError as e:
            error = e
        except RecursionError:
            error = EvalError("maximum recursion depth exceeded", kind="RecursionError", line=self._line_number)
        except Exception as e:
            # host-level failures (huge int conversions, memory) still end as a diagnostic
            error = EvalError(str(e), kind=type(e).__name__, line=self._line_number)
        if self._pending:
            self._output.append(self._pending)
            self._pending = ""
        if error is not None:
            logger.info("run failed: %s", error.describe())
        logger.debug("run end: %d output lines, %d warnings", len(self._output), len(self._warnings))
        return RunResult(list(self._output), list(self._warnings), error)

    # --- dispatch ----------------------------------------------------------------

    def execute_line(self, lines: List[LogicalLine], index: int, env: Dict[str, Any]) -> Tuple[int, Flow]:
        """Execute the statement at `lines[index]`; return (consumed, flow)."""
        line = lines[index]
        self._line_number = line.number
        handler = self._handlers[classify_line(line.text)]
        try:
            self._tick()
            return handler(lines, index, env)
        except EvalError as e:
            if e.line is None:
                e.line = line.number
                e.text = line.text
            raise
        except RecursionError:
            raise
        except Exception as e:
            raise EvalError(str(e), kind=type(e).__name__, line=line.number, text=line.text) from e

    def _tick(self) -> None:
        """Charge one step against the run's step and wall-clock budgets."""
        self._steps += 1
        if self._steps > self.max_steps:
            raise EvalError(f"Step limit of {self.max_steps} exceeded", kind="StepLimitError")
        if time.time() > self._deadline:
            raise EvalError(f"Time limit of {self.max_time_s}s exceeded", kind="TimeoutError")

    def execute_block(self, block: List[LogicalLine], env: Dict[str, Any]) -> Flow:
        i = 0
        while i < len(block):
            consumed, flow = self.execute_line(block, i, env)
            if not flow.is_normal:
                return flow
            i += max(1, consumed)
        return NORMAL

    def _eval(self, expr: str, env: Dict[str, Any]) -> Any:
        return eval_expr(expr, env, self)

    def _header(self, line: LogicalLine, keyword: str) -> Tuple[str, str]:
        """Split a compound statement line into (header expression, inline body)."""
        colon = find_header_colon(line.text)
        if colon < 0:
            raise EvalError(f"expected ':' after '{keyword}'", kind="SyntaxError")
        return line.text[len(keyword):colon].strip(), line.text[colon + 1:].strip()

    def _body(self, lines: List[LogicalLine], index: int, inline: str) -> Tuple[List[LogicalLine], int]:
        """Return the body of the header at `index` and the index just past it."""
        if inline:
            line = lines[index]
            parts = split_top_level(inline, ";")
            return [LogicalLine(part, line.indent + 1, line.number) for part in parts if part], index + 1
        end = find_block_end(lines, index)
        return lines[index + 1:end], end

    def _clause_at(self, lines: List[LogicalLine], pos: int, indent: int, words) -> str:
        if pos < len(lines) and lines[pos].indent == indent:
            word = _first_word(lines[pos].text)
            if word in words:
                return word
        return ""

    # --- definitions ---------------------------------------------------------------

    def _parameters(self, text: str, env: Dict[str, Any]) -> Tuple[List[str], Dict[str, Any]]:
        params: List[str] = []
        defaults: Dict[str, Any] = {}
        for part in split_top_level(text):
            if not part or part in ("*", "/"):
                continue
            name, sep, default = part.partition("=")
            name = name.split(":")[0].strip().lstrip("*")
            params.append(name)
            if sep:
                defaults[name] = self._eval(default, env)
        return params, defaults

    def _handle_definition(self, lines, index, env):
        m = _DEF.fullmatch(lines[index].text)
        if not m:
            raise EvalError("invalid function definition", kind="SyntaxError")
        name, params_text, inline = m.group(1), m.group(2), m.group(3).strip()
        params, defaults = self._parameters(params_text, env)
        body, end = self._body(lines, index, inline)
        env[name] = Function(name, params, defaults, body, env, self)
        return end - index, NORMAL

    def make_lambda(self, params_text: str, body_text: str, env: Dict[str, Any]) -> Function:
        params, defaults = self._parameters(params_text, env)
        body = [LogicalLine("return " + body_text.strip(), 1, self._line_number)]
        return Function("<lambda>", params, defaults, body, env, self)

    def call_function(self, fn: Function, args: List[Any], kwargs: Dict[str, Any]) -> Any:
        """Invoke a user function with a fresh copy of its defining scope."""
        if self._call_depth >= self.max_call_depth:
            raise EvalError("maximum recursion depth exceeded", kind="RecursionError")
        if len(args) > len(fn.params):
            raise EvalError(
                f"{fn.name}() takes {len(fn.params)} positional arguments but {len(args)} were given",
                kind="TypeError",
            )
        scope = dict(fn.scope)
        for name, value in zip(fn.params, args):
            scope[name] = value
        for name, value in kwargs.items():
            if name not in fn.params:
                raise EvalError(f"{fn.name}() got an unexpected keyword argument '{name}'", kind="TypeError")
            scope[name] = value
        for name in fn.params[len(args):]:
            if name not in kwargs:
                scope[name] = fn.defaults.get(name, UNDEFINED)
        self._call_depth += 1
        try:
            flow = self.execute_block(fn.body, scope)
        finally:
            self._call_depth -= 1
        if flow.kind is FlowKind.RETURN:
            return flow.value
        return None

    def _handle_class(self, lines, index, env):
        m = _CLASS.fullmatch(lines[index].text)
        if not m:
            raise EvalError("invalid class definition", kind="SyntaxError")
        body, end = self._body(lines, index, m.group(3).strip())
        field_name, default = self._sniff_field(body)
        parent = (m.group(2) or "").strip() or None
        env[m.group(1)] = ClassTemplate(m.group(1), parent, field_name, default)
        return end - index, NORMAL

    def _sniff_field(self, body: List[LogicalLine]) -> Tuple[str, Any]:
        """Field name and default taken from the class's `__init__`, if any."""
        for pos, line in enumerate(body):
            m = _INIT_DEF.match(line.text)
            if not m:
                continue
            params, defaults = self._parameters(m.group(1), {})
            default = defaults.get(params[1], 0) if len(params) > 1 else 0
            for inner in body[pos + 1:find_block_end(body, pos)]:
                found = _SELF_FIELD.match(inner.text)
                if found:
                    return found.group(1), default
            return "balance", default
        return "balance", 0

    def _handle_import(self, lines, index, env):
        text = lines[index].text
        m = _FROM_IMPORT.fullmatch(text)
        if m:
            module = NATIVE_MODULES.get(m.group(1))
            names = split_top_level(m.group(2).strip("()"))
            for part in names:
                name, _, alias = part.partition(" as ")
                if module is not None and name.strip() in module.attrs:
                    env[(alias or name).strip()] = module.attrs[name.strip()]
            if module is None:
                logger.debug("ignoring import from unknown module %s", m.group(1))
            return 1, NORMAL
        for part in split_top_level(text[len("import"):]):
            name, _, alias = part.partition(" as ")
            module = NATIVE_MODULES.get(name.strip())
            if module is None:
                logger.debug("ignoring import of unknown module %s", name.strip())
                continue
            env[(alias or name).strip()] = module
        return 1, NORMAL

    # --- simple statements ------------------------------------------------------------

    def _handle_simple(self, lines, index, env):
        word = _first_word(lines[index].text)
        if word == "break":
            return 1, BREAK
        if word == "continue":
            return 1, CONTINUE
        return 1, NORMAL

    def _handle_return(self, lines, index, env):
        rest = lines[index].text[len("return"):].strip()
        return 1, Flow.returning(self._eval(rest, env) if rest else None)

    def _handle_raise(self, lines, index, env):
        rest = lines[index].text[len("raise"):].strip()
        if not rest:
            if self._active_errors:
                raise self._active_errors[-1]
            raise EvalError("No active exception to reraise", kind="RuntimeError")
        cause = find_keyword(rest, "from")
        if cause:
            rest = rest[:cause[0][0]].strip()
        m = _RAISE_CALL.fullmatch(rest)
        if m and not isinstance(env.get(m.group(1)), ExceptionValue):
            message = ""
            if m.group(2):
                args, _kwargs = Evaluator(env, self).arguments(m.group(2))
                message = display(args[0]) if args else ""
            raise EvalError(message, kind=m.group(1))
        value = self._eval(rest, env)
        if isinstance(value, ExceptionValue):
            raise EvalError(value.message, kind=value.kind)
        raise EvalError("exceptions must derive from BaseException", kind="TypeError")

    def _handle_assert(self, lines, index, env):
        parts = split_top_level(lines[index].text[len("assert"):])
        if parts and not self._eval(parts[0], env):
            message = display(self._eval(parts[1], env)) if len(parts) > 1 else ""
            raise EvalError(message, kind="AssertionError")
        return 1, NORMAL

    def _handle_assignment(self, lines, index, env):
        target, op, value_text = find_assignment(lines[index].text)
        evaluator = Evaluator(env, self)
        targets = [target]
        if op == "=":
            nested = find_assignment(value_text)
            while (
                nested is not None
                and nested[1] == "="
                and _CHAIN_TARGET.fullmatch(nested[0])
                and _first_word(nested[0]) != "lambda"
            ):
                targets.append(nested[0])
                value_text = nested[2]
                nested = find_assignment(value_text)
        value = evaluator.evaluate(value_text)
        if op != "=":
            current = evaluator.evaluate(target)
            if op == "+=" and isinstance(current, list) and isinstance(value, list):
                current.extend(value)
                value = current
            else:
                value = binary_op(op[:-1], current, value)
        for name in targets:
            evaluator.assign(name, value)
        return 1, NORMAL

    def _handle_print(self, lines, index, env):
        text = lines[index].text
        args, kwargs = Evaluator(env, self).arguments(text[len("print("):-1])
        self.emit(args, kwargs)
        return 1, NORMAL

    def _handle_expression(self, lines, index, env):
        self._eval(lines[index].text, env)
        return 1, NORMAL

    def _handle_clause(self, lines, index, env):
        # an elif/else/except/finally not attached to anything: skip its block
        return find_block_end(lines, index) - index, NORMAL

    # --- output and input ---------------------------------------------------------------

    def emit(self, args: List[Any], kwargs: Dict[str, Any]) -> None:
        """Write the text a `print(*args, sep=..., end=...)` call produces."""
        sep = kwargs.get("sep")
        end = kwargs.get("end")
        sep = " " if sep is None else display(sep)
        end = "\n" if end is None else display(end)
        self._write(sep.join(display(a) for a in args) + end)

    def _write(self, text: str) -> None:
        self._chars += len(text)
        if self._chars > self.max_output_chars:
            raise EvalError("Output length limit reached", kind="OutputLimitError")
        pieces = (self._pending + text).split("\n")
        self._output.extend(pieces[:-1])
        self._pending = pieces[-1]

    def read_input(self, prompt: Any = None) -> str:
        if not self._inputs:
            raise EvalError("EOF when reading a line", kind="EOFError")
        return self._inputs.pop(0)

    # --- compound statements ------------------------------------------------------------

    def _handle_if(self, lines, index, env):
        line = lines[index]
        condition, inline = self._header(line, "if")
        body, pos = self._body(lines, index, inline)
        branches: List[Tuple[Optional[str], List[LogicalLine]]] = [(condition, body)]
        while True:
            word = self._clause_at(lines, pos, line.indent, ("elif", "else"))
            if not word:
                break
            condition, inline = self._header(lines[pos], word)
            body, pos = self._body(lines, pos, inline)
            branches.append((condition if word == "elif" else None, body))
            if word == "else":
                break
        consumed = pos - index
        for condition, body in branches:
            if condition is None or self._eval(condition, env):
                return consumed, self.execute_block(body, env)
        return consumed, NORMAL

    def _loop_else(self, lines, pos: int, indent: int) -> Tuple[Optional[List[LogicalLine]], int]:
        if not self._clause_at(lines, pos, indent, ("else",)):
            return None, pos
        _, inline = self._header(lines[pos], "else")
        return self._body(lines, pos, inline)

    def _handle_for(self, lines, index, env):
        line = lines[index]
        header, inline = self._header(line, "for")
        spans = find_keyword(header, "in")
        if not spans:
            raise EvalError("invalid for statement", kind="SyntaxError")
        target, source = header[:spans[0][0]].strip(), header[spans[0][1]:].strip()
        body, end = self._body(lines, index, inline)
        else_body, end = self._loop_else(lines, end, line.indent)
        consumed = end - index

        iterable = self._eval(source, env)
        items = list(iterable) if isinstance(iterable, (list, str)) else []
        evaluator = Evaluator(env, self)
        for item in items:
            evaluator.assign(target, item)
            flow = self.execute_block(body, env)
            if flow.kind is FlowKind.BREAK:
                return consumed, NORMAL
            if flow.kind is FlowKind.RETURN:
                return consumed, flow
        if else_body is not None:
            return consumed, self.execute_block(else_body, env)
        return consumed, NORMAL

    def _handle_while(self, lines, index, env):
        line = lines[index]
        condition, inline = self._header(line, "while")
        body, end = self._body(lines, index, inline)
        else_body, end = self._loop_else(lines, end, line.indent)
        consumed = end - index

        iterations = 0
        while iterations < self.max_loop and self._eval(condition, env):
            iterations += 1
            flow = self.execute_block(body, env)
            if flow.kind is FlowKind.BREAK:
                return consumed, NORMAL
            if flow.kind is FlowKind.RETURN:
                return consumed, flow
        if iterations >= self.max_loop:
            warning = f"While iterations limited to {self.max_loop}"
            if warning not in self._warnings:
                self._warnings.append(warning)
            logger.warning("while loop at line %d stopped after %d iterations", line.number, iterations)
            return consumed, NORMAL
        if else_body is not None:
            return consumed, self.execute_block(else_body, env)
        return consumed, NORMAL

    def _handle_with(self, lines, index, env):
        header, inline = self._header(lines[index], "with")
        body, end = self._body(lines, index, inline)
        evaluator = Evaluator(env, self)
        for item in split_top_level(header):
            expr, _, alias = item.partition(" as ")
            value = evaluator.evaluate(expr)
            if alias.strip():
                evaluator.assign(alias, value)
        return end - index, self.execute_block(body, env)

    def _handle_try(self, lines, index, env):
        line = lines[index]
        _, inline = self._header(line, "try")
        body, pos = self._body(lines, index, inline)
        handlers: List[Tuple[str, List[LogicalLine]]] = []
        else_body = finally_body = None
        while True:
            word = self._clause_at(lines, pos, line.indent, ("except", "else", "finally"))
            if not word:
                break
            header, inline = self._header(lines[pos], word)
            clause_body, pos = self._body(lines, pos, inline)
            if word == "except":
                handlers.append((header, clause_body))
            elif word == "else":
                else_body = clause_body
            else:
                finally_body = clause_body
        consumed = pos - index

        failure: Optional[EvalError] = None
        flow = NORMAL
        try:
            flow = self._run_guarded(body, handlers, else_body, env)
        except EvalError as e:
            failure = e
        if finally_body is not None:
            final_flow = self.execute_block(finally_body, env)
            if not final_flow.is_normal:
                return consumed, final_flow
        if failure is not None:
            raise failure
        return consumed, flow

    def _run_guarded(self, body, handlers, else_body, env) -> Flow:
        try:
            flow = self.execute_block(body, env)
        except EvalError as e:
            if not handlers or e.kind in _FATAL_KINDS:
                raise
            return self._run_handler(handlers, e, env)
        if else_body is not None and flow.is_normal:
            return self.execute_block(else_body, env)
        return flow

    def _run_handler(self, handlers, error: EvalError, env) -> Flow:
        header, body = next((h for h in handlers if _handler_matches(h[0], error.kind)), handlers[0])
        alias = header.partition(" as ")[2].strip()
        if alias:
            env[alias] = error.as_value()
        self._active_errors.append(error)
        try:
            return self.execute_block(body, env)
        finally:
            self._active_errors.pop()


def _handler_matches(header: str, kind: str) -> bool:
    types_text = header.partition(" as ")[0].strip().strip("()")
    if not types_text:
        return True
    for name in (t.strip() for t in types_text.split(",")):
        if name in ("Exception", "BaseException", kind) or _EXCEPTION_PARENTS.get(kind) == name:
            return True
    return False


def run_source(code: str, inputs: Union[None, str, List[str]] = None, settings: Optional[Dict[str, Any]] = None) -> RunResult:
    """Convenience wrapper running `code` on a fresh Interpreter."""
    return Interpreter().run(code, inputs=inputs, settings=settings)
