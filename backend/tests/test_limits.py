"""Tests for interpreter runtime limits (loop, recursion, output caps)."""

from backend.gauntlet.interpreter import Interpreter


def test_loop_cap_setting():
    it = Interpreter()
    res = it.run("n = 0\nwhile n >= 0:\n    n += 1\nprint(n)", settings={"max_loop": 5})
    assert res.output == "5"
    assert any("While iterations limited to 5" in w for w in res.warnings)


def test_while_condition_evaluated_at_most_cap_times():
    it = Interpreter()
    code = (
        "calls = []\n"
        "def cond():\n"
        "    calls.append(1)\n"
        "    return True\n"
        "while cond():\n"
        "    pass\n"
        "print(len(calls))\n"
    )
    res = it.run(code)
    assert res.output == "1000"


def test_call_depth_limit():
    it = Interpreter()
    res = it.run("def f(n):\n    return f(n + 1)\nf(0)")
    assert res.error is not None
    assert res.error.kind == "RecursionError"
    assert res.diagnostic.startswith("RecursionError: maximum recursion depth exceeded")


def test_call_depth_setting():
    it = Interpreter()
    code = "def down(n):\n    if n == 0:\n        return 0\n    return down(n - 1)\nprint(down(5))"
    assert it.run(code).output == "0"
    res = it.run(code, settings={"max_call_depth": 3})
    assert res.error is not None and res.error.kind == "RecursionError"


def test_output_limit():
    it = Interpreter()
    it.max_output_chars = 10
    res = it.run("for i in range(100):\n    print(\"abcdefghij\")")
    assert res.error is not None
    assert res.error.kind == "OutputLimitError"
    assert res.output == ""


def test_range_limit():
    it = Interpreter()
    res = it.run("for i in range(10 ** 9):\n    pass")
    assert res.error is not None
    assert res.error.kind == "MemoryError"


def test_step_limit_stops_nested_loops():
    it = Interpreter()
    code = "while True:\n    while True:\n        while True:\n            pass"
    res = it.run(code, settings={"max_steps": 500})
    assert res.error is not None
    assert res.error.kind == "StepLimitError"
    assert res.diagnostic.startswith("StepLimitError: Step limit of 500 exceeded")


def test_step_limit_cannot_be_caught():
    it = Interpreter()
    code = "try:\n    while True:\n        x = 1\nexcept Exception:\n    print('caught')"
    res = it.run(code, settings={"max_steps": 50})
    assert res.output == ""
    assert res.error is not None and res.error.kind == "StepLimitError"


def test_time_limit():
    it = Interpreter()
    res = it.run("print(1)", settings={"max_time_s": -1})
    assert res.output == ""
    assert res.error is not None and res.error.kind == "TimeoutError"


def test_budgets_reset_between_runs():
    it = Interpreter()
    code = "i = 0\nwhile i < 10:\n    i += 1\nprint(i)"
    first = it.run(code, settings={"max_steps": 20})
    second = it.run(code, settings={"max_steps": 20})
    assert first.output == second.output == "10"
