"""End-to-end grading scenarios through the public grader API."""

from backend.gauntlet.grader import Challenge, TestCase, Verdict, coerce_challenge, evaluate, grade


def test_print_variable():
    verdict = evaluate('message = "Hello, World!"\nprint(message)', {"expectedOutput": "Hello, World!"})
    assert verdict.success
    assert verdict.output == "Hello, World!"
    assert (verdict.passed, verdict.total) == (1, 1)


def test_arithmetic_is_evaluated_before_printing():
    verdict = evaluate("print(15 + 27)", Challenge(expected_output="42"))
    assert verdict.success
    assert verdict.output == "42"


def test_counting_loop_multiline_expectation():
    code = "for i in range(1, 11):\n    print(i)"
    verdict = evaluate(code, {"expected_output": "\n".join(str(i) for i in range(1, 11))})
    assert verdict.success


def test_hardcoding_rule_short_circuits():
    verdict = grade("print(5)", {"expectedOutput": "5"}, ["No hardcoding values! Use variables."])
    assert not verdict.success
    assert verdict.passed == 0
    assert verdict.violations == ["Rule violation: No hardcoding values allowed! Use variables instead."]
    assert verdict.output == ""


def test_bubble_sort():
    code = (
        "arr = [64, 34, 25, 12, 22, 11, 90]\n"
        "n = len(arr)\n"
        "for i in range(n):\n"
        "    for j in range(0, n - i - 1):\n"
        "        if arr[j] > arr[j + 1]:\n"
        "            arr[j], arr[j + 1] = arr[j + 1], arr[j]\n"
        "print(arr)\n"
    )
    verdict = grade(code, {"expectedOutput": "[11, 12, 22, 25, 34, 64, 90]"}, ["No built-in sort functions allowed"])
    assert verdict.success
    assert verdict.output == "[11, 12, 22, 25, 34, 64, 90]"


def test_infinite_loop_still_returns_verdict():
    verdict = evaluate("while True:\n    pass", {"expectedOutput": ""})
    assert isinstance(verdict, Verdict)
    assert verdict.success
    assert verdict.warnings == ["While iterations limited to 1000"]


def test_runtime_failure_is_reported():
    verdict = evaluate('print("hi")\nprint(len(5))', {"expectedOutput": "hi"})
    assert not verdict.success
    assert verdict.output == "hi"
    assert verdict.diagnostic.startswith("TypeError")
    assert verdict.passed == 0


def test_no_expectation_succeeds_when_run_completes():
    verdict = evaluate("x = 1", None)
    assert verdict.success
    assert verdict.output == ""


def test_test_cases_feed_input():
    code = "name = input()\nprint('Hello, ' + name)"
    challenge = {
        "testCases": [
            {"input": "Ada", "expectedOutput": "Hello, Ada"},
            {"input": "Bob", "expectedOutput": "Hello, Bob"},
            {"input": "Cy", "expectedOutput": "nope"},
        ]
    }
    verdict = evaluate(code, challenge)
    assert (verdict.passed, verdict.total) == (2, 3)
    assert not verdict.success
    assert verdict.output == "Hello, Ada"


def test_expected_output_wins_over_test_cases():
    challenge = Challenge(expected_output="1", test_cases=[TestCase("", "2")])
    verdict = evaluate("print(1)", challenge)
    assert verdict.success
    assert verdict.total == 1


def test_coerce_challenge_accepts_both_spellings():
    camel = coerce_challenge({"expectedOutput": "a", "testCases": [{"input": "x", "expectedOutput": "y"}]})
    snake = coerce_challenge({"expected_output": "a", "test_cases": [{"input": "x", "expected_output": "y"}]})
    assert camel == snake
    assert camel.test_cases == [TestCase("x", "y")]


def test_verdict_to_dict_shape():
    data = evaluate("print(2)", {"expectedOutput": "2"}).to_dict()
    assert set(data) == {"success", "output", "diagnostic", "passed", "total", "violations", "warnings"}
