"""Unit tests validating the in-process interpreter behaviour and errors."""

from backend.gauntlet.interpreter import Interpreter


def test_print_and_assignment():
    it = Interpreter()
    code = 'x = 5\ny = x + 3\nprint("Result:")\nprint(y)'
    res = it.run(code)
    assert res.output == "Result:\n8"
    assert res.error is None
    assert res.diagnostic is None


def test_for_loop_over_list_literal_mutates_list():
    it = Interpreter()
    code = (
        "items = [3, 1, 2]\n"
        "seen = []\n"
        "for item in items:\n"
        "    seen.append(item * 2)\n"
        "print(seen)\n"
        "print(item)\n"
    )
    res = it.run(code)
    # loop variable leaks into the enclosing scope
    assert res.output == "[6, 2, 4]\n2"


def test_if_elif_else_chain():
    it = Interpreter()
    code = (
        "x = 7\n"
        "if x > 10:\n"
        '    print("big")\n'
        "elif x > 5:\n"
        '    print("medium")\n'
        "else:\n"
        '    print("small")\n'
        'print("done")\n'
    )
    res = it.run(code)
    assert res.output == "medium\ndone"


def test_no_branch_fires_leaves_state():
    it = Interpreter()
    code = "x = 1\nif x > 5:\n    x = 100\nelif x > 3:\n    x = 50\nprint(x)"
    res = it.run(code)
    assert res.output == "1"


def test_while_loop_counts():
    it = Interpreter()
    code = "i = 0\ntotal = 0\nwhile i < 5:\n    i += 1\n    total += i\nprint(total)"
    res = it.run(code)
    assert res.output == "15"
    assert res.warnings == []


def test_while_true_is_capped():
    it = Interpreter()
    res = it.run("n = 0\nwhile True:\n    n += 1\nprint(n)")
    assert res.output == "1000"
    assert "While iterations limited to 1000" in res.warnings
    assert res.error is None


def test_function_defaults_keywords_and_recursion():
    it = Interpreter()
    code = (
        'def greet(name, greeting="Hello"):\n'
        '    return greeting + ", " + name + "!"\n'
        'print(greet("Ada"))\n'
        'print(greet("Bob", greeting="Hi"))\n'
        "def fact(n):\n"
        "    if n <= 1:\n"
        "        return 1\n"
        "    return n * fact(n - 1)\n"
        "print(fact(5))\n"
    )
    res = it.run(code)
    assert res.output == "Hello, Ada!\nHi, Bob!\n120"


def test_missing_argument_is_undefined():
    it = Interpreter()
    code = "def show(a, b):\n    print(a, b)\nshow(1)"
    res = it.run(code)
    assert res.output == "1 undefined"


def test_runtime_error_keeps_partial_output():
    it = Interpreter()
    code = 'print("before")\nitems = [1, 2]\nprint(items[5])\nprint("after")'
    res = it.run(code)
    assert res.output == "before"
    assert res.error is not None
    assert res.error.kind == "IndexError"
    assert res.diagnostic == "IndexError: list index out of range (line 3)"


def test_try_except_finally():
    it = Interpreter()
    code = (
        "try:\n"
        "    x = 10 / 0\n"
        "except ZeroDivisionError as e:\n"
        '    print("caught: " + str(e))\n'
        "finally:\n"
        '    print("cleanup")\n'
        'print("end")\n'
    )
    res = it.run(code)
    assert res.output == "caught: division by zero\ncleanup\nend"


def test_raise_custom_error_and_catch():
    it = Interpreter()
    code = (
        "def check(v):\n"
        "    if v < 0:\n"
        '        raise ValueError("negative")\n'
        "    return v\n"
        "try:\n"
        "    check(-1)\n"
        "except ValueError as err:\n"
        "    print(err)\n"
    )
    res = it.run(code)
    assert res.output == "negative"


def test_uncaught_raise_becomes_diagnostic():
    it = Interpreter()
    res = it.run('print("start")\nraise ValueError("bad input")')
    assert res.output == "start"
    assert res.diagnostic == "ValueError: bad input (line 2)"


def test_class_instance_deposit_withdraw():
    it = Interpreter()
    code = (
        "class BankAccount:\n"
        "    def __init__(self, balance=100):\n"
        "        self.balance = balance\n"
        "    def deposit(self, amount):\n"
        "        self.balance += amount\n"
        "account = BankAccount(50)\n"
        "account.deposit(25)\n"
        "print(account.withdraw(100))\n"
        "print(account.balance)\n"
        "other = BankAccount()\n"
        "print(other.withdraw(30))\n"
        "print(other.balance)\n"
    )
    res = it.run(code)
    assert res.output == "0\n75\n30\n70"


def test_missing_colon_is_syntax_error():
    it = Interpreter()
    res = it.run("x = 2\nif x > 1\n    print(x)")
    assert res.error is not None
    assert res.error.kind == "SyntaxError"
    assert res.error.line == 2


def test_comprehension_and_fstring():
    it = Interpreter()
    code = (
        "nums = [1, 2, 3, 4]\n"
        "squares = [n ** 2 for n in nums if n % 2 == 0]\n"
        'print(f"squares={squares} total={sum(squares):>4}")\n'
    )
    res = it.run(code)
    assert res.output == "squares=[4, 16] total=  20"


def test_print_sep_and_end():
    it = Interpreter()
    res = it.run('print("a", "b", sep="-")\nprint("x", end="")\nprint("y")')
    assert res.output == "a-b\nxy"


def test_import_math_module():
    it = Interpreter()
    res = it.run("import math\nprint(math.sqrt(16))\nprint(math.floor(3.7))")
    assert res.output == "4.0\n3"


def test_lambda_map_filter():
    it = Interpreter()
    code = (
        "data = [1, 2, 3, 4, 5]\n"
        "evens = list(filter(lambda x: x % 2 == 0, data))\n"
        "print(list(map(lambda x: x * 10, evens)))\n"
    )
    res = it.run(code)
    assert res.output == "[20, 40]"


def test_input_reads_lines():
    it = Interpreter()
    res = it.run("a = input()\nb = input()\nprint(int(a) + int(b))", inputs="2\n3")
    assert res.output == "5"


def test_input_exhausted_is_eof_error():
    it = Interpreter()
    res = it.run("a = input()")
    assert res.error is not None
    assert res.error.kind == "EOFError"


def test_output_buffer_reset_between_runs():
    it = Interpreter()
    it.run('print("first")')
    res = it.run('print("second")')
    assert res.output == "second"
