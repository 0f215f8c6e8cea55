import time

import pytest
from fastapi.testclient import TestClient

from backend.app import main
from backend.app.main import app
from backend.gauntlet import grader


@pytest.fixture(scope="module")
def client():
    client = TestClient(app)
    yield client
    client.close()


def test_evaluate_expected_output(client):
    r = client.post("/evaluate", json={"code": "print(15 + 27)", "expectedOutput": "42"})
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["output"] == "42"
    assert (body["passed"], body["total"]) == (1, 1)
    assert isinstance(body["duration_ms"], int)


def test_evaluate_snake_case_and_test_cases(client):
    payload = {
        "code": "x = int(input())\nprint(x * 2)",
        "test_cases": [{"input": "2", "expected_output": "4"}, {"input": "5", "expectedOutput": "10"}],
    }
    body = client.post("/evaluate", json=payload).json()
    assert body["success"] is True
    assert (body["passed"], body["total"]) == (2, 2)


def test_evaluate_rules_short_circuit(client):
    payload = {"code": "print(5)", "expectedOutput": "5", "rules": ["No hardcoding values!"]}
    body = client.post("/evaluate", json=payload).json()
    assert body["success"] is False
    assert len(body["violations"]) == 1


def test_evaluate_runtime_error(client):
    body = client.post("/evaluate", json={"code": "print(1 / 0)", "expectedOutput": "x"}).json()
    assert body["success"] is False
    assert body["diagnostic"] == "ZeroDivisionError: division by zero (line 1)"


def test_rules_validate_and_catalogue(client):
    r = client.post("/rules/validate", json={"code": "while True:\n    pass", "rules": ["Loops must terminate"]})
    assert r.status_code == 200
    assert r.json()["valid"] is False

    catalogue = client.get("/rules").json()
    assert len(catalogue) == 10


def test_evaluate_timeout(client, monkeypatch):
    original = grader.grade

    def slow_grade(*args, **kwargs):
        time.sleep(0.5)
        return original(*args, **kwargs)

    monkeypatch.setattr(main, "EVAL_TIMEOUT_S", 0.05)
    monkeypatch.setattr(main.grader, "grade", slow_grade)
    body = client.post("/evaluate", json={"code": "print(1)"}).json()
    assert body["success"] is False
    assert body["errors"]["code"] == "TIMEOUT"


def test_evaluate_server_error(client, monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("grader exploded")

    monkeypatch.setattr(main.grader, "grade", boom)
    body = client.post("/evaluate", json={"code": "print(1)"}).json()
    assert body["errors"] == {"code": "SERVER_ERROR", "message": "grader exploded"}
