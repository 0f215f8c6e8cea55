import os
import multiprocessing
import time
import random
try:
    import requests
except Exception:
    import pytest as _pytest
    _pytest.skip("requests not installed; skipping process-level concurrency test", allow_module_level=True)
import pytest


def _start_server(port: int):
    # run uvicorn in this process hosting the FastAPI app
    import uvicorn
    from backend.app import main

    # uvicorn.run is blocking; run in this process so other processes can use HTTP
    uvicorn.run(main.app, host="127.0.0.1", port=port, log_level="warning")


def _worker(port: int, n_requests: int, q: multiprocessing.Queue, seed: int):
    random.seed(seed)
    sess = requests.Session()
    for _ in range(n_requests):
        kind = random.choice(["print", "loop", "sort"])
        if kind == "print":
            value = random.randint(1, 1000)
            payload = {"code": f"x = {value}\nprint(x)", "expectedOutput": str(value)}
        elif kind == "loop":
            times = random.randint(1, 200)
            payload = {"code": f"for i in range({times}):\n    last = i\nprint(last)", "expectedOutput": str(times - 1)}
        else:
            payload = {
                "code": "print(sorted([3, 1, 2]))",
                "expectedOutput": "[1, 2, 3]",
                "rules": ["No built-in sort functions"],
            }
        try:
            r = sess.post(f"http://127.0.0.1:{port}/evaluate", json=payload, timeout=10)
            q.put((kind, r.status_code, r.json()))
        except Exception as e:
            q.put((kind, "ERR", str(e)))


@pytest.mark.stress
def test_process_level_concurrency_stress():
    # start a real HTTP server in a separate process to exercise process boundaries
    # Allow CI or local runners to tune these via env vars
    port = int(os.getenv("GAUNTLET_STRESS_PORT", "8001"))
    server = multiprocessing.Process(target=_start_server, args=(port,), daemon=True)
    server.start()

    # wait for server to be ready
    ready = False
    for _ in range(80):
        try:
            r = requests.get(f"http://127.0.0.1:{port}/rules", timeout=1)
            if r.status_code == 200:
                ready = True
                break
        except Exception:
            time.sleep(0.125)
    if not ready:
        server.terminate()
        pytest.skip("uvicorn server failed to start")

    n_workers = int(os.getenv("GAUNTLET_STRESS_WORKERS", "8"))
    n_requests_per_worker = int(os.getenv("GAUNTLET_STRESS_REQS_PER_WORKER", "10"))
    q: multiprocessing.Queue = multiprocessing.Queue()
    workers = [
        multiprocessing.Process(target=_worker, args=(port, n_requests_per_worker, q, i))
        for i in range(n_workers)
    ]

    for w in workers:
        w.start()

    for w in workers:
        w.join(timeout=30)

    results = []
    while not q.empty():
        results.append(q.get())

    server.terminate()
    server.join(timeout=5)

    expected = n_workers * n_requests_per_worker
    assert len(results) == expected, f"expected {expected} results, got {len(results)}"

    for kind, status, body in results:
        assert status == 200, f"bad status: {status}"
        if kind == "sort":
            assert body["success"] is False and body["violations"]
        else:
            assert body["success"] is True, body
