import threading
import time

import pytest

from webbench.pool import Job, WaitGroup, WorkerPool


def identity(x):
    return x


def test_rejects_non_positive_size():
    with pytest.raises(ValueError):
        WorkerPool(0)
    with pytest.raises(ValueError):
        WorkerPool(-3)


def test_identity_results_on_every_pipe():
    with WorkerPool(4) as pool:
        pipes = [pool.submit(identity, i) for i in range(100)]
        results = [p.get(timeout=5) for p in pipes]
    assert results == list(range(100))
    assert pool.last_id == 100
    assert pool.pending() == 0


def test_same_job_twice_gets_two_pipes():
    with WorkerPool(2) as pool:
        a = pool.submit(identity, "x")
        b = pool.submit(identity, "x")
        assert a is not b
        assert a.get(timeout=5) == "x"
        assert b.get(timeout=5) == "x"
    assert a.empty() and b.empty()


def test_two_workers_three_sleepers():
    """Two run in parallel, the third waits for a free worker."""
    def nap(_):
        time.sleep(0.1)
        return True

    with WorkerPool(2) as pool:
        t0 = time.perf_counter()
        pipes = [pool.submit(nap) for _ in range(3)]
        assert all(p.get(timeout=5) for p in pipes)
        dt = time.perf_counter() - t0
    assert 0.15 <= dt <= 0.25


def test_in_flight_never_exceeds_size():
    lock = threading.Lock()
    state = {"active": 0, "peak": 0}

    def work(_):
        with lock:
            state["active"] += 1
            state["peak"] = max(state["peak"], state["active"])
        time.sleep(0.01)
        with lock:
            state["active"] -= 1

    with WorkerPool(3) as pool:
        pipes = [pool.submit(work, i) for i in range(30)]
        for p in pipes:
            p.get(timeout=5)
    assert 1 <= state["peak"] <= 3


def test_size_one_runs_in_submission_order():
    order = []

    def record(i):
        order.append(i)
        return i

    with WorkerPool(1) as pool:
        pipes = [pool.submit(record, i) for i in range(50)]
        for p in pipes:
            p.get(timeout=5)
    assert order == list(range(50))


def test_fifo_dequeue_with_blocked_workers():
    gate = threading.Event()
    started = []
    lock = threading.Lock()

    def work(i):
        with lock:
            started.append(i)
        gate.wait(5)

    pool = WorkerPool(2)
    pipes = [pool.submit(work, i) for i in range(6)]
    time.sleep(0.05)
    # both workers hold the first two jobs, the rest wait in order
    assert sorted(started) == [0, 1]
    assert pool.pending() == 4
    gate.set()
    for p in pipes:
        p.get(timeout=5)
    pool.close()
    assert started[:2] in ([0, 1], [1, 0])
    assert sorted(started[2:]) == [2, 3, 4, 5]


def test_job_exception_is_returned_and_worker_survives():
    def boom(_):
        raise ValueError("bad job")

    with WorkerPool(1) as pool:
        err = pool.submit(boom).get(timeout=5)
        assert isinstance(err, ValueError)
        assert str(err) == "bad job"
        assert pool.submit(identity, 7).get(timeout=5) == 7


def test_job_exit_is_returned_and_worker_survives():
    def bail(_):
        raise SystemExit(3)

    with WorkerPool(1) as pool:
        err = pool.submit(bail).get(timeout=5)
        assert isinstance(err, SystemExit)
        assert err.code == 3
        assert pool.submit(identity, 7).get(timeout=5) == 7


def test_rejected_submit_does_not_take_an_id():
    pool = WorkerPool(1)
    pool.submit(identity, 1).get(timeout=5)
    pool.close(wait=True, timeout=5)
    with pytest.raises(RuntimeError):
        pool.submit(identity, 2)
    assert pool.last_id == 1


def test_close_drains_queue_then_rejects():
    done = []

    def work(i):
        time.sleep(0.001)
        done.append(i)

    pool = WorkerPool(1)
    for i in range(20):
        pool.submit(work, i)
    pool.close(wait=True, timeout=5)
    assert done == list(range(20))
    with pytest.raises(RuntimeError):
        pool.submit(identity, 1)


def test_recycled_jobs_are_cleared():
    pool = WorkerPool(2)
    payload = object()
    for _ in range(10):
        pool.submit(identity, payload)
    pool.close(wait=True, timeout=5)
    assert pool._free
    for job in pool._free:
        assert job.fn is None and job.arg is None and job.pipe is None and job.id == 0


def test_job_init_and_reset():
    job = Job()
    job.init(5, identity, "a")
    assert job.id == 5 and job.fn is identity and job.arg == "a"
    assert job.pipe.maxsize == 1
    job.reset()
    assert job.pipe is None and job.fn is None


def test_waitgroup_waits_for_all_done():
    wg = WaitGroup()
    wg.add(5)
    for _ in range(5):
        threading.Thread(target=lambda: (time.sleep(0.01), wg.done())).start()
    assert wg.wait(timeout=5)
    assert wg.count == 0


def test_waitgroup_timeout_and_underflow():
    wg = WaitGroup()
    assert wg.wait(timeout=0.01)
    wg.add()
    assert not wg.wait(timeout=0.02)
    wg.done()
    with pytest.raises(ValueError):
        wg.done()
    assert wg.count == 0
