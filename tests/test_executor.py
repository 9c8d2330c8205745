import threading

import pytest

from marketlens.tasks.executor import BoundedExecutor, CeleryDispatcher, PoolDispatcher


def _thread_name():
    return threading.current_thread().name


@pytest.fixture()
def executor():
    ex = BoundedExecutor(max_workers=1, queue_capacity=1, grace_period=5)
    yield ex
    ex.shutdown(wait=True)


def test_jobs_run_on_named_worker_threads(executor):
    assert executor.submit(_thread_name).result(timeout=5).startswith("analysis_")


def test_overflow_runs_on_caller_thread(executor):
    release = threading.Event()
    running = executor.submit(release.wait, 5)
    queued = executor.submit(_thread_name)

    overflow = executor.submit(_thread_name)
    # completed synchronously, before the pool freed up
    assert overflow.done()
    assert overflow.result() == threading.current_thread().name
    assert executor.pending_count == 2

    release.set()
    assert running.result(timeout=5) is True
    assert queued.result(timeout=5).startswith("analysis_")


def test_overflow_errors_stay_on_the_future(executor):
    release = threading.Event()
    executor.submit(release.wait, 5)
    executor.submit(release.wait, 5)

    overflow = executor.submit(lambda: 1 / 0)
    release.set()
    with pytest.raises(ZeroDivisionError):
        overflow.result()


def test_slots_are_released(executor):
    for _ in range(5):
        executor.submit(_thread_name).result(timeout=5)
    assert executor.pending_count == 0


def test_shutdown_gracefully_drains_outstanding_jobs(executor):
    done = []
    release = threading.Event()

    def job(n):
        release.wait(5)
        done.append(n)

    executor.submit(job, 1)
    executor.submit(job, 2)
    threading.Timer(0.05, release.set).start()

    assert executor.shutdown_gracefully() is True
    assert sorted(done) == [1, 2]


def test_shutdown_gracefully_reports_timeout():
    ex = BoundedExecutor(max_workers=1, queue_capacity=1)
    release = threading.Event()
    ex.submit(release.wait, 5)
    try:
        assert ex.shutdown_gracefully(grace_period=0.05) is False
    finally:
        release.set()


def test_submit_after_shutdown_is_rejected(executor):
    executor.shutdown_gracefully()
    with pytest.raises(RuntimeError):
        executor.submit(_thread_name)


def test_pool_dispatcher_runs_execute_in_app_context(app, monkeypatch):
    orchestrator = app.extensions["analysis_orchestrator"]
    seen = []
    monkeypatch.setattr(orchestrator, "execute", lambda job_id: seen.append(job_id))

    dispatcher = PoolDispatcher(app, BoundedExecutor(max_workers=1, queue_capacity=1))
    try:
        dispatcher.dispatch("job-1").result(timeout=5)
    finally:
        dispatcher.shutdown()
    assert seen == ["job-1"]


def test_celery_dispatcher_enqueues_task(monkeypatch):
    from marketlens.tasks import analysis_tasks

    calls = []

    class FakeAsyncResult:
        id = "task-1"

    def fake_delay(job_id):
        calls.append(job_id)
        return FakeAsyncResult()

    monkeypatch.setattr(analysis_tasks.run_analysis, "delay", fake_delay)
    assert CeleryDispatcher().dispatch("job-1").id == "task-1"
    assert calls == ["job-1"]
