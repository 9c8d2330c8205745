# marketlens/tasks/executor.py
"""
Background execution of analysis jobs.

Two dispatchers share one contract, ``dispatch(job_id)``:

- PoolDispatcher runs ``orchestrator.execute`` on a BoundedExecutor inside the
  web process (default, ``JOB_EXECUTOR=thread``).
- CeleryDispatcher enqueues the ``analysis.run`` task (``JOB_EXECUTOR=celery``).
"""
import contextvars
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait

logger = logging.getLogger(__name__)


class BoundedExecutor(ThreadPoolExecutor):
    """
    ThreadPoolExecutor with a bounded backlog and caller-runs overflow.

    At most ``max_workers`` jobs run and ``queue_capacity`` wait. A submission
    beyond that runs synchronously on the submitting thread, which slows the
    caller down instead of dropping work. ``shutdown_gracefully`` waits up to
    ``grace_period`` seconds for outstanding jobs and never interrupts one.
    """

    def __init__(self, max_workers: int = 10, queue_capacity: int = 25,
                 thread_name_prefix: str = "analysis", grace_period: float = 30):
        super().__init__(max_workers=max_workers, thread_name_prefix=thread_name_prefix)
        self.queue_capacity = queue_capacity
        self.grace_period = grace_period
        self._slots = threading.BoundedSemaphore(max_workers + queue_capacity)
        self._pending = set()
        self._pending_lock = threading.Lock()
        self._closed = False

    @property
    def pending_count(self) -> int:
        with self._pending_lock:
            return len(self._pending)

    def submit(self, fn, /, *args, **kwargs) -> Future:
        if self._closed:
            raise RuntimeError("cannot schedule new jobs after shutdown")

        if not self._slots.acquire(blocking=False):
            logger.warning("Analysis pool saturated; running job on caller thread")
            return self._run_on_caller(fn, *args, **kwargs)

        try:
            future = super().submit(fn, *args, **kwargs)
        except BaseException:
            self._slots.release()
            raise

        with self._pending_lock:
            self._pending.add(future)
        future.add_done_callback(self._release)
        return future

    def _release(self, future: Future):
        with self._pending_lock:
            self._pending.discard(future)
        self._slots.release()

    @staticmethod
    def _run_on_caller(fn, *args, **kwargs) -> Future:
        future = Future()
        future.set_running_or_notify_cancel()
        try:
            future.set_result(fn(*args, **kwargs))
        except BaseException as e:
            future.set_exception(e)
        return future

    def shutdown_gracefully(self, grace_period: float = None) -> bool:
        """Stop intake and drain. Returns True if every job finished in time."""
        if self._closed:
            return True
        self._closed = True
        timeout = self.grace_period if grace_period is None else grace_period

        with self._pending_lock:
            outstanding = set(self._pending)
        logger.info("Shutting down analysis pool: %d outstanding jobs", len(outstanding))

        _, not_done = wait(outstanding, timeout=timeout)
        if not_done:
            logger.warning(
                "Analysis pool grace period (%ss) elapsed with %d jobs still running",
                timeout, len(not_done),
            )
        # running jobs keep their threads; only queued ones are dropped
        self.shutdown(wait=False, cancel_futures=True)
        return not not_done


class PoolDispatcher:

    def __init__(self, app, executor: BoundedExecutor):
        self.app = app
        self.executor = executor

    def dispatch(self, job_id: str) -> Future:
        # carries request_id/job_id log fields into the worker thread
        ctx = contextvars.copy_context()
        return self.executor.submit(ctx.run, self._run, job_id)

    def _run(self, job_id: str):
        from marketlens.services.orchestrator import get_orchestrator

        with self.app.app_context():
            get_orchestrator().execute(job_id)

    def shutdown(self):
        self.executor.shutdown_gracefully()


class CeleryDispatcher:

    def dispatch(self, job_id: str):
        # deferred import: the task module is only needed in celery mode
        from marketlens.tasks.analysis_tasks import run_analysis

        async_res = run_analysis.delay(job_id)
        logger.info("Enqueued analysis task %s for job %s", async_res.id, job_id)
        return async_res

    def shutdown(self):
        pass


def make_dispatcher(app):
    mode = app.config.get("JOB_EXECUTOR", "thread")
    if mode == "celery":
        from marketlens.tasks.celery_app import init_celery

        init_celery(app)
        return CeleryDispatcher()

    if mode != "thread":
        raise RuntimeError(f"Unknown JOB_EXECUTOR: {mode}")

    executor = BoundedExecutor(
        max_workers=app.config["ANALYSIS_POOL_MAX_WORKERS"],
        queue_capacity=app.config["ANALYSIS_POOL_QUEUE_CAPACITY"],
        grace_period=app.config["ANALYSIS_POOL_SHUTDOWN_GRACE"],
    )
    logger.info(
        "Initialized analysis executor: maxWorkers=%s queueCapacity=%s",
        app.config["ANALYSIS_POOL_MAX_WORKERS"], app.config["ANALYSIS_POOL_QUEUE_CAPACITY"],
    )
    return PoolDispatcher(app, executor)
