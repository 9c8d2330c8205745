import math
import threading
import time
from datetime import date, timedelta

import pytest

from marketlens import create_app
from marketlens.models import db as _db
from marketlens.models.job import AnalysisJob
from marketlens.models.result import AnalysisResult
from marketlens.services.market_data import PricePoint


def make_prices(n=252, start=date(2025, 1, 2), base=100.0):
    """Deterministic trending, oscillating close series."""
    return [
        PricePoint(
            date=(start + timedelta(days=i)).isoformat(),
            close=round(base + 0.1 * i + 5 * math.sin(i / 7), 4),
        )
        for i in range(n)
    ]


class FakeFetcher:
    def __init__(self):
        self.reset()

    def reset(self):
        self.prices = make_prices()
        self.error = None
        self.gate = None
        self.calls = []

    def fetch(self, symbol, range_):
        self.calls.append((symbol, range_))
        if self.gate is not None:
            self.gate.wait(timeout=10)
        if self.error is not None:
            raise self.error
        return list(self.prices)


@pytest.fixture(scope="session")
def fake_fetcher():
    return FakeFetcher()


@pytest.fixture(scope="session")
def app(tmp_path_factory, fake_fetcher):
    db_path = tmp_path_factory.mktemp("db") / "marketlens.db"
    app = create_app(
        "testing",
        overrides={"SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}"},
        fetcher=fake_fetcher,
    )
    with app.app_context():
        _db.create_all()
    yield app
    app.extensions["analysis_orchestrator"].dispatcher.shutdown()
    with app.app_context():
        _db.drop_all()


def _drain(app, timeout=10):
    executor = app.extensions["analysis_orchestrator"].dispatcher.executor
    deadline = time.monotonic() + timeout
    while executor.pending_count and time.monotonic() < deadline:
        time.sleep(0.01)


@pytest.fixture(autouse=True)
def fetcher(app, fake_fetcher):
    fake_fetcher.reset()
    yield fake_fetcher
    if fake_fetcher.gate is not None:
        fake_fetcher.gate.set()
    _drain(app)
    with app.app_context():
        _db.session.query(AnalysisResult).delete()
        _db.session.query(AnalysisJob).delete()
        _db.session.commit()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def app_ctx(app):
    with app.app_context():
        yield


def wait_for_terminal(client, job_id, timeout=10):
    """Poll the status endpoint until the job leaves RUNNING; returns (payload, progress seen)."""
    seen = []
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        rv = client.get(f"/api/analysis/{job_id}/status")
        assert rv.status_code == 200
        body = rv.get_json()
        seen.append(body["progress"])
        if body["status"] != "RUNNING":
            return body, seen
        time.sleep(0.01)
    raise AssertionError(f"job {job_id} still RUNNING after {timeout}s")


@pytest.fixture()
def poll():
    return wait_for_terminal


@pytest.fixture()
def gate(fetcher):
    fetcher.gate = threading.Event()
    return fetcher.gate
