import pytest
from fastapi.testclient import TestClient

from config import Settings
from engine.db import build_session_factory
from engine.errors import RunnerUnavailableError
from engine.job_store import JobStore
from main import create_app
from tools.base import IN_PROGRESS, BuildInfo, RunnerAdapter, TriggeredBuild

API_KEY = "test-key"


class FakeRunner(RunnerAdapter):
    """In-process runner: hands out build numbers and reports whatever status a test sets."""

    def __init__(self):
        self.next_build = 123
        self.triggered = []
        self.statuses = {}
        self.logs = {}
        self.fail_trigger = False
        self.fail_status = False
        self.status_calls = 0

    def trigger(self, parameters):
        if self.fail_trigger:
            raise RunnerUnavailableError("Jenkins API request failed: connection refused")
        external_id = str(self.next_build)
        self.next_build += 1
        self.triggered.append(parameters)
        self.statuses[external_id] = IN_PROGRESS
        return TriggeredBuild(
            external_id=external_id,
            status=IN_PROGRESS,
            url=f"http://jenkins/job/scan-pipeline/{external_id}",
            name="scan-pipeline",
        )

    def get_status(self, external_id):
        self.status_calls += 1
        if self.fail_status:
            raise RunnerUnavailableError("Jenkins API request failed: timed out")
        return BuildInfo(
            external_id=external_id,
            status=self.statuses.get(external_id, IN_PROGRESS),
            result=None,
            url=None,
            timestamp=None,
        )

    def get_log(self, external_id):
        if self.fail_status:
            raise RunnerUnavailableError("Jenkins API request failed: timed out")
        return self.logs.get(external_id, "")

    def is_running(self, external_id):
        try:
            return self.get_status(external_id).status == IN_PROGRESS
        except RunnerUnavailableError:
            return False


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        api_key=API_KEY,
        database_url=f"sqlite:///{tmp_path / 'scan_jobs.db'}",
    )


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def store(settings):
    return JobStore(build_session_factory(settings.database_url))


@pytest.fixture
def app(settings, runner, store):
    return create_app(settings=settings, runner=runner, store=store)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def auth_headers():
    return {"x-api-key": API_KEY}
