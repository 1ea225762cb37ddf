import pytest

from clawbridge.bridge.models import Session

NOW = 1_700_000_000.0  # seconds
NOW_MS = NOW * 1000


class FakeGateway:
    def __init__(self, sessions=None, error=None):
        self.sessions = list(sessions or [])
        self.error = error
        self.list_calls = 0
        self.wakes = []

    def list_sessions(self):
        self.list_calls += 1
        if self.error is not None:
            raise self.error
        return list(self.sessions)

    def wake(self, text):
        self.wakes.append(text)
        return True


class FakeDashboard:
    recovery_url = "http://dash.test/api/tasks/recovery"

    def __init__(self, statuses=None, recovery=None, status_error=None, ok=True):
        self.statuses = dict(statuses or {})
        self.recovery = list(recovery or [])
        self.status_error = status_error
        self.ok = ok
        self.published = []
        self.recovery_calls = 0

    def publish(self, agent_id, state, task="", source="normal"):
        self.published.append((agent_id, state, task, source))
        return self.ok

    def publish_update(self, update):
        return self.publish(update.agent_id, update.state, update.task, update.source)

    def fetch_statuses(self):
        if self.status_error is not None:
            raise self.status_error
        return dict(self.statuses)

    def fetch_recovery_tasks(self):
        self.recovery_calls += 1
        return list(self.recovery)


def session(agent_id, age_s, scope="main"):
    return Session(key=f"agent:{agent_id}:{scope}", updated_at=NOW_MS - age_s * 1000)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def dashboard():
    return FakeDashboard()


@pytest.fixture
def clock():
    return lambda: NOW
