"""Shared fixtures: all Jenkins calls are mocked."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import jenkins
import pytest

from jenkins_jj.config import ConfigStore, Settings
from jenkins_jj.facade import Orchestrator
from jenkins_jj.models import Environment
from jenkins_jj.transport import Transport


class FakeClock:
    """Stands in for the ``time`` module inside the polling loops."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def console_response(body: str | bytes, *, more: bool, size: int | None = None) -> MagicMock:
    """Build a fake ``progressiveText`` response."""
    data = body.encode("utf-8") if isinstance(body, str) else body
    response = MagicMock()
    response.content = data
    response.headers = {"X-More-Data": "true" if more else "false"}
    if size is not None:
        response.headers["X-Text-Size"] = str(size)
    return response


def start_of(req) -> int:
    """Return the ``start`` query parameter of a console request."""
    return int(req.url.rsplit("start=", 1)[1])


class FakeConsole:
    """Serves a console log in the given chunk sizes.

    The build reports ``building`` until the whole log has been served, or
    is finished from the start when ``finished=True`` (so the log must be
    drained after the terminal status was seen).
    """

    def __init__(
        self,
        client: MagicMock,
        log: str,
        chunks: list[int],
        *,
        result: str = "SUCCESS",
        finished: bool = False,
    ) -> None:
        self.data = log.encode("utf-8")
        self.chunks = list(chunks)
        self.result = result
        self.finished = finished
        self.served = 0
        self.starts: list[int] = []
        client.get_build_info.side_effect = self.build_info
        client.jenkins_request.side_effect = self.console

    def build_info(self, job: str, number: int) -> dict:
        done = self.finished or self.served >= len(self.data)
        return {
            "number": number,
            "building": not done,
            "result": self.result if done else None,
            "timestamp": 1700000000000,
            "duration": 1500 if done else 0,
        }

    def console(self, req) -> MagicMock:
        start = start_of(req)
        self.starts.append(start)
        size = self.chunks.pop(0) if self.chunks else len(self.data) - start
        end = min(start + size, len(self.data))
        self.served = max(self.served, end)
        return console_response(
            self.data[start:end], more=end < len(self.data), size=end
        )


@pytest.fixture
def clock():
    """Patch ``time`` in the polling modules with a fake clock."""
    fake = FakeClock()
    with patch("jenkins_jj.trigger.time", fake), patch("jenkins_jj.monitor.time", fake):
        yield fake


@pytest.fixture
def mock_client():
    """Return a MagicMock that replaces jenkins.Jenkins."""
    client = MagicMock(spec=jenkins.Jenkins)
    client.server = "http://j/"
    return client


@pytest.fixture
def env() -> Environment:
    return Environment(
        name="dev", url="http://j/", username="me", token="secret", is_default=True
    )


@pytest.fixture
def transport(env, mock_client) -> Transport:
    return Transport(env, mock_client)


@pytest.fixture
def store(tmp_path: Path) -> ConfigStore:
    return ConfigStore(path=tmp_path / "config.json")


@pytest.fixture
def orchestrator(store, mock_client) -> Orchestrator:
    """An orchestrator with environment 'dev' configured and a mocked client."""
    orch = Orchestrator(
        store=store,
        settings=Settings(poll_interval=1.0, queue_timeout=30.0),
        client_factory=lambda env, timeout: mock_client,
    )
    orch.set_environment("dev", "http://j/", username="me", token="secret")
    return orch
