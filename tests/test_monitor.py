"""Tests for build polling, console tailing and stopping."""

from __future__ import annotations

import jenkins
import pytest

from conftest import FakeConsole, console_response, start_of
from jenkins_jj.errors import MonitorTimeout, MonitorUnreachable, ServerError
from jenkins_jj.models import Build, BuildState, JobReference
from jenkins_jj.monitor import BuildMonitor

TIMED_OUT = jenkins.TimeoutException("Error in request: timed out")

RUNNING = {"number": 17, "building": True, "result": None, "timestamp": 1700000000000}
SUCCESS = {
    "number": 17,
    "building": False,
    "result": "SUCCESS",
    "timestamp": 1700000000000,
    "duration": 30000,
}

SAMPLE_LOG = "".join(f"[{i:03d}] step {i} ✓\n" for i in range(40))


@pytest.fixture
def monitor(transport) -> BuildMonitor:
    return BuildMonitor(transport, poll_interval=1.0, max_transient_failures=3)


@pytest.fixture
def build() -> Build:
    return Build(job=JobReference("dev", "app-build"), number=17)


# ---------------------------------------------------------------------------
# poll
# ---------------------------------------------------------------------------
class TestPoll:
    def test_running_emits_new_text(self, monitor, build, mock_client):
        mock_client.get_build_info.return_value = RUNNING
        mock_client.jenkins_request.return_value = console_response(
            "Building...\n", more=True, size=12
        )
        out: list[str] = []

        monitor.poll(build, out.append)

        assert out == ["Building...\n"]
        assert build.state is BuildState.RUNNING
        assert build.log_offset == 12
        assert start_of(mock_client.jenkins_request.call_args.args[0]) == 0

    def test_never_re_emits(self, monitor, build, mock_client):
        mock_client.get_build_info.return_value = RUNNING
        mock_client.jenkins_request.side_effect = [
            console_response("Building...\n", more=True, size=12),
            console_response("", more=True, size=12),
            console_response("step 1\n", more=True, size=19),
        ]
        out: list[str] = []

        for _ in range(3):
            monitor.poll(build, out.append)

        assert out == ["Building...\n", "step 1\n"]
        starts = [start_of(c.args[0]) for c in mock_client.jenkins_request.call_args_list]
        assert starts == [0, 12, 12]

    def test_terminal_drains_remaining_log(self, monitor, build, mock_client):
        mock_client.get_build_info.return_value = SUCCESS
        mock_client.jenkins_request.side_effect = [
            console_response("a\n", more=True, size=2),
            console_response("b\n", more=True, size=4),
            console_response("c\n", more=False, size=6),
        ]
        out: list[str] = []

        monitor.poll(build, out.append)

        assert out == ["a\n", "b\n", "c\n"]
        assert build.state is BuildState.SUCCESS
        assert build.duration == 30.0

    def test_build_number_stable(self, monitor, build, mock_client):
        mock_client.get_build_info.return_value = {**RUNNING, "number": 99}
        mock_client.jenkins_request.return_value = console_response("", more=True, size=0)

        monitor.poll(build)
        monitor.poll(build)

        assert build.number == 17

    def test_refresh_does_not_read_log(self, monitor, build, mock_client):
        mock_client.get_build_info.return_value = RUNNING

        monitor.refresh(build)

        assert build.state is BuildState.RUNNING
        mock_client.jenkins_request.assert_not_called()


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------
class TestRun:
    def test_two_chunks_then_success(self, monitor, build, mock_client, clock):
        mock_client.get_build_info.side_effect = [RUNNING, RUNNING, SUCCESS]
        mock_client.jenkins_request.side_effect = [
            console_response("Building...\n", more=True, size=12),
            console_response("Done\n", more=True, size=17),
            console_response("", more=False, size=17),
        ]
        out: list[str] = []

        result = monitor.run(build, out.append)

        assert result is build
        assert out == ["Building...\n", "Done\n"]
        assert build.state is BuildState.SUCCESS
        assert clock.sleeps == [1.0, 1.0]

    @pytest.mark.parametrize(
        "chunks",
        [
            [],  # everything in one response
            [1] * 30,
            [7, 0, 13, 0, 0, 250, 3],
            [len(SAMPLE_LOG.encode()) - 1, 1],
            [2, 1, 5, 1, 1, 4, 11, 2],  # cuts through multi-byte characters
        ],
    )
    @pytest.mark.parametrize("finished", [False, True])
    def test_log_is_prefix_consistent(
        self, monitor, build, mock_client, clock, chunks, finished
    ):
        server = FakeConsole(mock_client, SAMPLE_LOG, chunks, finished=finished)
        out: list[str] = []

        monitor.run(build, out.append)

        assert "".join(out) == SAMPLE_LOG
        assert all(out)
        assert build.log_offset == len(SAMPLE_LOG.encode())
        assert server.starts == sorted(server.starts)

    def test_failure_state(self, monitor, build, mock_client, clock):
        FakeConsole(mock_client, "boom\n", [], result="FAILURE")

        assert monitor.run(build).state is BuildState.FAILURE

    def test_transient_failures_tolerated(self, monitor, build, mock_client, clock):
        mock_client.get_build_info.side_effect = [
            RUNNING,
            TIMED_OUT,
            TIMED_OUT,
            TIMED_OUT,
            SUCCESS,
        ]
        mock_client.jenkins_request.side_effect = [
            console_response("one\n", more=True, size=4),
            console_response("two\n", more=False, size=8),
        ]
        out: list[str] = []

        monitor.run(build, out.append)

        assert out == ["one\n", "two\n"]
        assert build.state is BuildState.SUCCESS

    def test_console_failure_resumes_at_offset(self, monitor, build, mock_client, clock):
        mock_client.get_build_info.side_effect = [RUNNING, RUNNING, SUCCESS]
        mock_client.jenkins_request.side_effect = [
            console_response("one\n", more=True, size=4),
            TIMED_OUT,
            console_response("two\n", more=False, size=8),
        ]
        out: list[str] = []

        monitor.run(build, out.append)

        assert out == ["one\n", "two\n"]
        starts = [start_of(c.args[0]) for c in mock_client.jenkins_request.call_args_list]
        assert starts == [0, 4, 4]

    def test_failure_streak_exceeded(self, monitor, build, mock_client, clock):
        mock_client.get_build_info.side_effect = TIMED_OUT

        with pytest.raises(MonitorUnreachable):
            monitor.run(build)
        assert mock_client.get_build_info.call_count == 4

    def test_server_error_propagates(self, monitor, build, mock_client, clock):
        mock_client.get_build_info.side_effect = jenkins.JenkinsException(
            "Error in request. Possibly authentication failed [500]: Server Error"
        )

        with pytest.raises(ServerError):
            monitor.run(build)

    def test_should_stop(self, monitor, build, mock_client, clock):
        mock_client.get_build_info.return_value = RUNNING
        mock_client.jenkins_request.return_value = console_response("", more=True, size=0)
        ticks = iter([False, False, True])

        result = monitor.run(build, should_stop=lambda: next(ticks))

        assert result.state is BuildState.RUNNING
        assert mock_client.get_build_info.call_count == 3

    def test_timeout(self, monitor, build, mock_client, clock):
        mock_client.get_build_info.return_value = RUNNING
        mock_client.jenkins_request.return_value = console_response("", more=True, size=0)

        with pytest.raises(MonitorTimeout):
            monitor.run(build, timeout=3)
        assert clock.now == 3


# ---------------------------------------------------------------------------
# stop
# ---------------------------------------------------------------------------
class TestStop:
    def test_running(self, monitor, build, mock_client):
        build.advance(BuildState.RUNNING)

        monitor.stop(build)

        mock_client.stop_build.assert_called_once_with("app-build", 17)
        assert build.state is BuildState.RUNNING

    def test_queued(self, monitor, build, mock_client):
        monitor.stop(build)
        mock_client.stop_build.assert_called_once_with("app-build", 17)

    @pytest.mark.parametrize(
        "state", [BuildState.SUCCESS, BuildState.FAILURE, BuildState.ABORTED]
    )
    def test_terminal_is_noop(self, monitor, build, mock_client, state):
        build.advance(state)

        result = monitor.stop(build)

        assert result.state is state
        mock_client.stop_build.assert_not_called()

    def test_stop_then_poll_sees_aborted(self, monitor, build, mock_client):
        build.advance(BuildState.RUNNING)
        monitor.stop(build)
        mock_client.get_build_info.return_value = {"building": False, "result": "ABORTED"}
        mock_client.jenkins_request.return_value = console_response(
            "Aborted by me\n", more=False, size=14
        )

        monitor.poll(build)

        assert build.state is BuildState.ABORTED
