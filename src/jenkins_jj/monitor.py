"""Follow a build's status and console log until it finishes."""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterator

from jenkins_jj.errors import MonitorTimeout, MonitorUnreachable, Unreachable
from jenkins_jj.models import Build
from jenkins_jj.transport import Transport

logger = logging.getLogger(__name__)

OutputCallback = Callable[[str], None]


class BuildMonitor:
    """Polls one build at a time and tails its console log.

    The console cursor is ``Build.log_offset``; text before it has already
    been delivered and is never delivered again.
    """

    def __init__(
        self,
        transport: Transport,
        poll_interval: float = 1.0,
        max_transient_failures: int = 3,
    ) -> None:
        self._transport = transport
        self.poll_interval = poll_interval
        self.max_transient_failures = max_transient_failures

    def refresh(self, build: Build) -> Build:
        """Fetch the current status of *build* without touching the log."""
        info = self._transport.build_info(build.job.job, build.number)
        previous = build.state
        build.update(info)
        if build.state != previous:
            logger.debug(
                "Build #%d of '%s': %s -> %s",
                build.number, build.job.job, previous.value, build.state.value,
            )
        return build

    def tail(self, build: Build) -> Iterator[str]:
        """Run one poll step, yielding new console text as it arrives.

        While the build runs a single console fetch is made. Once it is
        terminal the rest of the log is drained for as long as fetches make
        progress, so the chunks of all steps concatenate to the complete
        console log.
        """
        self.refresh(build)
        while True:
            chunk = self._transport.console(build.job.job, build.number, build.log_offset)
            progressed = chunk.next_offset > build.log_offset
            if progressed:
                build.log_offset = chunk.next_offset
            build.log_complete = not chunk.more_data
            if chunk.text:
                yield chunk.text
            if not build.is_terminal or not chunk.more_data or not progressed:
                return

    def poll(self, build: Build, on_output: OutputCallback | None = None) -> Build:
        for text in self.tail(build):
            if on_output is not None:
                on_output(text)
        return build

    def run(
        self,
        build: Build,
        on_output: OutputCallback | None = None,
        should_stop: Callable[[], bool] | None = None,
        timeout: float | None = None,
    ) -> Build:
        """Poll until the build is terminal and its log fully delivered.

        Args:
            build: The build to follow.
            on_output: Called with each new console chunk, in order.
            should_stop: Checked once per tick; returning true stops following
                and returns the build in its current, non-terminal state.
            timeout: Seconds to follow before raising ``MonitorTimeout``.

        Raises:
            MonitorUnreachable: If more than ``max_transient_failures``
                consecutive polls could not reach the server.
            MonitorTimeout: If *timeout* elapsed first.
        """
        deadline = time.monotonic() + timeout if timeout is not None else None
        failures = 0
        while True:
            try:
                self.poll(build, on_output)
            except Unreachable as e:
                failures += 1
                if failures > self.max_transient_failures:
                    raise MonitorUnreachable(
                        f"Lost contact with '{self._transport.environment.name}' while "
                        f"following build #{build.number} of '{build.job.job}': {e}"
                    ) from e
                logger.warning(
                    "Build #%d unreachable (%d/%d), retrying",
                    build.number, failures, self.max_transient_failures,
                )
            else:
                failures = 0
                if build.is_terminal and build.log_complete:
                    logger.info(
                        "Build #%d of '%s' finished: %s",
                        build.number, build.job.job, build.state.value,
                    )
                    return build

            if should_stop is not None and should_stop():
                logger.info("Stopped following build #%d", build.number)
                return build
            if deadline is not None and time.monotonic() >= deadline:
                raise MonitorTimeout(
                    f"Build #{build.number} of '{build.job.job}' did not finish "
                    f"within {timeout:g}s"
                )
            time.sleep(self.poll_interval)

    def stop(self, build: Build) -> Build:
        """Ask the server to abort *build*. A terminal build is left alone."""
        if build.is_terminal:
            logger.debug("Build #%d already %s", build.number, build.state.value)
            return build
        self._transport.stop(build.job.job, build.number)
        logger.info("Stop requested for build #%d of '%s'", build.number, build.job.job)
        return build
