"""Submit builds and follow their queue items until a build number exists."""

from __future__ import annotations

import logging
import time

from jenkins_jj.errors import (
    BuildAborted,
    JobNotFound,
    NotFound,
    ResolutionTimeout,
    Unreachable,
)
from jenkins_jj.models import Build, BuildState, JobReference, QueueItem
from jenkins_jj.transport import Transport

logger = logging.getLogger(__name__)


class JobTrigger:
    """Trigger a job and resolve the resulting queue item into a :class:`Build`.

    Jenkins assigns build numbers to queue items asynchronously and without
    notification, so :meth:`resolve_build` polls the queue item.
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

    def trigger(self, job_ref: JobReference) -> QueueItem:
        """Submit a build request.

        Raises:
            JobNotFound: If the server reports no such job.
        """
        try:
            queue_id = self._transport.trigger(job_ref.job, job_ref.parameters)
        except NotFound:
            raise JobNotFound(job_ref.job) from None
        logger.info("Job '%s' has been triggered. Queue ID: %s", job_ref.job, queue_id)
        return QueueItem(queue_id=queue_id, job=job_ref)

    def resolve_build(self, queue_item: QueueItem, timeout: float) -> Build:
        """Poll the queue item until it is assigned a build number.

        Args:
            queue_item: The item returned by :meth:`trigger`.
            timeout: Seconds to wait before giving up.

        Returns:
            The new build, in state ``QUEUED``.

        Raises:
            BuildAborted: If the item was cancelled before it started.
            ResolutionTimeout: If no build number appeared in time.
            Unreachable: If more than ``max_transient_failures`` consecutive
                polls could not reach the server.
        """
        deadline = time.monotonic() + timeout
        failures = 0
        while True:
            try:
                item = self._transport.queue_item(queue_item.queue_id)
            except Unreachable:
                failures += 1
                if failures > self.max_transient_failures:
                    raise
                logger.warning(
                    "Queue item %s unreachable (%d/%d), retrying",
                    queue_item.queue_id, failures, self.max_transient_failures,
                )
            else:
                failures = 0
                if item.get("cancelled"):
                    raise BuildAborted(
                        f"Queue item {queue_item.queue_id} of '{queue_item.job.job}' "
                        "was cancelled before it started"
                    )
                executable = item.get("executable") or {}
                if executable.get("number") is not None:
                    build = Build(
                        job=queue_item.job,
                        number=executable["number"],
                        state=BuildState.QUEUED,
                    )
                    logger.info(
                        "Queue item %s resolved to build #%d",
                        queue_item.queue_id, build.number,
                    )
                    return build
                if item.get("why"):
                    logger.debug("Queue item %s waiting: %s", queue_item.queue_id, item["why"])

            if time.monotonic() >= deadline:
                raise ResolutionTimeout(
                    f"Build number for queue item {queue_item.queue_id} is not yet "
                    f"available after {timeout:g}s"
                )
            time.sleep(self.poll_interval)
