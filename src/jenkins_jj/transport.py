"""Authenticated access to one Jenkins environment with typed failures."""

from __future__ import annotations

import codecs
import logging
import re
from typing import Any, Callable, Mapping, TypeVar
from urllib.parse import quote

import jenkins
import requests

from jenkins_jj.errors import (
    JJError,
    NotFound,
    ServerError,
    Unauthorized,
    Unexpected,
    Unreachable,
)
from jenkins_jj.models import Environment, LogChunk

logger = logging.getLogger(__name__)

T = TypeVar("T")

PROGRESSIVE_TEXT = "%(job_path)s%(number)d/logText/progressiveText?start=%(start)d"

# python-jenkins folds 401/403/500 into a plain JenkinsException whose
# message reads "Possibly authentication failed [NNN]". Other bracketed
# numbers in its messages are job, build or queue numbers.
_STATUS_IN_MESSAGE = re.compile(r"authentication failed \[(\d{3})\]")


def get_client(environment: Environment, timeout: float) -> jenkins.Jenkins:
    """Create a Jenkins client for an environment.

    Args:
        environment: The environment whose URL and credentials to use.
        timeout: Seconds allowed for each request.

    Returns:
        A configured Jenkins client instance.
    """
    username = environment.username or None
    token = environment.token if username else None
    return jenkins.Jenkins(
        environment.url, username=username, password=token, timeout=timeout
    )


def job_path(job: str) -> str:
    """Return the URL path of a job, expanding ``a/b`` into folder segments."""
    return "".join(f"job/{quote(part, safe='')}/" for part in job.split("/") if part)


def _for_status(status: int, message: str) -> JJError:
    if status in (401, 403):
        return Unauthorized(f"Authentication failed [{status}]: {message}")
    if status == 404:
        return NotFound(message)
    if status >= 500:
        return ServerError(f"Server error [{status}]: {message}")
    return Unexpected(f"Unexpected response [{status}]: {message}")


def translate(e: Exception) -> JJError:
    """Map a python-jenkins or requests exception onto the jj error taxonomy."""
    if isinstance(e, JJError):
        return e
    if isinstance(e, jenkins.TimeoutException):
        return Unreachable(str(e))
    if isinstance(e, jenkins.NotFoundException):
        return NotFound(str(e))
    if isinstance(e, (requests.exceptions.ConnectionError, requests.exceptions.Timeout)):
        return Unreachable(f"Error in request: {e}")
    if isinstance(e, requests.exceptions.HTTPError) and e.response is not None:
        return _for_status(e.response.status_code, e.response.reason or str(e))
    if isinstance(e, jenkins.JenkinsException):
        message = str(e)
        match = _STATUS_IN_MESSAGE.search(message)
        if match:
            return _for_status(int(match.group(1)), message)
        # The info getters re-raise any HTTPError as "does not exist";
        # the original status survives as the exception context.
        context = e.__cause__ or e.__context__
        if (
            isinstance(context, requests.exceptions.HTTPError)
            and context.response is not None
        ):
            return _for_status(context.response.status_code, message)
        if "does not exist" in message:
            return NotFound(message)
        return Unexpected(message)
    return Unexpected(f"{type(e).__name__}: {e}")


class Transport:
    """One authenticated request per logical operation, never retried.

    Every public method raises only :class:`~jenkins_jj.errors.JJError`
    subclasses: ``Unauthorized``, ``NotFound``, ``Unreachable``,
    ``ServerError`` or ``Unexpected``.
    """

    def __init__(self, environment: Environment, client: jenkins.Jenkins) -> None:
        self.environment = environment
        self._client = client

    def _call(self, what: str, fn: Callable[[], T]) -> T:
        logger.debug("[%s] %s", self.environment.name, what)
        try:
            return fn()
        except (
            jenkins.JenkinsException, requests.exceptions.RequestException, ValueError
        ) as e:
            error = translate(e)
            logger.debug(
                "[%s] %s failed: %s: %s",
                self.environment.name, what, type(error).__name__, error,
            )
            raise error from e

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------
    def trigger(self, job: str, parameters: Mapping[str, str] | None = None) -> int:
        """Submit a build request and return its queue id."""
        return self._call(
            f"trigger {job}",
            lambda: self._client.build_job(
                job, parameters=dict(parameters) if parameters else None
            ),
        )

    def queue_item(self, queue_id: int) -> dict[str, Any]:
        return self._call(
            f"queue item {queue_id}", lambda: self._client.get_queue_item(queue_id)
        )

    def build_info(self, job: str, number: int) -> dict[str, Any]:
        return self._call(
            f"build info {job} #{number}",
            lambda: self._client.get_build_info(job, number),
        )

    def job_info(self, job: str, depth: int = 0) -> dict[str, Any]:
        return self._call(
            f"job info {job}", lambda: self._client.get_job_info(job, depth=depth)
        )

    def jobs(self) -> list[dict[str, Any]]:
        return self._call("list jobs", self._client.get_all_jobs)

    def stop(self, job: str, number: int) -> None:
        self._call(
            f"stop {job} #{number}", lambda: self._client.stop_build(job, number)
        )

    def console(self, job: str, number: int, start: int) -> LogChunk:
        """Fetch console text produced since byte offset *start*.

        A multi-byte character cut off at the end of the response is not
        consumed; the returned offset points at its first byte so the next
        fetch returns it whole.
        """
        url = self._client.server + PROGRESSIVE_TEXT % {
            "job_path": job_path(job),
            "number": number,
            "start": start,
        }

        def fetch() -> LogChunk:
            try:
                response = self._client.jenkins_request(requests.Request("GET", url))
            except jenkins.EmptyResponseException:
                return LogChunk(text="", next_offset=start, more_data=False)
            data = response.content or b""
            more_data = response.headers.get("X-More-Data", "").lower() == "true"
            size = response.headers.get("X-Text-Size")
            next_offset = int(size) if size is not None else start + len(data)
            decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
            text = decoder.decode(data, final=not more_data)
            if more_data:
                next_offset -= len(decoder.getstate()[0])
            return LogChunk(text=text, next_offset=next_offset, more_data=more_data)

        return self._call(f"console {job} #{number} from {start}", fetch)
