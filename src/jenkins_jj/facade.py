"""Single entry point for every jj command.

The orchestrator resolves the target environment, binds a transport to it
and sequences the trigger, monitor and lister. It is also the only place
where errors become user-facing messages and exit codes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Mapping

import jenkins

from jenkins_jj.config import ConfigStore, Settings
from jenkins_jj.errors import BuildNotFound, JJError
from jenkins_jj.lister import JobLister
from jenkins_jj.models import (
    Build,
    BuildState,
    BuildSummary,
    Environment,
    JobReference,
    ParameterDefinition,
)
from jenkins_jj.monitor import BuildMonitor, OutputCallback
from jenkins_jj.registry import EnvironmentRegistry
from jenkins_jj.transport import Transport, get_client
from jenkins_jj.trigger import JobTrigger

logger = logging.getLogger(__name__)

ClientFactory = Callable[[Environment, float], jenkins.Jenkins]


@dataclass(frozen=True)
class RunResult:
    build: Build
    exit_code: int


class Orchestrator:
    def __init__(
        self,
        store: ConfigStore | None = None,
        settings: Settings | None = None,
        client_factory: ClientFactory = get_client,
    ) -> None:
        self.store = store or ConfigStore()
        self.settings = settings or Settings()
        self._client_factory = client_factory
        self._registry: EnvironmentRegistry | None = None

    @property
    def registry(self) -> EnvironmentRegistry:
        if self._registry is None:
            self._registry = self.store.load()
        return self._registry

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------
    def transport(self, environment: str = "") -> Transport:
        env = self.registry.resolve(environment)
        logger.debug("Using Jenkins '%s' at %s", env.name, env.url)
        return Transport(env, self._client_factory(env, self.settings.request_timeout))

    def _trigger(self, transport: Transport) -> JobTrigger:
        return JobTrigger(
            transport,
            poll_interval=self.settings.poll_interval,
            max_transient_failures=self.settings.max_transient_failures,
        )

    def _monitor(self, transport: Transport) -> BuildMonitor:
        return BuildMonitor(
            transport,
            poll_interval=self.settings.poll_interval,
            max_transient_failures=self.settings.max_transient_failures,
        )

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    def run(
        self,
        job: str,
        environment: str = "",
        parameters: Mapping[str, str] | None = None,
        on_output: OutputCallback | None = None,
        should_stop: Callable[[], bool] | None = None,
        timeout: float | None = None,
    ) -> RunResult:
        """Trigger *job*, wait for its build number and follow it to the end.

        The first fatal error propagates unchanged.
        """
        transport = self.transport(environment)
        job_ref = JobReference(transport.environment.name, job, parameters or {})
        trigger = self._trigger(transport)
        queue_item = trigger.trigger(job_ref)
        build = trigger.resolve_build(queue_item, self.settings.queue_timeout)
        build = self._monitor(transport).run(
            build, on_output, should_stop=should_stop, timeout=timeout
        )
        return RunResult(build=build, exit_code=self.exit_code(build))

    def get(
        self, environment: str = "", job: str | None = None, limit: int | None = None
    ) -> list[str] | list[BuildSummary]:
        """Return job names, or the builds of *job* when one is given."""
        transport = self.transport(environment)
        lister = JobLister(transport)
        if job is None:
            return lister.list_jobs()
        return lister.list_builds(
            JobReference(transport.environment.name, job), limit=limit
        )

    def parameters(self, job: str, environment: str = "") -> list[ParameterDefinition]:
        transport = self.transport(environment)
        return JobLister(transport).job_parameters(
            JobReference(transport.environment.name, job)
        )

    def stop(self, job: str, environment: str = "", number: int | None = None) -> Build:
        """Abort a build of *job*; without *number*, the latest running one.

        Raises:
            BuildNotFound: If no number was given and nothing is running.
        """
        transport = self.transport(environment)
        job_ref = JobReference(transport.environment.name, job)
        if number is None:
            running = JobLister(transport).latest_running(job_ref)
            if running is None:
                raise BuildNotFound(f"No running build of '{job}' found")
            number = running.number
        monitor = self._monitor(transport)
        build = monitor.refresh(Build(job=job_ref, number=number, state=BuildState.UNKNOWN))
        return monitor.stop(build)

    def complete(self, prefix: str = "", environment: str = "") -> list[str]:
        """Job names for shell completion; errors yield no candidates."""
        try:
            return JobLister(self.transport(environment)).complete(prefix)
        except JJError as e:
            logger.debug("Completion unavailable: %s", e)
            return []

    # ------------------------------------------------------------------
    # Registry mutations (no network)
    # ------------------------------------------------------------------
    def set_environment(
        self, name: str, url: str, username: str = "", token: str = ""
    ) -> Environment:
        env = self.registry.set(name, url, username=username, token=token)
        self.store.save(self.registry)
        return env

    def use_environment(self, name: str) -> Environment:
        env = self.registry.set_default(name)
        self.store.save(self.registry)
        return env

    def delete_environment(self, name: str) -> None:
        self.registry.delete(name)
        self.store.save(self.registry)

    def list_environments(self) -> list[Environment]:
        return self.registry.environments()

    # ------------------------------------------------------------------
    # Result classification
    # ------------------------------------------------------------------
    @staticmethod
    def exit_code(build: Build) -> int:
        return 0 if build.state == BuildState.SUCCESS else 1

    @staticmethod
    def describe(error: Exception) -> tuple[str, int]:
        """Return the message and exit code to report for *error*."""
        if isinstance(error, JJError):
            return str(error) or type(error).__name__, error.exit_code
        return f"{type(error).__name__}: {error}", 1
