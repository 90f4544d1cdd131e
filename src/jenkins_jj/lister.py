"""Job and build discovery, shared by listings and shell completion."""

from __future__ import annotations

from typing import Any

from jenkins_jj.errors import JobNotFound, NotFound
from jenkins_jj.models import BuildState, BuildSummary, JobReference, ParameterDefinition
from jenkins_jj.transport import Transport


class JobLister:
    """Read-only queries; every call fetches fresh data from the server."""

    def __init__(self, transport: Transport) -> None:
        self._transport = transport

    def _job_info(self, job_ref: JobReference, depth: int = 0) -> dict[str, Any]:
        try:
            return self._transport.job_info(job_ref.job, depth=depth)
        except NotFound:
            raise JobNotFound(job_ref.job) from None

    def list_jobs(self) -> list[str]:
        """Return the full names of all buildable jobs; folders are skipped."""
        return [
            job.get("fullname") or job["name"]
            for job in self._transport.jobs()
            if "jobs" not in job
        ]

    def list_builds(
        self, job_ref: JobReference, limit: int | None = None
    ) -> list[BuildSummary]:
        """Return summaries of the job's builds, newest first."""
        info = self._job_info(job_ref, depth=1)
        builds = sorted(
            (BuildSummary.from_build_info(b) for b in info.get("builds") or []),
            key=lambda s: s.number,
            reverse=True,
        )
        return builds[:limit] if limit is not None else builds

    def latest_running(self, job_ref: JobReference) -> BuildSummary | None:
        for summary in self.list_builds(job_ref):
            if summary.state == BuildState.RUNNING:
                return summary
        return None

    def job_parameters(self, job_ref: JobReference) -> list[ParameterDefinition]:
        """Return the parameter definitions declared by a job."""
        info = self._job_info(job_ref)
        params: list[ParameterDefinition] = []
        for prop in info.get("property", []):
            for p in prop.get("parameterDefinitions") or []:
                default_value = p.get("defaultParameterValue") or {}
                params.append(
                    ParameterDefinition(
                        name=p.get("name", ""),
                        type=p.get("type", ""),
                        description=p.get("description") or "",
                        default=default_value.get("value"),
                        choices=p.get("choices"),
                    )
                )
        return params

    def complete(self, prefix: str = "") -> list[str]:
        return [name for name in self.list_jobs() if name.startswith(prefix)]
