"""jj MCP Server: run and stop Jenkins jobs via MCP tools."""

from __future__ import annotations

from typing import Any

from fastmcp import FastMCP

from jenkins_jj.config import Settings
from jenkins_jj.errors import JJError
from jenkins_jj.facade import Orchestrator
from jenkins_jj.models import Build, BuildSummary

mcp = FastMCP("jj MCP Server")


def get_orchestrator() -> Orchestrator:
    """Create an orchestrator from the user's jj configuration."""
    return Orchestrator(settings=Settings.from_env())


def _format_error(e: Exception) -> dict[str, Any]:
    """Format an exception into a consistent error response."""
    message, exit_code = Orchestrator.describe(e)
    return {
        "error": True,
        "kind": type(e).__name__,
        "message": message,
        "exit_code": exit_code,
    }


def _build_dict(build: Build) -> dict[str, Any]:
    return {
        "environment": build.job.environment,
        "job_name": build.job.job,
        "build_number": build.number,
        "result": build.state.value,
        "start_time": build.started_at.isoformat() if build.started_at else None,
        "duration_s": build.duration,
    }


def _summary_dict(summary: BuildSummary) -> dict[str, Any]:
    return {
        "build_number": summary.number,
        "result": summary.state.value,
        "start_time": summary.started_at.isoformat() if summary.started_at else None,
        "duration_s": summary.duration,
    }


# ---------------------------------------------------------------------------
# Tool 1: run_job
# ---------------------------------------------------------------------------
@mcp.tool
def run_job(
    job_name: str,
    parameters: dict[str, str] | None = None,
    environment: str = "",
    max_log_chars: int = 20000,
    timeout: float | None = None,
) -> dict[str, Any]:
    """Trigger a Jenkins job and wait until its build finishes.

    Args:
        job_name: Full name of the Jenkins job (use '/' for folder paths).
        parameters: Optional dict of build parameters (key-value pairs).
        environment: Configured Jenkins environment; empty means the current one.
        max_log_chars: Only the last this many characters of the console log
            are returned.
        timeout: Seconds to follow the build before giving up; the build
            keeps running on the server. Empty means wait until it finishes.

    Returns:
        A dict with the build number, its final result, the exit code the
        CLI would use and the tail of the console log.
    """
    chunks: list[str] = []
    try:
        result = get_orchestrator().run(
            job_name,
            environment=environment,
            parameters=parameters,
            on_output=chunks.append,
            timeout=timeout,
        )
    except JJError as e:
        return _format_error(e)
    log = "".join(chunks)
    return {
        "success": True,
        **_build_dict(result.build),
        "exit_code": result.exit_code,
        "log": log[-max_log_chars:] if max_log_chars > 0 else "",
        "log_truncated": 0 < max_log_chars < len(log),
    }


# ---------------------------------------------------------------------------
# Tool 2: get_jobs
# ---------------------------------------------------------------------------
@mcp.tool
def get_jobs(environment: str = "") -> dict[str, Any]:
    """List the jobs of a Jenkins environment.

    Args:
        environment: Configured Jenkins environment; empty means the current one.

    Returns:
        A dict containing the list of full job names.
    """
    try:
        jobs = get_orchestrator().get(environment)
    except JJError as e:
        return _format_error(e)
    return {"success": True, "job_count": len(jobs), "jobs": jobs}


# ---------------------------------------------------------------------------
# Tool 3: get_builds
# ---------------------------------------------------------------------------
@mcp.tool
def get_builds(
    job_name: str, environment: str = "", limit: int | None = 20
) -> dict[str, Any]:
    """List recent builds of a Jenkins job, newest first.

    Args:
        job_name: Full name of the Jenkins job.
        environment: Configured Jenkins environment; empty means the current one.
        limit: Maximum number of builds to return.

    Returns:
        A dict with build number, result, start time and duration per build.
    """
    try:
        builds = get_orchestrator().get(environment, job_name, limit=limit)
    except JJError as e:
        return _format_error(e)
    return {
        "success": True,
        "job_name": job_name,
        "builds": [_summary_dict(b) for b in builds],
    }


# ---------------------------------------------------------------------------
# Tool 4: get_job_parameters
# ---------------------------------------------------------------------------
@mcp.tool
def get_job_parameters(job_name: str, environment: str = "") -> dict[str, Any]:
    """Get the parameter definitions for a Jenkins job.

    Returns:
        A dict containing a list of parameter definitions with name, type,
        default value and description for each parameter.
    """
    try:
        params = get_orchestrator().parameters(job_name, environment)
    except JJError as e:
        return _format_error(e)
    return {
        "success": True,
        "job_name": job_name,
        "parameter_count": len(params),
        "parameters": [
            {
                "name": p.name,
                "type": p.type,
                "description": p.description,
                "default_value": p.default,
                "choices": p.choices,
            }
            for p in params
        ],
    }


# ---------------------------------------------------------------------------
# Tool 5: stop_build
# ---------------------------------------------------------------------------
@mcp.tool
def stop_build(
    job_name: str, build_number: int | None = None, environment: str = ""
) -> dict[str, Any]:
    """Cancel (stop) a running Jenkins build.

    Args:
        job_name: Full name of the Jenkins job.
        build_number: The build number to cancel; the latest running build
            when omitted.
        environment: Configured Jenkins environment; empty means the current one.

    Returns:
        A dict indicating whether the cancellation was requested.
    """
    try:
        build = get_orchestrator().stop(job_name, environment, build_number)
    except JJError as e:
        return _format_error(e)
    if build.is_terminal:
        message = f"Build #{build.number} of '{job_name}' already finished."
    else:
        message = f"Build #{build.number} of '{job_name}' has been cancelled."
    return {"success": True, **_build_dict(build), "message": message}


# ---------------------------------------------------------------------------
# Tool 6: list_environments
# ---------------------------------------------------------------------------
@mcp.tool
def list_environments() -> dict[str, Any]:
    """List the configured Jenkins environments and which one is current."""
    try:
        environments = get_orchestrator().list_environments()
    except JJError as e:
        return _format_error(e)
    return {
        "success": True,
        "environments": [
            {"name": env.name, "url": env.url, "current": env.is_default}
            for env in environments
        ],
    }


def main() -> None:
    mcp.run()


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    main()
