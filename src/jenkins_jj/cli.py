"""jj - trigger, follow and stop Jenkins jobs from the command line."""

from __future__ import annotations

import logging
import signal
import threading
from contextlib import contextmanager
from typing import Iterator

import typer

from jenkins_jj.config import Settings
from jenkins_jj.errors import JJError
from jenkins_jj.facade import Orchestrator
from jenkins_jj.log import setup_logging
from jenkins_jj.models import BuildSummary

app = typer.Typer(
    help=(
        "jj - simple command line utility which just runs any Jenkins job.\n\n"
        "Configure access to a Jenkins server with 'jj set NAME' first."
    ),
    no_args_is_help=True,
)


@contextmanager
def _reported() -> Iterator[None]:
    try:
        yield
    except JJError as e:
        message, exit_code = Orchestrator.describe(e)
        typer.secho(f"Error: {message}", err=True, fg=typer.colors.RED)
        raise typer.Exit(exit_code) from e


def _orchestrator(ctx: typer.Context) -> Orchestrator:
    if ctx.obj is None:
        with _reported():
            ctx.obj = Orchestrator(settings=Settings.from_env())
    return ctx.obj


def _complete_job(ctx: typer.Context, incomplete: str) -> list[str]:
    environment = ctx.params.get("environment") or ""
    try:
        orchestrator = Orchestrator(settings=Settings.from_env())
    except JJError:
        return []
    return orchestrator.complete(incomplete, environment)


def _complete_environment(ctx: typer.Context, incomplete: str) -> list[str]:
    try:
        names = Orchestrator().registry.list()
    except JJError:
        return []
    return [name for name in names if name.startswith(incomplete)]


def _parse_parameters(values: list[str] | None) -> dict[str, str]:
    parameters: dict[str, str] = {}
    for value in values or []:
        key, sep, val = value.partition("=")
        if not sep or not key:
            raise typer.BadParameter(
                f"expected KEY=VALUE, got {value!r}", param_hint="--param"
            )
        parameters[key] = val
    return parameters


def _format_summary(summary: BuildSummary) -> str:
    started = summary.started_at.strftime("%Y-%m-%d %H:%M:%S") if summary.started_at else "-"
    duration = f"{summary.duration:.1f}s" if summary.duration is not None else "-"
    return f"{summary.number:<8}{summary.state.value:<10}{started:<21}{duration}"


EnvironmentOption = typer.Option(
    "",
    "--name",
    "-n",
    help="Jenkins environment to use (default: the current one).",
    autocompletion=_complete_environment,
)


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    setup_logging(logging.DEBUG if verbose else logging.WARNING)


# ---------------------------------------------------------------------------
# Environments
# ---------------------------------------------------------------------------
@app.command("set")
def set_environment(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Name of the Jenkins environment."),
    url: str = typer.Option(..., "--url", prompt="Jenkins URL"),
    username: str = typer.Option("", "--username", prompt="Username", show_default=False),
    token: str = typer.Option(
        "", "--token", prompt="API token", hide_input=True, show_default=False
    ),
) -> None:
    """Configure access to a Jenkins server."""
    with _reported():
        env = _orchestrator(ctx).set_environment(name, url, username=username, token=token)
    suffix = " (current)" if env.is_default else ""
    typer.echo(f"Jenkins '{env.name}' saved{suffix}")


@app.command("use")
def use_environment(
    ctx: typer.Context,
    name: str = typer.Argument(..., autocompletion=_complete_environment),
) -> None:
    """Make a Jenkins environment the current one."""
    with _reported():
        _orchestrator(ctx).use_environment(name)
    typer.echo(f"Switched to Jenkins '{name}'")


@app.command("delete")
def delete_environment(
    ctx: typer.Context,
    name: str = typer.Argument(..., autocompletion=_complete_environment),
) -> None:
    """Remove a Jenkins environment."""
    with _reported():
        _orchestrator(ctx).delete_environment(name)
    typer.echo(f"Jenkins '{name}' deleted")


@app.command("envs")
def list_environments(ctx: typer.Context) -> None:
    """List configured Jenkins environments; the current one is marked '*'."""
    with _reported():
        environments = _orchestrator(ctx).list_environments()
    for env in environments:
        marker = "*" if env.is_default else " "
        typer.echo(f"{marker} {env.name:<20}{env.url}")


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------
@app.command("run")
def run_job(
    ctx: typer.Context,
    job: str = typer.Argument(..., autocompletion=_complete_job),
    environment: str = EnvironmentOption,
    param: list[str] | None = typer.Option(
        None, "--param", "-p", help="Build parameter as KEY=VALUE; repeatable."
    ),
    timeout: float | None = typer.Option(
        None, "--timeout", help="Give up following the build after this many seconds."
    ),
) -> None:
    """Start a job and follow its console output until it finishes."""
    parameters = _parse_parameters(param)
    orchestrator = _orchestrator(ctx)
    interrupted = threading.Event()

    def on_interrupt(signum, frame) -> None:
        if interrupted.is_set():
            raise KeyboardInterrupt
        interrupted.set()

    previous = signal.signal(signal.SIGINT, on_interrupt)
    try:
        with _reported():
            result = orchestrator.run(
                job,
                environment=environment,
                parameters=parameters,
                on_output=lambda text: typer.echo(text, nl=False),
                should_stop=interrupted.is_set,
                timeout=timeout,
            )
    finally:
        signal.signal(signal.SIGINT, previous)

    build = result.build
    if not build.is_terminal:
        typer.secho(
            f"\nStopped following build #{build.number} of '{job}'; it is still "
            f"running. Use 'jj stop {job} {build.number}' to abort it.",
            err=True,
        )
        raise typer.Exit(130)
    duration = f" in {build.duration:.1f}s" if build.duration is not None else ""
    color = typer.colors.GREEN if result.exit_code == 0 else typer.colors.RED
    typer.secho(
        f"Build #{build.number} of '{job}' finished: {build.state.value}{duration}",
        err=True,
        fg=color,
    )
    raise typer.Exit(result.exit_code)


@app.command("get")
def get_jobs(
    ctx: typer.Context,
    job: str | None = typer.Argument(None, autocompletion=_complete_job),
    environment: str = EnvironmentOption,
    limit: int | None = typer.Option(None, "--limit", "-l", help="Show at most N builds."),
    no_headers: bool = typer.Option(False, "--no-headers", help="Omit the header line."),
) -> None:
    """List jobs, or the builds of JOB."""
    with _reported():
        items = _orchestrator(ctx).get(environment, job, limit=limit)
    if job is None:
        for name in items:
            typer.echo(name)
        return
    if not no_headers:
        typer.echo(f"{'NUMBER':<8}{'STATE':<10}{'STARTED':<21}DURATION")
    for summary in items:
        typer.echo(_format_summary(summary))


@app.command("params")
def job_parameters(
    ctx: typer.Context,
    job: str = typer.Argument(..., autocompletion=_complete_job),
    environment: str = EnvironmentOption,
) -> None:
    """Show the parameters a job accepts."""
    with _reported():
        params = _orchestrator(ctx).parameters(job, environment)
    if not params:
        typer.echo(f"Job '{job}' takes no parameters")
        return
    for p in params:
        line = f"{p.name}={'' if p.default is None else p.default}"
        if p.choices:
            line += f"  [{'|'.join(p.choices)}]"
        if p.description:
            line += f"  # {p.description}"
        typer.echo(line)


@app.command("stop")
def stop_build(
    ctx: typer.Context,
    job: str = typer.Argument(..., autocompletion=_complete_job),
    number: int | None = typer.Argument(
        None, help="Build number (default: the latest running build)."
    ),
    environment: str = EnvironmentOption,
) -> None:
    """Abort a running build."""
    with _reported():
        build = _orchestrator(ctx).stop(job, environment, number)
    if build.is_terminal:
        typer.echo(f"Build #{build.number} of '{job}' already finished: {build.state.value}")
    else:
        typer.echo(f"Build #{build.number} of '{job}' has been cancelled.")


if __name__ == "__main__":
    app()
