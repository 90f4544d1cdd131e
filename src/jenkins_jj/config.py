"""Persistent environment configuration and runtime settings.

Environments are stored in a JSON file so they survive across invocations.
The default location is ``~/.jj/config.json`` and can be overridden with the
``JJ_CONFIG`` environment variable.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from jenkins_jj.errors import ConfigurationError
from jenkins_jj.models import Environment
from jenkins_jj.registry import EnvironmentRegistry

logger = logging.getLogger(__name__)


def _default_config_path() -> Path:
    """Return the default path for the configuration file."""
    custom = os.environ.get("JJ_CONFIG")
    if custom:
        return Path(custom)
    return Path.home() / ".jj" / "config.json"


class ConfigStore:
    """Thread-safe, file-backed store for the environment registry."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or _default_config_path()
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _read(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Ignoring unreadable config %s: %s", self._path, e)
            return {}
        if isinstance(data, dict):
            return data
        return {}

    def _write(self, data: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(
            json.dumps(data, ensure_ascii=False, indent=2),
            encoding="utf-8",
        )
        os.chmod(self._path, 0o600)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def load(self) -> EnvironmentRegistry:
        """Load the registry; a missing or corrupt file yields an empty one."""
        with self._lock:
            data = self._read()
        current = data.get("current")
        environments = []
        for rec in data.get("environments", []):
            if not isinstance(rec, dict) or not rec.get("name") or not rec.get("url"):
                logger.warning("Skipping malformed environment entry: %r", rec)
                continue
            environments.append(
                Environment(
                    name=rec["name"],
                    url=rec["url"],
                    username=rec.get("username", ""),
                    token=rec.get("token", ""),
                    is_default=rec["name"] == current,
                )
            )
        return EnvironmentRegistry(environments)

    def save(self, registry: EnvironmentRegistry) -> None:
        default = registry.default
        data = {
            "current": default.name if default else None,
            "environments": [
                {
                    "name": env.name,
                    "url": env.url,
                    "username": env.username,
                    "token": env.token,
                }
                for env in registry.environments()
            ],
        }
        with self._lock:
            self._write(data)
        logger.debug("Saved %d environment(s) to %s", len(registry), self._path)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------
def _env_number(name: str, default: float, *, minimum: float = 0) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from None
    if value < minimum:
        raise ConfigurationError(f"{name} must be at least {minimum}, got {raw!r}")
    return value


@dataclass(frozen=True)
class Settings:
    """Timeouts and polling behaviour.

    Attributes:
        request_timeout: Seconds allowed for any single HTTP request.
        poll_interval: Seconds to sleep between queue and build polls.
        queue_timeout: Seconds to wait for a queue item to get a build number.
        max_transient_failures: Consecutive unreachable polls tolerated
            before giving up.
    """

    request_timeout: float = 10.0
    poll_interval: float = 1.0
    queue_timeout: float = 300.0
    max_transient_failures: int = 3

    @classmethod
    def from_env(cls) -> Settings:
        """Build settings from ``JJ_*`` environment variables.

        Environment variables:
            JJ_REQUEST_TIMEOUT: per-request timeout in seconds
            JJ_POLL_INTERVAL: polling interval in seconds
            JJ_QUEUE_TIMEOUT: queue resolution deadline in seconds
            JJ_MAX_TRANSIENT_FAILURES: tolerated consecutive network failures

        Raises:
            ConfigurationError: If a variable is not a valid number.
        """
        return cls(
            request_timeout=_env_number(
                "JJ_REQUEST_TIMEOUT", cls.request_timeout, minimum=0.1
            ),
            poll_interval=_env_number("JJ_POLL_INTERVAL", cls.poll_interval),
            queue_timeout=_env_number("JJ_QUEUE_TIMEOUT", cls.queue_timeout),
            max_transient_failures=int(
                _env_number("JJ_MAX_TRANSIENT_FAILURES", cls.max_transient_failures)
            ),
        )
