"""In-memory registry of named Jenkins environments."""

from __future__ import annotations

import dataclasses

from jenkins_jj.errors import EnvironmentNotFound, NoEnvironmentsConfigured
from jenkins_jj.models import Environment


class EnvironmentRegistry:
    """Named environments in insertion order, exactly one of them default.

    The default flag lives on the registry and is mirrored onto the
    :class:`Environment` records; only :meth:`set_default` moves it.
    """

    def __init__(self, environments: list[Environment] | None = None) -> None:
        self._environments: dict[str, Environment] = {}
        self._default: str | None = None
        for env in environments or []:
            self._environments[env.name] = env
            if env.is_default and self._default is None:
                self._default = env.name
        if self._default is None and self._environments:
            self._default = next(iter(self._environments))
        self._sync_flags()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _sync_flags(self) -> None:
        for name, env in list(self._environments.items()):
            is_default = name == self._default
            if env.is_default != is_default:
                self._environments[name] = dataclasses.replace(
                    env, is_default=is_default
                )

    def _get(self, name: str) -> Environment:
        if not self._environments:
            raise NoEnvironmentsConfigured()
        try:
            return self._environments[name]
        except KeyError:
            raise EnvironmentNotFound(name) from None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def __len__(self) -> int:
        return len(self._environments)

    def __contains__(self, name: object) -> bool:
        return name in self._environments

    @property
    def default(self) -> Environment | None:
        if self._default is None:
            return None
        return self._environments[self._default]

    def resolve(self, name: str = "") -> Environment:
        """Return the named environment, or the default one if *name* is empty.

        Raises:
            NoEnvironmentsConfigured: If the registry is empty.
            EnvironmentNotFound: If *name* is not configured.
        """
        if not name:
            if self._default is None:
                raise NoEnvironmentsConfigured()
            return self._environments[self._default]
        return self._get(name)

    def set(
        self, name: str, url: str, username: str = "", token: str = ""
    ) -> Environment:
        """Add or replace an environment. The first one added becomes default."""
        self._environments[name] = Environment(
            name=name, url=url, username=username, token=token
        )
        if self._default is None:
            self._default = name
        self._sync_flags()
        return self._environments[name]

    def set_default(self, name: str) -> Environment:
        self._get(name)
        self._default = name
        self._sync_flags()
        return self._environments[name]

    def delete(self, name: str) -> None:
        """Remove an environment, promoting the first remaining one if needed."""
        self._get(name)
        del self._environments[name]
        if self._default == name:
            self._default = next(iter(self._environments), None)
        self._sync_flags()

    def list(self) -> list[str]:
        return list(self._environments)

    def environments(self) -> list[Environment]:
        return list(self._environments.values())
