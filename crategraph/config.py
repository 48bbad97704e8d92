"""Run configuration: command-line values with environment fallback."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from .errors import ConfigError
from .graph.stores import STORE_NAMES

ENV_URI = "NEO4J_URI"
ENV_USER = "NEO4J_USER"
ENV_PASSWORD = "NEO4J_PASS"
ENV_BATCH_SIZE = "CRATEGRAPH_BATCH_SIZE"
ENV_WORKERS = "CRATEGRAPH_WORKERS"


def default_workers() -> int:
    return min(8, os.cpu_count() or 1)


@dataclass
class Settings:
    path: Path
    project: str | None = None
    uri: str | None = None
    user: str | None = None
    password: str | None = None
    store: str = "neo4j"
    save_to: Path | None = None
    batch_size: int = 500
    max_attempts: int = 3
    backoff: float = 0.5
    timeout: float = 30.0
    workers: int = 4
    prune: bool = False
    verbose: bool = False
    extensions: tuple[str, ...] = (".rs",)

    @property
    def project_name(self) -> str:
        """Explicit project name, else the project directory's name."""
        if self.project:
            return self.project
        name = Path(self.path).resolve().name
        if not name:
            raise ConfigError(f"cannot derive a project name from {self.path}")
        return name

    def validate(self) -> "Settings":
        if not Path(self.path).is_dir():
            raise ConfigError(f"project path is not a directory: {self.path}")
        if self.store not in STORE_NAMES:
            raise ConfigError(
                f"unknown store {self.store!r}; expected one of {', '.join(STORE_NAMES)}"
            )
        if self.store == "neo4j":
            missing = [env for env, value in ((ENV_URI, self.uri),
                                              (ENV_USER, self.user),
                                              (ENV_PASSWORD, self.password))
                       if not value]
            if missing:
                raise ConfigError(
                    "missing Neo4j settings; pass --uri/--user/--password or set "
                    + ", ".join(missing)
                )
        if self.batch_size < 1:
            raise ConfigError("batch size must be at least 1")
        if self.max_attempts < 1:
            raise ConfigError("max attempts must be at least 1")
        if self.workers < 1:
            raise ConfigError("workers must be at least 1")
        return self

    def store_options(self) -> dict[str, Any]:
        """Keyword arguments for :func:`crategraph.graph.stores.get_store`."""
        if self.store == "neo4j":
            return {"uri": self.uri, "user": self.user,
                    "password": self.password, "timeout": self.timeout}
        if self.store == "kglite":
            return {"save_to": self.save_to, "timeout": self.timeout}
        return {}


def load_env_file(path: str | Path | None = None) -> bool:
    """Load a ``.env`` file into the environment without overriding it."""
    if path is None:
        return load_dotenv()
    return load_dotenv(path)


def _int_env(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None


def settings_from_args(args: Any, env: Mapping[str, str] | None = None) -> Settings:
    """Build Settings from parsed CLI arguments.

    A value given on the command line wins; otherwise the environment
    variable is used; otherwise the built-in default.
    """
    env = os.environ if env is None else env

    def pick(attr: str, env_name: str | None = None, default=None):
        value = getattr(args, attr, None)
        if value is not None:
            return value
        if env_name is not None and env.get(env_name):
            return env[env_name]
        return default

    store = "memory" if getattr(args, "dry_run", False) else pick("store", default="neo4j")
    save_to = getattr(args, "save_to", None)
    settings = Settings(
        path=Path(args.path),
        project=getattr(args, "project", None),
        uri=pick("uri", ENV_URI),
        user=pick("user", ENV_USER),
        password=pick("password", ENV_PASSWORD),
        store=store,
        save_to=Path(save_to) if save_to else None,
        batch_size=pick("batch_size", default=_int_env(env, ENV_BATCH_SIZE, 500)),
        max_attempts=pick("max_attempts", default=3),
        backoff=pick("backoff", default=0.5),
        timeout=pick("timeout", default=30.0),
        workers=pick("workers", default=_int_env(env, ENV_WORKERS, default_workers())),
        prune=bool(getattr(args, "prune", False)),
        verbose=bool(getattr(args, "verbose", False)),
    )
    return settings.validate()
