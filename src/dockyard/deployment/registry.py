"""Durable registry of known apps.

The registry is a single JSON document, by default ``<home>/registry.json``::

    {
      "apps": {
        "demo": {"name": "demo", "root": "/src/demo", "services": ["node", "redis"],
                 "updated_at": "2026-01-01T00:00:00+00:00"}
      }
    }

Writes go to a temporary file in the same directory followed by
``os.replace``, so readers always see either the old or the new document.
Every read-modify-write holds an exclusive ``fcntl.flock`` on
``registry.lock`` (between processes) and an ``RLock`` (between threads).

Lifecycle commands additionally hold a per-app lock (:meth:`AppRegistry.app_lock`)
so two commands on the same app queue while different apps proceed in
parallel.
"""

import fcntl
import json
import os
import tempfile
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from dockyard.base.errors import AppNotFound, RegistryError
from dockyard.base.models import AppRecord, project_slug
from dockyard.utils.config import get_config_value
from dockyard.utils.logger import get_logger

logger = get_logger("registry")

LOCK_FILENAME = "registry.lock"
LOCKS_DIRNAME = "locks"


@contextmanager
def _flock(path: Path) -> Iterator[None]:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        handle = open(path, "a+")
    except OSError as e:
        raise RegistryError(f"Cannot open lock file {path}: {e}") from e
    try:
        fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
        yield
    finally:
        fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
        handle.close()


class AppRegistry:
    """Lock-guarded store of :class:`AppRecord` entries."""

    def __init__(self, path: str | Path | None = None):
        """
        :param path: Registry file; defaults to ``registry.path`` from configuration
        """
        self.path = Path(path or get_config_value("registry.path")).expanduser()
        self.lock_path = self.path.parent / LOCK_FILENAME
        self._thread_lock = threading.RLock()
        self._app_locks: dict[str, threading.RLock] = {}
        self._app_depth: dict[str, int] = {}

    # ------------------------------------------------------------------
    # locking
    # ------------------------------------------------------------------

    @contextmanager
    def _locked(self) -> Iterator[None]:
        with self._thread_lock, _flock(self.lock_path):
            yield

    @contextmanager
    def app_lock(self, name: str) -> Iterator[None]:
        """Hold the per-app operation lock for the duration of a command."""
        with self._thread_lock:
            lock = self._app_locks.setdefault(name, threading.RLock())

        lock_file = self.path.parent / LOCKS_DIRNAME / f"{project_slug(name) or name}.lock"
        with lock:
            # flock is not reentrant across open() calls; only the outermost holder takes it
            depth = self._app_depth.get(name, 0)
            self._app_depth[name] = depth + 1
            try:
                if depth:
                    yield
                else:
                    with _flock(lock_file):
                        logger.debug(f"Acquired lock for app '{name}'")
                        yield
            finally:
                self._app_depth[name] = depth

    # ------------------------------------------------------------------
    # persistence
    # ------------------------------------------------------------------

    def _read(self) -> dict[str, dict]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise RegistryError(f"Registry {self.path} is corrupt: {e}") from e
        except OSError as e:
            raise RegistryError(f"Cannot read registry {self.path}: {e}") from e

        apps = data.get("apps") if isinstance(data, dict) else None
        if not isinstance(apps, dict):
            raise RegistryError(f"Registry {self.path} has no 'apps' mapping")
        return apps

    def _write(self, apps: dict[str, dict]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=".registry-", suffix=".json", dir=self.path.parent)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump({"apps": apps}, f, indent=2, sort_keys=True)
                    f.write("\n")
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise RegistryError(f"Cannot write registry {self.path}: {e}") from e

    # ------------------------------------------------------------------
    # operations
    # ------------------------------------------------------------------

    def upsert(self, record: AppRecord) -> None:
        with self._locked():
            apps = self._read()
            apps[record.name] = record.to_dict()
            self._write(apps)
        logger.debug(f"Registered app '{record.name}' ({', '.join(record.services)})")

    def remove(self, name: str) -> bool:
        """Remove ``name``; returns False if it was not registered."""
        with self._locked():
            apps = self._read()
            if name not in apps:
                return False
            del apps[name]
            self._write(apps)
        logger.debug(f"Deregistered app '{name}'")
        return True

    def list(self) -> list[AppRecord]:
        with self._locked():
            apps = self._read()
        return [AppRecord.from_dict({"name": name, **apps[name]}) for name in sorted(apps)]

    def find(self, name: str) -> AppRecord:
        with self._locked():
            apps = self._read()
        if name not in apps:
            raise AppNotFound(name)
        return AppRecord.from_dict({"name": name, **apps[name]})
