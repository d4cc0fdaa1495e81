import re
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List

import pytest

from app.utils.helpers import normalise_path
from domains.log_shipping.exceptions import RestoreConnectionError, RestoreError
from domains.log_shipping.run_config import RunConfig

LOG_PATTERN = r"(?:[\w_-]+?)(\d{14})\.trn"
CUTOFF = datetime(2023, 1, 1, 1, 0, 0, tzinfo=timezone.utc)


class FakeSession:
    def __init__(self, restorer: "FakeRestorer"):
        self.restorer = restorer

    def restore_full(self, path: Path):
        self.restorer.calls.append(("full", Path(path).name))
        if Path(path).name in self.restorer.fail_on:
            raise RestoreError(f"cannot restore {path}")

    def restore_log(self, path: Path):
        name = Path(path).name
        self.restorer.calls.append(("log", name))
        hook = self.restorer.hooks.get(name)
        if hook is not None:
            hook()
        if name in self.restorer.fail_on:
            raise RestoreError(f"cannot restore {path}")


class FakeRestorer:
    """Records restores instead of talking to SQL Server."""

    def __init__(self, fail_on=(), refuse_connections: bool = False):
        self.calls: List[tuple] = []
        self.fail_on = set(fail_on)
        self.refuse_connections = refuse_connections
        self.hooks: Dict[str, Callable[[], None]] = {}
        self.sessions_opened = 0
        self.sessions_open = 0

    @contextmanager
    def session(self):
        if self.refuse_connections:
            raise RestoreConnectionError("connection refused")
        self.sessions_opened += 1
        self.sessions_open += 1
        try:
            yield FakeSession(self)
        finally:
            self.sessions_open -= 1

    @property
    def restored_logs(self) -> List[str]:
        return [name for kind, name in self.calls if kind == "log"]


@pytest.fixture
def backup_dir(tmp_path) -> Path:
    directory = tmp_path / "backups"
    directory.mkdir()
    return normalise_path(directory)


@pytest.fixture
def restorer() -> FakeRestorer:
    return FakeRestorer()


@pytest.fixture
def make_config(backup_dir) -> Callable[..., RunConfig]:
    def _make(**overrides) -> RunConfig:
        values = dict(
            backup_dir=backup_dir,
            cutoff=CUTOFF,
            log_pattern=re.compile(LOG_PATTERN),
            log_date_format="yyyyMMddHHmmss",
            watch_poll_interval=0.01,
        )
        values.update(overrides)
        return RunConfig(**values)

    return _make


@pytest.fixture
def touch() -> Callable[..., List[Path]]:
    """Create backup files with placeholder content."""

    def _touch(directory: Path, *names: str) -> List[Path]:
        paths = []
        for name in names:
            path = directory / name
            path.write_bytes(b"TAPE")
            paths.append(path)
        return paths

    return _touch
