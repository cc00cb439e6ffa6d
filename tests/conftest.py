"""
Shared test fixtures and configuration.
"""

from pathlib import Path

import pytest

from provisioner.adapters.mock import MockExecutor
from provisioner.adapters.registry import build_registry
from provisioner.core.models.identity import Identity
from provisioner.core.models.profile import Settings
from provisioner.core.models.step import StepContext
from provisioner.core.reliability.cancellation import CancellationToken


class RecordingToken(CancellationToken):
    """Cancellation token whose waits return at once and are recorded.

    ``cancel_after`` cancels the token on that (1-based) wait.
    """

    def __init__(self, cancel_after: int | None = None):
        super().__init__()
        self.waits: list[float] = []
        self._cancel_after = cancel_after

    def wait(self, seconds: float) -> bool:
        self.waits.append(seconds)
        if self._cancel_after is not None and len(self.waits) >= self._cancel_after:
            self.cancel("interrupted by SIGINT")
        return self.cancelled


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def home(tmp_path: Path) -> Path:
    path = tmp_path / "home" / "alice"
    path.mkdir(parents=True)
    return path


@pytest.fixture
def identity(home: Path) -> Identity:
    return Identity(username="alice", home=home, uid=1000, gid=1000)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings whose every path lives under tmp_path."""
    return Settings(
        log_file=str(tmp_path / "log" / "install.log"),
        ledger_file=str(tmp_path / "log" / "runs.ndjson"),
        venv_path=str(tmp_path / "venv"),
        wrapper_dir=str(tmp_path / "bin"),
    )


@pytest.fixture
def mock_executor() -> MockExecutor:
    return MockExecutor()


@pytest.fixture
def registry(mock_executor: MockExecutor):
    return build_registry(mock_executor)


@pytest.fixture
def context(identity: Identity, registry, settings: Settings) -> StepContext:
    return StepContext(identity=identity, registry=registry, settings=settings)


@pytest.fixture
def token() -> RecordingToken:
    return RecordingToken()


@pytest.fixture
def make_token():
    """Factory for RecordingTokens that cancel on a given wait."""
    return RecordingToken
