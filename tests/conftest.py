import shutil
import subprocess
from datetime import datetime
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from click.testing import CliRunner


@pytest.fixture
def cli_runner():
    """Provides a Click CLI runner for testing commands."""
    return CliRunner()


@pytest.fixture
def data_dir(tmp_path, monkeypatch):
    """Points the config directory at a temporary location."""
    path = tmp_path / "agent-squad-home"
    monkeypatch.setenv("AGENT_SQUAD_HOME", str(path))
    return path


@pytest.fixture
def git_repo(tmp_path):
    """Creates a real git repository with one commit."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")

    repo = tmp_path / "repo"
    repo.mkdir()

    def git(*args):
        subprocess.run(["git", *args], cwd=repo, check=True, capture_output=True, text=True)

    git("init", "-q")
    git("config", "user.email", "test@example.com")
    git("config", "user.name", "Test")
    git("config", "commit.gpgsign", "false")
    (repo / "README.md").write_text("hello\n")
    git("add", "-A")
    git("commit", "-q", "-m", "initial")
    return repo


@pytest.fixture
def mock_tmux():
    """Provides a mocked TmuxService with no live sessions."""
    tmux = MagicMock()
    tmux.has_session.return_value = False
    tmux.new_session_args.side_effect = lambda name, work_dir, program: [
        "tmux", "new-session", "-d", "-s", name, "-c", work_dir, program
    ]
    tmux.attach_session_args.side_effect = lambda name: ["tmux", "attach-session", "-t", f"={name}"]
    tmux.capture_pane.return_value = ""
    tmux.pane_pids.return_value = []
    return tmux


@pytest.fixture
def mock_session_data():
    """Provides a stored session record."""
    from agent_squad.models.session import SessionData, SessionStatus, WorktreeData

    now = datetime(2024, 1, 1, 12, 0, 0)
    return SessionData(
        title="demo",
        path="/tmp/repo",
        program="claude",
        created_at=now,
        updated_at=now,
        status=SessionStatus.RUNNING,
        branch="session/demo",
        worktree=WorktreeData(
            repo_path="/tmp/repo",
            worktree_path="/tmp/worktrees/demo_1",
            session_name="demo",
            branch_name="session/demo",
            base_commit_sha="abc123",
        ),
    )
