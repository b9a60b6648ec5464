"""Tests for the agent session lifecycle."""

import signal
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from agent_squad.core.prompt import CLAUDE_PROMPT
from agent_squad.core.session import AgentSession
from agent_squad.models.session import SessionStatus
from agent_squad.services.exceptions import (
    ConflictError,
    GitServiceError,
    InvalidStateError,
    NoActiveSessionError,
    PartialCleanupError,
    SessionTimeoutError,
    TmuxServiceError,
    UnsupportedOperationError,
)


@pytest.fixture
def terminals():
    """Terminal backends handed out by the session, in creation order."""
    created = []

    def factory(title, tmux=None):
        terminal = MagicMock()
        terminal.is_attached = False
        terminal.snapshot.return_value = "hello"
        created.append(terminal)
        return terminal

    factory.created = created
    return factory


@pytest.fixture
def worktree():
    with patch('agent_squad.core.session.GitWorktree') as worktree_class:
        wt = worktree_class.create.return_value
        wt.branch_name = "session/demo"
        wt.worktree_path = Path("/wt/demo")
        wt.repo_path = Path("/repo")
        wt.session_name = "demo"
        wt.base_commit_sha = "abc123"
        wt.is_active = True
        yield wt


def make_session(terminals, **kwargs):
    return AgentSession(
        "demo", "/repo", "claude", terminal_factory=terminals, worktrees_dir=Path("/wt"), **kwargs
    )


class TestStart:

    def test_start(self, terminals, worktree):
        session = make_session(terminals)

        session.start()

        assert session.status == SessionStatus.RUNNING
        assert session.started
        assert session.branch == "session/demo"
        worktree.setup.assert_called_once_with()
        terminals.created[0].start.assert_called_once_with("claude", "/wt/demo")

    def test_start_twice(self, terminals, worktree):
        session = make_session(terminals)
        session.start()
        with pytest.raises(InvalidStateError):
            session.start()

    def test_start_in_place(self, terminals, worktree):
        session = make_session(terminals, in_place=True)

        session.start()

        assert session.worktree is None
        assert session.branch == ""
        terminals.created[0].start.assert_called_once_with("claude", "/repo")

    def test_start_terminal_failure_removes_worktree(self, terminals, worktree):
        session = make_session(terminals)

        with patch.object(session, '_new_terminal') as new_terminal:
            new_terminal.return_value.start.side_effect = SessionTimeoutError("timed out")
            with pytest.raises(SessionTimeoutError):
                session.start()

        worktree.teardown.assert_called_once_with(keep_branch=False)
        assert session.status == SessionStatus.LOADING
        assert session.terminal is None

    def test_start_worktree_failure(self, terminals, worktree):
        worktree.setup.side_effect = GitServiceError("not a repository")
        session = make_session(terminals)

        with pytest.raises(GitServiceError):
            session.start()

        assert terminals.created == []

    def test_empty_title(self, terminals):
        with pytest.raises(ValueError):
            AgentSession("  ", "/repo", "claude")


class TestPauseResume:

    def test_pause(self, terminals, worktree):
        session = make_session(terminals)
        session.start()

        session.pause()

        assert session.status == SessionStatus.PAUSED
        message = worktree.commit.call_args.args[0]
        assert message.startswith("[agentsquad] update from 'demo' on ")
        terminals.created[0].close.assert_called_once()
        worktree.teardown.assert_called_once_with(keep_branch=True)
        assert session.terminal is None

    def test_pause_in_place_unsupported(self, terminals, worktree):
        session = make_session(terminals, in_place=True)
        session.start()

        with pytest.raises(UnsupportedOperationError):
            session.pause()
        assert session.status == SessionStatus.RUNNING

    def test_pause_not_running(self, terminals, worktree):
        with pytest.raises(InvalidStateError):
            make_session(terminals).pause()

    def test_pause_while_attached(self, terminals, worktree):
        session = make_session(terminals)
        session.start()
        terminals.created[0].is_attached = True

        with pytest.raises(InvalidStateError):
            session.pause()

    def test_pause_with_cleanup_errors(self, terminals, worktree):
        session = make_session(terminals)
        session.start()
        terminals.created[0].close.side_effect = TmuxServiceError("server died")
        worktree.teardown.side_effect = GitServiceError("locked")

        with pytest.raises(PartialCleanupError) as exc_info:
            session.pause()

        assert len(exc_info.value.errors) == 2
        assert session.status == SessionStatus.PAUSED

    def test_resume(self, terminals, worktree):
        session = make_session(terminals)
        session.start()
        session.pause()

        session.resume()

        assert session.status == SessionStatus.RUNNING
        worktree.setup.assert_called_with(resume=True)
        assert len(terminals.created) == 2
        terminals.created[1].start.assert_called_once_with("claude", "/wt/demo")
        assert session.terminal is terminals.created[1]

    def test_resume_failure_stays_paused(self, terminals, worktree):
        session = make_session(terminals)
        session.start()
        session.pause()
        worktree.teardown.reset_mock()

        with patch.object(session, '_new_terminal') as new_terminal:
            new_terminal.return_value.start.side_effect = TmuxServiceError("no server")
            with pytest.raises(TmuxServiceError):
                session.resume()

        assert session.status == SessionStatus.PAUSED
        worktree.teardown.assert_called_once_with(keep_branch=True)

    def test_resume_not_paused(self, terminals, worktree):
        session = make_session(terminals)
        session.start()
        with pytest.raises(InvalidStateError):
            session.resume()


class TestKill:

    def test_kill_is_idempotent(self, terminals, worktree):
        session = make_session(terminals)
        session.start()

        session.kill()
        session.kill()

        assert session.status == SessionStatus.KILLED
        terminals.created[0].close.assert_called_once()
        worktree.teardown.assert_called_once_with(keep_branch=False)

    def test_kill_paused_session_deletes_branch(self, terminals, worktree):
        session = make_session(terminals)
        session.start()
        session.pause()
        worktree.teardown.reset_mock()

        session.kill()

        worktree.teardown.assert_called_once_with(keep_branch=False)
        assert terminals.created[-1].close.called

    def test_kill_aggregates_errors(self, terminals, worktree):
        session = make_session(terminals)
        session.start()
        terminals.created[0].close.side_effect = TmuxServiceError("server died")
        worktree.teardown.side_effect = GitServiceError("locked")

        with pytest.raises(PartialCleanupError):
            session.kill()

        assert session.status == SessionStatus.KILLED
        session.kill()

    @patch('agent_squad.core.session.os.kill')
    def test_kill_in_place_terminates_processes(self, mock_kill, terminals, worktree):
        session = make_session(terminals, in_place=True)
        session.start()
        terminals.created[0].pane_pids.return_value = [4242, 4343]
        mock_kill.side_effect = [None, ProcessLookupError()]

        session.kill()

        mock_kill.assert_any_call(4242, signal.SIGTERM)
        mock_kill.assert_any_call(4343, signal.SIGTERM)
        worktree.teardown.assert_not_called()

    def test_kill_after_failed_start_leaves_tmux_alone(self, terminals, worktree):
        session = make_session(terminals)
        with patch.object(session, '_new_terminal') as new_terminal:
            new_terminal.return_value.start.side_effect = ConflictError("tmux session already exists")
            with pytest.raises(ConflictError):
                session.start()
        worktree.is_active = False

        session.kill()

        assert session.status == SessionStatus.KILLED
        assert terminals.created == []
        worktree.teardown.assert_called_once_with(keep_branch=False)

    @patch('agent_squad.core.session.os.kill')
    def test_kill_unstarted_in_place_signals_nothing(self, mock_kill, terminals, worktree):
        session = make_session(terminals, in_place=True)

        session.kill()

        assert terminals.created == []
        mock_kill.assert_not_called()


class TestSessionIO:

    def test_check_for_updates(self, terminals, worktree):
        session = make_session(terminals)
        session.start()
        terminal = terminals.created[0]

        assert session.check_for_updates() == (True, False)
        assert session.check_for_updates() == (False, False)

        terminal.snapshot.return_value = f"Allow edit?\n 3. {CLAUDE_PROMPT}\n"
        assert session.check_for_updates() == (True, True)
        assert session.check_for_updates() == (False, True)

    def test_check_for_updates_custom_detector(self, terminals, worktree):
        session = make_session(terminals, prompt_detector=lambda content: content.endswith("$"))
        session.start()
        terminals.created[0].snapshot.return_value = "user@host $"

        assert session.check_for_updates() == (True, True)

    def test_check_for_updates_capture_failure(self, terminals, worktree):
        session = make_session(terminals)
        session.start()
        terminals.created[0].snapshot.side_effect = TmuxServiceError("gone")

        assert session.check_for_updates() == (False, False)

    def test_snapshot_when_paused(self, terminals, worktree):
        session = make_session(terminals)
        session.start()
        session.pause()

        assert session.snapshot() == ""
        assert session.check_for_updates() == (False, False)

    def test_send_keys_without_terminal(self, terminals, worktree):
        with pytest.raises(NoActiveSessionError):
            make_session(terminals).send_keys("hello")

    def test_send_keys_and_enter(self, terminals, worktree):
        session = make_session(terminals)
        session.start()

        session.send_keys("hello")
        session.tap_enter()

        terminals.created[0].send_keys.assert_any_call("hello")
        terminals.created[0].send_keys.assert_any_call("\r")

    def test_resize_remembers_size(self, terminals, worktree):
        session = make_session(terminals)
        session.start()

        session.resize(120, 40)

        terminals.created[0].resize.assert_called_once_with(120, 40)
        assert (session.width, session.height) == (120, 40)

    def test_compute_diff_stats_in_place(self, terminals, worktree):
        session = make_session(terminals, in_place=True)
        session.start()
        assert session.compute_diff_stats().is_empty()


class TestPersistence:

    def test_to_data_from_data(self, terminals, worktree):
        session = make_session(terminals, auto_approve=True)
        session.start()

        data = session.to_data()
        assert data.status == SessionStatus.RUNNING
        assert data.branch == "session/demo"
        assert data.worktree.base_commit_sha == "abc123"

        restored = AgentSession.from_data(data, terminal_factory=terminals)
        assert restored.title == "demo"
        assert restored.auto_approve
        assert restored.status == SessionStatus.RUNNING
        assert restored.started

    def test_restore_reconnects(self, terminals, worktree):
        session = make_session(terminals)
        session.start()
        session.resize(100, 30)
        data = session.to_data()

        restored = AgentSession.from_data(data, terminal_factory=terminals)
        restored.restore()

        terminal = terminals.created[-1]
        terminal.restore.assert_called_once()
        terminal.resize.assert_called_once_with(100, 30)

    def test_restore_paused(self, terminals, worktree):
        session = make_session(terminals)
        session.start()
        session.pause()

        restored = AgentSession.from_data(session.to_data(), terminal_factory=terminals)
        with pytest.raises(InvalidStateError):
            restored.restore()
