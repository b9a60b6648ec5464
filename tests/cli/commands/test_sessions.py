from unittest.mock import patch, MagicMock

import pytest

from agent_squad.cli.commands.attach import attach
from agent_squad.cli.commands.lifecycle import kill, pause, resume
from agent_squad.cli.commands.list_sessions import list as list_command
from agent_squad.cli.commands.new import new
from agent_squad.cli.commands.preview import diff, preview
from agent_squad.cli.commands.send import send
from agent_squad.models.config import AppConfig
from agent_squad.models.session import SessionStatus
from agent_squad.services.exceptions import (
    ConflictError,
    GitServiceError,
    NotFoundError,
    PartialCleanupError,
    TerminalStateError,
    TmuxServiceError,
)
from agent_squad.services.worktree import DiffStats


@pytest.fixture
def session():
    session = MagicMock()
    session.title = "demo"
    session.status = SessionStatus.RUNNING
    session.branch = "session/demo"
    session.path = "/repo"
    session.work_dir = "/wt/demo"
    return session


@pytest.fixture
def registry(session):
    registry = MagicMock()
    registry.get.return_value = session
    registry.create.return_value = session
    registry.resume.return_value = session
    return registry


def patch_registry(module, registry, config=None):
    return patch(
        f'agent_squad.cli.commands.{module}.get_registry',
        return_value=(registry, config or AppConfig()),
    )


class TestNewCommand:

    def test_new(self, cli_runner, registry, tmp_path):
        with patch_registry('new', registry):
            result = cli_runner.invoke(new, ['demo', '--path', str(tmp_path)])

        assert result.exit_code == 0
        assert "Session 'demo' started" in result.output
        assert "Branch: session/demo" in result.output
        registry.create.assert_called_once_with(
            'demo', str(tmp_path), 'claude', auto_approve=False, in_place=False
        )
        registry.shutdown.assert_called_once()

    def test_new_uses_config_defaults(self, cli_runner, registry, tmp_path):
        config = AppConfig(default_program="aider", auto_yes=True)
        with patch_registry('new', registry, config):
            cli_runner.invoke(new, ['demo', '--path', str(tmp_path), '--in-place'])

        registry.create.assert_called_once_with(
            'demo', str(tmp_path), 'aider', auto_approve=True, in_place=True
        )

    def test_new_duplicate(self, cli_runner, registry, tmp_path):
        registry.create.side_effect = ConflictError("session 'demo' already exists")
        with patch_registry('new', registry):
            result = cli_runner.invoke(new, ['demo', '--path', str(tmp_path)])

        assert result.exit_code == 1
        assert "already exists" in result.output


class TestListCommand:

    def test_list_empty(self, cli_runner, registry):
        registry.list.return_value = []
        registry.poll_all.return_value = {}
        with patch_registry('list_sessions', registry):
            result = cli_runner.invoke(list_command, [])

        assert result.exit_code == 0
        assert "No sessions found" in result.output

    def test_list(self, cli_runner, registry, session):
        session.program = "claude"
        session.diff_stats = DiffStats(added=1, removed=0)
        from datetime import datetime
        session.updated_at = datetime.now()
        registry.list.return_value = [session]
        registry.poll_all.return_value = {"demo": (True, True)}
        with patch_registry('list_sessions', registry):
            result = cli_runner.invoke(list_command, [])

        assert result.exit_code == 0
        assert "demo" in result.output
        assert "waiting" in result.output


class TestLifecycleCommands:

    def test_pause(self, cli_runner, registry):
        with patch_registry('lifecycle', registry):
            result = cli_runner.invoke(pause, ['demo'])

        assert result.exit_code == 0
        assert "paused" in result.output
        registry.pause.assert_called_once_with('demo')

    def test_pause_with_cleanup_warning(self, cli_runner, registry, session):
        def paused_with_errors(title):
            session.status = SessionStatus.PAUSED
            raise PartialCleanupError([GitServiceError("locked")], "errors pausing session 'demo'")

        registry.pause.side_effect = paused_with_errors
        with patch_registry('lifecycle', registry):
            result = cli_runner.invoke(pause, ['demo'])

        assert result.exit_code == 0
        assert "Warning" in result.output

    def test_pause_refused(self, cli_runner, registry):
        registry.pause.side_effect = TmuxServiceError("boom")
        with patch_registry('lifecycle', registry):
            result = cli_runner.invoke(pause, ['demo'])

        assert result.exit_code == 1
        assert "Error: boom" in result.output

    def test_resume(self, cli_runner, registry):
        with patch_registry('lifecycle', registry):
            result = cli_runner.invoke(resume, ['demo'])

        assert result.exit_code == 0
        assert "resumed in /wt/demo" in result.output

    def test_kill_requires_confirmation(self, cli_runner, registry):
        with patch_registry('lifecycle', registry):
            result = cli_runner.invoke(kill, ['demo'], input='n\n')

        assert result.exit_code != 0
        registry.kill.assert_not_called()

    def test_kill(self, cli_runner, registry):
        with patch_registry('lifecycle', registry):
            result = cli_runner.invoke(kill, ['demo', '--yes'])

        assert result.exit_code == 0
        assert "Session 'demo' killed" in result.output
        registry.kill.assert_called_once_with('demo')

    def test_kill_unknown_session(self, cli_runner, registry):
        registry.get.side_effect = NotFoundError("session not found: nope")
        with patch_registry('lifecycle', registry):
            result = cli_runner.invoke(kill, ['nope', '--yes'])

        assert result.exit_code == 1
        assert "session not found: nope" in result.output
        registry.kill.assert_not_called()

    def test_kill_with_cleanup_errors(self, cli_runner, registry):
        registry.kill.side_effect = PartialCleanupError([GitServiceError("locked")])
        with patch_registry('lifecycle', registry):
            result = cli_runner.invoke(kill, ['demo', '--yes'])

        assert result.exit_code == 1
        assert "cleanup failed" in result.output


class TestInspectCommands:

    def test_preview(self, cli_runner, registry, session):
        session.snapshot.return_value = "hello world"
        with patch_registry('preview', registry):
            result = cli_runner.invoke(preview, ['demo'])

        assert result.exit_code == 0
        assert "hello world" in result.output

    def test_preview_history_with_size(self, cli_runner, registry, session):
        session.capture_history.return_value = "scrollback"
        with patch_registry('preview', registry):
            result = cli_runner.invoke(preview, ['demo', '--history', '--width', '80', '--height', '24'])

        assert "scrollback" in result.output
        session.resize.assert_called_once_with(80, 24)
        session.capture_history.assert_called_once_with("-", "-")

    def test_preview_paused(self, cli_runner, registry, session):
        session.status = SessionStatus.PAUSED
        session.snapshot.return_value = ""
        with patch_registry('preview', registry):
            result = cli_runner.invoke(preview, ['demo'])

        assert "is paused" in result.output

    def test_diff(self, cli_runner, registry, session):
        session.compute_diff_stats.return_value = DiffStats(added=4, removed=2, content="+new line")
        with patch_registry('preview', registry):
            result = cli_runner.invoke(diff, ['demo'])

        assert result.exit_code == 0
        assert "+4" in result.output
        assert "-2" in result.output
        assert "+new line" in result.output

    def test_diff_stat_only(self, cli_runner, registry, session):
        session.compute_diff_stats.return_value = DiffStats(added=4, removed=2, content="+new line")
        with patch_registry('preview', registry):
            result = cli_runner.invoke(diff, ['demo', '--stat'])

        assert "+new line" not in result.output


class TestSendCommand:

    @patch('agent_squad.cli.commands.send.time.sleep')
    def test_send(self, mock_sleep, cli_runner, registry, session):
        with patch_registry('send', registry):
            result = cli_runner.invoke(send, ['demo', 'fix the tests'])

        assert result.exit_code == 0
        session.send_keys.assert_called_once_with('fix the tests')
        session.tap_enter.assert_called_once()

    @patch('agent_squad.cli.commands.send.time.sleep')
    def test_send_no_enter(self, mock_sleep, cli_runner, registry, session):
        with patch_registry('send', registry):
            cli_runner.invoke(send, ['demo', 'y', '--no-enter'])

        session.tap_enter.assert_not_called()


class TestAttachCommand:

    def test_attach(self, cli_runner, registry, session):
        signal = session.attach.return_value
        signal.raise_for_error.return_value = None
        with patch_registry('attach', registry):
            result = cli_runner.invoke(attach, ['demo'])

        assert result.exit_code == 0
        signal.wait.assert_called_once()
        registry.shutdown.assert_called_once()

    def test_attach_terminal_state_error(self, cli_runner, registry, session):
        signal = session.attach.return_value
        signal.raise_for_error.side_effect = TerminalStateError("could not restore the terminal mode")
        with patch_registry('attach', registry):
            result = cli_runner.invoke(attach, ['demo'])

        assert result.exit_code == 1

    def test_attach_refused(self, cli_runner, registry, session):
        session.attach.side_effect = ConflictError("already attached")
        with patch_registry('attach', registry):
            result = cli_runner.invoke(attach, ['demo'])

        assert result.exit_code == 1
        assert "already attached" in result.output
