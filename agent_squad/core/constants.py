"""Constants used throughout the Agent Squad application."""

import os
from pathlib import Path

# Data directory
CONFIG_DIR_ENV_VAR = "AGENT_SQUAD_HOME"
DATA_DIR_NAME = ".agent-squad"
CONFIG_FILE_NAME = "config.json"
SESSIONS_FILE_NAME = "instances.json"
WORKTREES_DIR_NAME = "worktrees"
LOG_FILE_NAME = "agentsquad.log"

# Session defaults
DEFAULT_PROGRAM = "claude"
DEFAULT_BRANCH_PREFIX = "session/"
DEFAULT_POLL_INTERVAL_MS = 1000
PAUSE_COMMIT_TEMPLATE = "[agentsquad] update from '{title}' on {timestamp} (paused)"

# Known agent programs
PROGRAM_CLAUDE = "claude"
PROGRAM_AIDER = "aider"

# tmux
TMUX_SESSION_PREFIX = "agentsquad_"
SESSION_START_TIMEOUT = 2.0  # seconds
SESSION_START_POLL_INTERVAL = 0.01  # seconds

# Attach protocol
DETACH_KEY = 27  # ESC
INPUT_GRACE_PERIOD = 0.05  # seconds of stdin discarded right after attach
RESIZE_DEBOUNCE_WINDOW = 0.05  # seconds
IO_POLL_INTERVAL = 0.1  # seconds between cancellation checks in blocking loops
READ_CHUNK_SIZE = 4096
RESIZE_ERROR_LOG_INTERVAL = 60.0  # seconds

# Change detection
PROMPT_TAIL_LINES = 20


def get_config_dir() -> Path:
    """Get the application's configuration directory."""
    override = os.environ.get(CONFIG_DIR_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return Path.home() / DATA_DIR_NAME
