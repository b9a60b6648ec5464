"""Configuration models for Agent Squad."""

from pydantic import BaseModel, Field

from ..core.constants import DEFAULT_BRANCH_PREFIX, DEFAULT_POLL_INTERVAL_MS, DEFAULT_PROGRAM


class AppConfig(BaseModel):
    """User configuration shared by every session."""

    default_program: str = Field(DEFAULT_PROGRAM, description="Program started in new sessions")
    auto_yes: bool = Field(False, description="Auto-approve prompts in new sessions")
    daemon_poll_interval: int = Field(
        DEFAULT_POLL_INTERVAL_MS, gt=0, description="Milliseconds between session polls"
    )
    branch_prefix: str = Field(DEFAULT_BRANCH_PREFIX, description="Prefix of session branch names")
