"""Persistent storage of session records."""

import json
import logging
from pathlib import Path
from typing import List, Optional

from ..core.constants import SESSIONS_FILE_NAME, get_config_dir
from ..models.session import SessionData
from ..services.exceptions import NotFoundError

logger = logging.getLogger(__name__)


class SessionStore:
    """Stores session records as a JSON list in the config directory."""

    def __init__(self, data_dir: Optional[Path] = None):
        """Initialize session store."""
        self.data_dir = data_dir or get_config_dir()
        self.sessions_file = self.data_dir / SESSIONS_FILE_NAME

    def load_all(self) -> List[SessionData]:
        """Load every stored session.

        Raises:
            ValueError: If the file exists but cannot be parsed
        """
        if not self.sessions_file.exists():
            return []

        try:
            data = json.loads(self.sessions_file.read_text())
            return [SessionData.from_dict(item) for item in data]
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise ValueError(f"failed to parse {self.sessions_file}: {e}") from e

    def save_all(self, sessions: List[SessionData]) -> None:
        """Replace the stored sessions."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        data = [session.to_dict() for session in sessions]
        tmp_file = self.sessions_file.with_suffix(".tmp")
        tmp_file.write_text(json.dumps(data, indent=2))
        tmp_file.replace(self.sessions_file)

    def get(self, title: str) -> Optional[SessionData]:
        """Get a stored session by title."""
        for session in self.load_all():
            if session.title == title:
                return session
        return None

    def delete(self, title: str) -> None:
        """Remove a stored session.

        Raises:
            NotFoundError: If no session has this title
        """
        sessions = self.load_all()
        remaining = [s for s in sessions if s.title != title]
        if len(remaining) == len(sessions):
            raise NotFoundError(f"session not found: {title}")
        self.save_all(remaining)
        logger.info(f"Deleted stored session: {title}")

    def delete_all(self) -> None:
        """Remove every stored session."""
        self.save_all([])
