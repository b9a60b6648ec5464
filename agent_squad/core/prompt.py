"""Detection of agents waiting for the user's input."""

from typing import Callable, Optional

from .constants import PROGRAM_AIDER, PROGRAM_CLAUDE, PROMPT_TAIL_LINES

PromptDetector = Callable[[str], bool]

CLAUDE_PROMPT = "No, and tell Claude what to do differently"
AIDER_PROMPT = "(Y)es/(N)o/(D)on't ask again"


def tail(content: str, lines: int = PROMPT_TAIL_LINES) -> str:
    """Last ``lines`` non-empty lines of pane content."""
    kept = [line for line in content.splitlines() if line.strip()]
    return "\n".join(kept[-lines:])


def contains_detector(*needles: str) -> PromptDetector:
    """Detector matching if any of ``needles`` appears in the content."""
    def detect(content: str) -> bool:
        return any(needle in content for needle in needles)
    return detect


def never(content: str) -> bool:
    return False


def detector_for_program(program: str) -> PromptDetector:
    """Default detector for the agent a session runs."""
    executable = program.strip().split(" ", 1)[0]
    name = executable.rsplit("/", 1)[-1]
    if name == PROGRAM_CLAUDE:
        return contains_detector(CLAUDE_PROMPT)
    if name == PROGRAM_AIDER:
        return contains_detector(AIDER_PROMPT)
    return never


def resolve_detector(program: str, detector: Optional[PromptDetector] = None) -> PromptDetector:
    return detector or detector_for_program(program)
