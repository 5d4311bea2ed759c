"""User interaction surface used for every prompt and notification of the engine."""

import logging
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Protocol, Tuple

from .platform import get_file_manager_command


class UserInteraction(Protocol):
    """Toolkit-agnostic notifications, confirmations and folder reveal."""

    def inform(self, message: str) -> None:
        ...

    def warn(self, message: str) -> None:
        ...

    def error(self, message: str) -> None:
        ...

    def confirm(self, message: str, accept_label: str, decline_label: str) -> bool:
        ...

    def reveal(self, path: Path) -> None:
        ...


@dataclass
class RecordingInteraction:
    """Collects everything shown to the user and answers confirmations with ``confirm_answer``."""
    confirm_answer: bool = False
    messages: List[Tuple[str, str]] = field(default_factory=list)
    confirmations: List[str] = field(default_factory=list)
    revealed: List[Path] = field(default_factory=list)

    def inform(self, message: str) -> None:
        self.messages.append(("info", message))

    def warn(self, message: str) -> None:
        self.messages.append(("warning", message))

    def error(self, message: str) -> None:
        self.messages.append(("error", message))

    def confirm(self, message: str, accept_label: str, decline_label: str) -> bool:
        self.confirmations.append(message)
        return self.confirm_answer

    def reveal(self, path: Path) -> None:
        self.revealed.append(Path(path))

    def messages_of(self, level: str) -> List[str]:
        return [message for kind, message in self.messages if kind == level]

    def to_list(self) -> List[dict]:
        entries = [{"level": level, "message": message} for level, message in self.messages]
        entries.extend({"level": "confirm", "message": message} for message in self.confirmations)
        return entries


class ConsoleInteraction:
    """Terminal implementation: messages go to the log, confirmations are read from stdin."""

    def __init__(self, input_func: Callable[[str], str] = input, assume_yes: Optional[bool] = None):
        self.input_func = input_func
        self.assume_yes = assume_yes
        self.logger = logging.getLogger('coursesync.interaction')

    def inform(self, message: str) -> None:
        self.logger.info(message)

    def warn(self, message: str) -> None:
        self.logger.warning(message)

    def error(self, message: str) -> None:
        self.logger.error(message)

    def confirm(self, message: str, accept_label: str, decline_label: str) -> bool:
        if self.assume_yes is not None:
            self.logger.info(f"{message} -> {accept_label if self.assume_yes else decline_label}")
            return self.assume_yes

        try:
            answer = self.input_func(f"{message} [{accept_label}/{decline_label}] ").strip().lower()
        except EOFError:
            return False
        return answer in ("y", "yes", accept_label.lower())

    def reveal(self, path: Path) -> None:
        command = get_file_manager_command(Path(path))
        try:
            subprocess.Popen(command, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
        except OSError as e:
            self.logger.warning(f"Could not open file manager for {path}: {e}")
