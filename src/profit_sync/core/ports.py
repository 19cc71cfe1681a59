"""Interfaces the engines use to reach the user interface."""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, List, Tuple

from ..exceptions import ConflictUnresolved

logger = logging.getLogger(__name__)


class ConflictChoice(str, Enum):
    """Decision returned by the conflict dialog."""

    KEEP_LOCAL = "keep_local"
    KEEP_REMOTE = "keep_remote"


class NotificationPort(ABC):
    """Shows one-line notifications to the user."""

    @abstractmethod
    async def show_notification(self, message: str, is_error: bool = False) -> None:
        """Display a notification."""


class ConflictResolutionPort(ABC):
    """Asks the user which version of a conflicting record to keep."""

    @abstractmethod
    async def choose(
        self, local: Dict[str, Any], remote: Dict[str, Any]
    ) -> ConflictChoice:
        """
        Present both versions and return the user's choice.

        Only one dialog is shown at a time; callers await each choice before
        asking the next one.

        Args:
            local: Local version of the record
            remote: Remote version of the record

        Returns:
            Which version becomes authoritative
        """


async def request_choice(
    port: ConflictResolutionPort, local: Dict[str, Any], remote: Dict[str, Any]
) -> ConflictChoice:
    """Ask the port about a conflict and validate the answer.

    Raises:
        ConflictUnresolved: The port answered with something other than a choice
    """
    answer = await port.choose(local, remote)
    try:
        return ConflictChoice(answer)
    except ValueError as e:
        key = str(local.get("date") or local.get("name") or "")
        raise ConflictUnresolved(key) from e


class LoggingNotifier(NotificationPort):
    """Notification port that writes to the log; used for headless runs."""

    def __init__(self) -> None:
        """Initialize with an empty history."""
        self.messages: List[Tuple[str, bool]] = []

    async def show_notification(self, message: str, is_error: bool = False) -> None:
        """Log the notification and keep it in ``messages``."""
        self.messages.append((message, is_error))
        if is_error:
            logger.error("%s", message)
        else:
            logger.info("%s", message)


class FixedChoiceResolver(ConflictResolutionPort):
    """Conflict port that always answers with the same choice."""

    def __init__(self, choice: ConflictChoice = ConflictChoice.KEEP_REMOTE):
        """Initialize with the choice to return for every conflict."""
        self.choice = choice
        self.asked: List[str] = []

    async def choose(
        self, local: Dict[str, Any], remote: Dict[str, Any]
    ) -> ConflictChoice:
        """Record the conflicting key and return the configured choice."""
        self.asked.append(str(local.get("date") or local.get("name") or ""))
        return self.choice
