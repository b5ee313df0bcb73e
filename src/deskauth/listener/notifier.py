"""Host UI capability invoked once a session has been obtained."""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class WindowNotifier(Protocol):
    """Bring the host application's main window to the front.

    Implementations should focus, show and unminimize the window. Calls are
    fire-and-forget: the listener logs any exception and carries on.
    """

    def notify(self) -> None: ...


class LoggingNotifier:
    """Default notifier for hosts without a window, such as the CLI."""

    def notify(self) -> None:
        logger.info("Login succeeded; no window to focus")
