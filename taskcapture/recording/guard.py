"""Navigation-away guard armed while a recording is live."""

import logging
from typing import Callable, Optional

logger = logging.getLogger(__name__)

LEAVE_PROMPT = "A recording is in progress. Leaving now will discard it. Leave anyway?"


class NavigationGuard:
    """Host hook equivalent to a beforeunload handler.

    Args:
        confirm: asks the user a yes/no question; when omitted, leaving while
            armed is always refused
    """

    def __init__(self, confirm: Optional[Callable[[str], bool]] = None):
        self.confirm = confirm
        self.armed = False

    def arm(self) -> None:
        if not self.armed:
            logger.debug("Navigation guard armed")
        self.armed = True

    def disarm(self) -> None:
        if self.armed:
            logger.debug("Navigation guard disarmed")
        self.armed = False

    def confirm_leave(self) -> bool:
        """Return True if the host may navigate away."""
        if not self.armed:
            return True
        if self.confirm is None:
            return False
        return bool(self.confirm(LEAVE_PROMPT))
