"""Best-effort desktop notifications for the subject's owner.

Notifications are sent as the owning user on their own session bus. They
never block or fail the event: every error is logged at debug level and
dropped.
"""

from __future__ import annotations

import logging

from .errors import MorphError
from .tools import Toolbox

logger = logging.getLogger(__name__)


class Notifier:
    def __init__(self, tools: Toolbox, enabled: bool = True) -> None:
        self.tools = tools
        self.enabled = enabled

    def notify(self, uid: int, body: str) -> bool:
        """Send *body* to *uid*'s desktop. Returns True if it was delivered."""
        if not self.enabled:
            return False
        try:
            username = self.tools.username(uid)
            if username is None:
                return False
            self.tools.send_notification(username, uid, body)
        except (MorphError, OSError) as exc:
            logger.debug("notification to uid %d dropped: %s", uid, exc)
            return False
        return True

    def syncing(self, uid: int, filename: str, target_ext: str) -> bool:
        return self.notify(uid, f"Syncing {filename} to {target_ext.upper()}")

    def restored(self, uid: int, filename: str, target_ext: str) -> bool:
        return self.notify(
            uid,
            f"Restored {filename} from version history ({target_ext.upper()})",
        )

    def aggregating(self, uid: int, count: int) -> bool:
        return self.notify(uid, f"Creating PDF from {count} files")
