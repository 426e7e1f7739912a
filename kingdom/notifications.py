"""
User-visible notices (the toast feed).
Every notice is logged and kept in a bounded list the API can serve.
"""
import logging
import threading
from collections import deque
from typing import List, Optional

from kingdom.constants import (
    NOTICE_LEVEL_ERROR, NOTICE_LEVEL_WARNING, NOTICE_LEVEL_SUCCESS, MAX_RECENT_NOTICES,
)
from kingdom.schemas import Notice

logger = logging.getLogger("kingdom.notices")

_LOG_LEVELS = {
    NOTICE_LEVEL_ERROR: logging.ERROR,
    NOTICE_LEVEL_WARNING: logging.WARNING,
    NOTICE_LEVEL_SUCCESS: logging.INFO,
}


class Notifier:
    """Collects error, warning and success notices"""

    def __init__(self, max_notices: int = MAX_RECENT_NOTICES):
        self._notices = deque(maxlen=max_notices)
        self._lock = threading.Lock()

    def notify(self, level: str, title: str, description: Optional[str] = None) -> Notice:
        notice = Notice(level=level, title=title, description=description)
        logger.log(_LOG_LEVELS[level], f"{title}: {description}" if description else title)
        with self._lock:
            self._notices.append(notice)
        return notice

    def error(self, title: str, description: Optional[str] = None) -> Notice:
        return self.notify(NOTICE_LEVEL_ERROR, title, description)

    def warning(self, title: str, description: Optional[str] = None) -> Notice:
        return self.notify(NOTICE_LEVEL_WARNING, title, description)

    def success(self, title: str, description: Optional[str] = None) -> Notice:
        return self.notify(NOTICE_LEVEL_SUCCESS, title, description)

    def recent(self, level: Optional[str] = None) -> List[Notice]:
        """Newest first"""
        with self._lock:
            notices = list(self._notices)
        if level:
            notices = [notice for notice in notices if notice.level == level]
        return list(reversed(notices))

    def clear(self) -> None:
        with self._lock:
            self._notices.clear()
