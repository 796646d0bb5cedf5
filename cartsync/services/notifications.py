import logging
from pydantic import BaseModel
from typing import Callable, List, Literal


logger = logging.getLogger(__name__)


class Notification(BaseModel):
    level: Literal["success", "info", "error"]
    message: str


class Notifier:
    """Collects the toasts a cart action wants shown and hands them to subscribers"""

    def __init__(self):
        self.history: List[Notification] = []
        self._listeners: List[Callable[[Notification], None]] = []

    def subscribe(self, listener: Callable[[Notification], None]) -> None:
        self._listeners.append(listener)

    def success(self, message: str) -> Notification:
        logger.info(message)
        return self._emit(Notification(level="success", message=message))

    def info(self, message: str) -> Notification:
        logger.info(message)
        return self._emit(Notification(level="info", message=message))

    def error(self, message: str) -> Notification:
        logger.warning(message)
        return self._emit(Notification(level="error", message=message))

    def _emit(self, notification: Notification) -> Notification:
        self.history.append(notification)
        for listener in list(self._listeners):
            listener(notification)
        return notification
