from abc import ABC, abstractmethod
from typing import Dict, Optional
import logging

logger = logging.getLogger(__name__)


class Notifier(ABC):
    """Surfaces seat selection notices to the person making the booking."""

    @abstractmethod
    async def notify(self, level: str, message: str, meta: Optional[Dict] = None) -> None:
        raise NotImplementedError()

    async def success(self, message: str, meta: Optional[Dict] = None) -> None:
        await self.notify("success", message, meta)

    async def warning(self, message: str, meta: Optional[Dict] = None) -> None:
        await self.notify("warning", message, meta)

    async def error(self, message: str, meta: Optional[Dict] = None) -> None:
        await self.notify("error", message, meta)


class LogNotifier(Notifier):
    """Writes notices to the log (useful for scripts and testing)."""

    _LEVELS = {"success": logging.INFO, "warning": logging.WARNING, "error": logging.ERROR}

    async def notify(self, level: str, message: str, meta: Optional[Dict] = None) -> None:
        logger.log(self._LEVELS.get(level, logging.INFO), "[%s] %s", level, message, extra={"meta": meta or {}})
