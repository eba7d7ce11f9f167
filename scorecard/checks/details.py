"""Collects the detail messages produced while running checks."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class DetailType(Enum):
    """Severity of a detail message."""

    INFO = "info"
    WARN = "warn"
    DEBUG = "debug"


@dataclass(frozen=True)
class Detail:
    """One logged message."""

    type: DetailType
    msg: str


class DetailLogger:
    """Records info, warning and debug messages in order."""

    def __init__(self) -> None:
        self.details: list[Detail] = []

    def _log(self, kind: DetailType, msg: str, args: tuple[Any, ...]) -> None:
        self.details.append(Detail(kind, msg % args if args else msg))

    def info(self, msg: str, *args: Any) -> None:
        self._log(DetailType.INFO, msg, args)

    def warn(self, msg: str, *args: Any) -> None:
        self._log(DetailType.WARN, msg, args)

    def debug(self, msg: str, *args: Any) -> None:
        self._log(DetailType.DEBUG, msg, args)

    def count(self, kind: DetailType) -> int:
        """Return how many messages of ``kind`` were logged."""
        return sum(1 for detail in self.details if detail.type is kind)