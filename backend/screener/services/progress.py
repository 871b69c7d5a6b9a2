from __future__ import annotations

import enum
import logging
from dataclasses import asdict, dataclass
from typing import Callable, Dict, Iterable, List, Optional

from .sections import SectionDefinition

logger = logging.getLogger(__name__)


class ProgressStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETE = "complete"
    ERROR = "error"


ProgressCallback = Callable[[str, ProgressStatus], None]


@dataclass
class ProgressMessage:
    key: str
    label: str
    status: ProgressStatus = ProgressStatus.PENDING


class ProgressTracker:
    """
    Per-report progress, one message per section keyed by section key.

    Sections settle in any order; each `update` that changes a status mutates
    the message in place and hands a fresh snapshot to `on_change` (the Celery
    task uses this to publish PROGRESS state). Repeated statuses, such as the
    initial pending marks, publish nothing.
    """

    def __init__(
        self,
        definitions: Iterable[SectionDefinition],
        on_change: Optional[Callable[[List[dict]], None]] = None,
    ) -> None:
        self._messages: Dict[str, ProgressMessage] = {
            d.key: ProgressMessage(key=d.key, label=d.label) for d in definitions
        }
        self._on_change = on_change

    def update(self, key: str, status: ProgressStatus) -> None:
        message = self._messages.get(key)
        if message is None:
            logger.warning("Progress update for unknown section '%s'", key, extra={"section": key})
            return
        status = ProgressStatus(status)
        if message.status == status:
            return
        message.status = status
        if self._on_change is not None:
            self._on_change(self.snapshot())

    def status_of(self, key: str) -> ProgressStatus:
        return self._messages[key].status

    def snapshot(self) -> List[dict]:
        return [
            {**asdict(m), "status": m.status.value}
            for m in self._messages.values()
        ]

    @property
    def settled(self) -> bool:
        return all(m.status != ProgressStatus.PENDING for m in self._messages.values())
