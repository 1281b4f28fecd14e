"""Stage notifications, delivered to subscribed observers."""
from __future__ import annotations

from collections import deque
from dataclasses import asdict, dataclass
from typing import Any, Callable, Deque, Dict, Iterable, List

from resume_coach.log import get_logger

log = get_logger(__name__)

STAGE_STARTED = "stage_started"
STAGE_SUCCEEDED = "stage_succeeded"
STAGE_FAILED = "stage_failed"


@dataclass(frozen=True)
class Notice:
    kind: str
    pipeline: str
    stage: str
    message: str
    variant: str = "default"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


Observer = Callable[[Notice], None]


class Notifier:
    def __init__(self, observers: Iterable[Observer] = ()):
        self._observers: List[Observer] = list(observers)

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def publish(self, notice: Notice) -> None:
        for observer in list(self._observers):
            observer(notice)

    def started(self, pipeline: str, stage: str) -> None:
        self.publish(Notice(STAGE_STARTED, pipeline, stage, f"{stage} started"))

    def succeeded(self, pipeline: str, stage: str) -> None:
        self.publish(Notice(STAGE_SUCCEEDED, pipeline, stage, f"{stage} completed"))

    def failed(self, pipeline: str, stage: str, error: BaseException) -> None:
        self.publish(Notice(STAGE_FAILED, pipeline, stage, str(error), variant="destructive"))


class LoggingObserver:
    def __call__(self, notice: Notice) -> None:
        if notice.kind == STAGE_FAILED:
            log.warning("[%s] %s failed: %s", notice.pipeline, notice.stage, notice.message)
        else:
            log.info("[%s] %s", notice.pipeline, notice.message)


class NoticeLog:
    """Keeps the most recent notices for display; started events are skipped."""

    def __init__(self, maxlen: int = 20):
        self._items: Deque[Notice] = deque(maxlen=maxlen)

    def __call__(self, notice: Notice) -> None:
        if notice.kind != STAGE_STARTED:
            self._items.append(notice)

    def __len__(self) -> int:
        return len(self._items)

    def items(self) -> List[Notice]:
        return list(self._items)
