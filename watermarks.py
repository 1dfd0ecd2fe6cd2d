import logging
import time
from typing import Callable, Optional, Tuple

log = logging.getLogger(__name__)

# no watermark seen yet
MIN_WATERMARK = -(2 ** 63)


def wall_clock_millis() -> int:
    return int(time.time() * 1000)


class EventTime:
    name = "event-time"

    def extract_timestamp(self, event) -> Optional[int]:
        return event.timestamp

    def punctuation(self, event, timestamp: Optional[int]) -> Optional[int]:
        if event.kind == "watermark":
            return timestamp
        return None

    def idle(self) -> Optional[int]:
        return None


class ProcessingTime:
    name = "processing-time"

    def __init__(self, clock: Callable[[], int] = wall_clock_millis):
        self.clock = clock

    def extract_timestamp(self, event) -> Optional[int]:
        return self.clock()

    def punctuation(self, event, timestamp: Optional[int]) -> Optional[int]:
        return timestamp

    def idle(self) -> Optional[int]:
        return self.clock()


class WatermarkAssigner:
    def __init__(self, strategy=None):
        self.strategy = strategy if strategy is not None else EventTime()
        self.current = MIN_WATERMARK

    def assign(self, event) -> Tuple[Optional[int], Optional[int]]:
        """
        Returns (timestamp, advanced) for one record, where `advanced` is the
        new watermark when this record moved it forward and None otherwise.
        """
        ts = self.strategy.extract_timestamp(event)
        return ts, self._advance(self.strategy.punctuation(event, ts))

    def tick(self) -> Optional[int]:
        return self._advance(self.strategy.idle())

    def _advance(self, candidate: Optional[int]) -> Optional[int]:
        if candidate is None or candidate <= self.current:
            return None
        self.current = candidate
        log.debug("watermark advanced to %d (%s)", candidate, self.strategy.name)
        return candidate
