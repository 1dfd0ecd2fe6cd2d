import logging
from collections import Counter
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, List, Optional, Tuple

from taxi_events import TripEvent
from taxi_geo import DEFAULT_PRECISION, airport_code, encode
from watermarks import MIN_WATERMARK

log = logging.getLogger(__name__)

WINDOW_LENGTH_MS = 10 * 60 * 1000
MIN_PICKUP_COUNT = 2
MIN_TRIP_COUNT = 2


@dataclass(frozen=True)
class PickupCountResult:
    cell: str
    count: int
    window_end: int


@dataclass(frozen=True)
class TripDurationResult:
    cell: str
    airport_code: str
    sum_minutes: int
    avg_minutes: float
    window_end: int


@dataclass
class CountAccumulator:
    count: int = 0


@dataclass
class DurationAccumulator:
    count: int = 0
    sum_minutes: int = 0


class TumblingWindowAggregator:
    def __init__(self,
                 name: str,
                 key_fn: Callable[[Any], Optional[Hashable]],
                 window_length_ms: int,
                 init_fn: Callable[[], Any],
                 merge_fn: Callable[[Any, Any], Any],
                 emit_predicate: Callable[[Any], bool],
                 finalize_fn: Callable[[Hashable, Any, int], Any],
                 sink: Optional[Callable[[Any], None]] = None):
        if window_length_ms <= 0:
            raise ValueError("window length must be positive")
        self.name = name
        self.key_fn = key_fn
        self.window_length_ms = window_length_ms
        self.init_fn = init_fn
        self.merge_fn = merge_fn
        self.emit_predicate = emit_predicate
        self.finalize_fn = finalize_fn
        self.sink = sink
        self.watermark = MIN_WATERMARK
        self.stats = Counter()
        # {window_start: {key: accumulator}}, entries leave only via advance_watermark or discard
        self._windows: Dict[int, Dict[Hashable, Any]] = {}

    def window_start(self, timestamp: int) -> int:
        return timestamp - (timestamp % self.window_length_ms)

    def add(self, record, timestamp: int) -> bool:
        key = self.key_fn(record)
        if key is None:
            self.stats["unkeyed"] += 1
            return False

        start = self.window_start(timestamp)
        if start + self.window_length_ms <= self.watermark:
            self.stats["late"] += 1
            log.debug("%s: late record for window %d dropped (watermark %d)",
                      self.name, start, self.watermark)
            return False

        window = self._windows.setdefault(start, {})
        acc = window.get(key)
        if acc is None:
            acc = self.init_fn()
        window[key] = self.merge_fn(acc, record)
        self.stats["accepted"] += 1
        return True

    def advance_watermark(self, watermark: int) -> List[Any]:
        """Close every window whose end is at or before `watermark`."""
        if watermark <= self.watermark:
            return []
        self.watermark = watermark

        emitted = []
        for start in sorted(s for s in self._windows if s + self.window_length_ms <= watermark):
            end = start + self.window_length_ms
            for key, acc in self._windows.pop(start).items():
                if not self.emit_predicate(acc):
                    self.stats["suppressed"] += 1
                    continue
                result = self.finalize_fn(key, acc, end)
                self.stats["emitted"] += 1
                log.debug("%s: emitting %s", self.name, result)
                if self.sink is not None:
                    self.sink(result)
                emitted.append(result)
        return emitted

    def discard(self) -> int:
        dropped = sum(len(w) for w in self._windows.values())
        self._windows.clear()
        return dropped

    def open_windows(self) -> List[Tuple[Hashable, int]]:
        return [(key, start) for start in sorted(self._windows) for key in self._windows[start]]

    def __len__(self):
        return sum(len(w) for w in self._windows.values())


def trip_minutes(trip: TripEvent) -> int:
    # whole minutes, truncated toward zero
    return int((trip.dropoff_timestamp - trip.timestamp) / 60000)


def pickup_count_aggregator(sink=None,
                            window_length_ms: int = WINDOW_LENGTH_MS,
                            precision: int = DEFAULT_PRECISION,
                            min_count: int = MIN_PICKUP_COUNT) -> TumblingWindowAggregator:
    def key(trip):
        return encode(trip.pickup_lat, trip.pickup_lon, precision)

    def merge(acc, trip):
        acc.count += 1
        return acc

    return TumblingWindowAggregator(
        name="pickup-counts",
        key_fn=key,
        window_length_ms=window_length_ms,
        init_fn=CountAccumulator,
        merge_fn=merge,
        emit_predicate=lambda acc: acc.count >= min_count,
        finalize_fn=lambda cell, acc, end: PickupCountResult(cell, acc.count, end),
        sink=sink,
    )


def trip_duration_aggregator(sink=None,
                             window_length_ms: int = WINDOW_LENGTH_MS,
                             precision: int = DEFAULT_PRECISION,
                             min_trips: int = MIN_TRIP_COUNT) -> TumblingWindowAggregator:
    def key(trip):
        code = airport_code(trip.dropoff_lat, trip.dropoff_lon)
        if code is None:
            return None
        if trip.dropoff_timestamp < trip.timestamp:
            log.debug("dropping trip that ends before it starts: %s", trip)
            return None
        return encode(trip.pickup_lat, trip.pickup_lon, precision), code

    def merge(acc, trip):
        acc.count += 1
        acc.sum_minutes += trip_minutes(trip)
        return acc

    def finalize(key, acc, end):
        cell, code = key
        return TripDurationResult(cell, code, acc.sum_minutes, acc.sum_minutes / acc.count, end)

    return TumblingWindowAggregator(
        name="trip-durations",
        key_fn=key,
        window_length_ms=window_length_ms,
        init_fn=DurationAccumulator,
        merge_fn=merge,
        emit_predicate=lambda acc: acc.count >= min_trips,
        finalize_fn=finalize,
        sink=sink,
    )
