import json
import logging
import threading
from datetime import datetime, timezone

import requests

from windowing import PickupCountResult, TripDurationResult

log = logging.getLogger(__name__)


class AnalyticsStoreError(RuntimeError):
    pass


def iso_millis(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat()


def format_pickup_count(result: PickupCountResult) -> str:
    return json.dumps({
        "location": result.cell,
        "pickup_count": result.count,
        "timestamp": iso_millis(result.window_end),
    })


def trip_duration_document(result: TripDurationResult) -> dict:
    return {
        "location": result.cell,
        "airport_code": result.airport_code,
        "sum_trip_duration": result.sum_minutes,
        "avg_trip_duration": result.avg_minutes,
        "timestamp": iso_millis(result.window_end),
    }


class DeliveryStreamSink:
    """Hands formatted pickup counts to a KafkaProducer; sends are batched by the producer."""

    def __init__(self, producer, topic: str):
        self.producer = producer
        self.topic = topic
        self.sent = 0
        self._lock = threading.Lock()

    def __call__(self, result: PickupCountResult):
        # called from every partition worker
        self.producer.send(self.topic, value=format_pickup_count(result))
        with self._lock:
            self.sent += 1

    def flush(self):
        self.producer.flush()


class AnalyticsStoreSink:
    def __init__(self, url: str, index: str, session=None, batch_size: int = 500, timeout: float = 30):
        self.url = url.rstrip("/")
        self.index = index
        self.session = session if session is not None else requests.Session()
        self.batch_size = batch_size
        self.timeout = timeout
        self.written = 0
        self._buffer = []
        self._lock = threading.Lock()

    def __call__(self, result: TripDurationResult):
        with self._lock:
            self._buffer.append(trip_duration_document(result))
            if len(self._buffer) >= self.batch_size:
                self._write()

    def flush(self):
        with self._lock:
            self._write()

    def _write(self):
        if not self._buffer:
            return
        lines = []
        for doc in self._buffer:
            lines.append(json.dumps({"index": {"_index": self.index}}))
            lines.append(json.dumps(doc))
        body = "\n".join(lines) + "\n"

        r = self.session.post(f"{self.url}/_bulk", data=body,
                              headers={"Content-Type": "application/x-ndjson"},
                              timeout=self.timeout)
        r.raise_for_status()
        if r.json().get("errors"):
            raise AnalyticsStoreError(f"bulk write to {self.index!r} rejected documents")

        self.written += len(self._buffer)
        log.debug("wrote %d documents to %s", len(self._buffer), self.index)
        self._buffer = []
