import json
import logging
import queue
import signal
import threading
import time
import zlib

from kafka import KafkaConsumer, KafkaProducer

from settings import Settings
from sinks import AnalyticsStoreSink, DeliveryStreamSink
from taxi_events import parse_event
from taxi_geo import encode
from trip_filter import classify
from watermarks import EventTime, ProcessingTime, WatermarkAssigner
from windowing import pickup_count_aggregator, trip_duration_aggregator

log = logging.getLogger(__name__)

FLUSH_INTERVAL_SEC = 60
# per worker; a full queue blocks the consumer thread
QUEUE_SIZE = 10000

_STOP = object()


class TripMetrics:
    """The window state owned by one partition."""

    def __init__(self, settings: Settings, pickup_sink=None, duration_sink=None):
        self.pickup_counts = pickup_count_aggregator(
            pickup_sink,
            window_length_ms=settings.window_length_ms,
            precision=settings.geohash_precision,
            min_count=settings.min_pickup_count,
        )
        self.trip_durations = trip_duration_aggregator(
            duration_sink,
            window_length_ms=settings.window_length_ms,
            precision=settings.geohash_precision,
            min_trips=settings.min_trip_count,
        )

    def add(self, trip, timestamp: int):
        self.pickup_counts.add(trip, timestamp)
        self.trip_durations.add(trip, timestamp)

    def advance_watermark(self, watermark: int):
        self.pickup_counts.advance_watermark(watermark)
        self.trip_durations.advance_watermark(watermark)

    def discard(self) -> int:
        return self.pickup_counts.discard() + self.trip_durations.discard()


class PartitionWorker(threading.Thread):
    def __init__(self, index: int, metrics: TripMetrics, queue_size: int = QUEUE_SIZE):
        super().__init__(name=f"partition-{index}", daemon=True)
        self.index = index
        self.metrics = metrics
        self.queue = queue.Queue(maxsize=queue_size)
        self.error = None

    def run(self):
        while True:
            item = self.queue.get()
            try:
                if item is _STOP:
                    return
                if self.error is not None:
                    continue
                if item[0] == "trip":
                    self.metrics.add(item[1], item[2])
                else:
                    self.metrics.advance_watermark(item[1])
            except Exception as e:
                log.exception("partition %d failed", self.index)
                self.error = e
            finally:
                self.queue.task_done()


class StreamProcessor:
    def __init__(self, settings: Settings, pickup_sink=None, duration_sink=None, workers=None, strategy=None):
        if strategy is None:
            strategy = EventTime() if settings.event_time else ProcessingTime()
        self.settings = settings
        if workers is None:
            workers = settings.workers
        self.assigner = WatermarkAssigner(strategy)
        self.partitions = [TripMetrics(settings, pickup_sink, duration_sink) for _ in range(max(workers, 1))]
        self.workers = []
        if workers > 0:
            self.workers = [PartitionWorker(i, m) for i, m in enumerate(self.partitions)]
            for w in self.workers:
                w.start()
        self.stats = {"events": 0, "trips": 0, "filtered": 0}

    def partition_for(self, trip) -> int:
        cell = encode(trip.pickup_lat, trip.pickup_lon, self.settings.geohash_precision)
        return zlib.crc32(cell.encode("utf-8")) % len(self.partitions)

    def process(self, event):
        self._check_workers()
        self.stats["events"] += 1
        ts, advanced = self.assigner.assign(event)

        trip = classify(event)
        if trip is not None:
            self.stats["trips"] += 1
            self._route(self.partition_for(trip), ("trip", trip, ts))
        elif event.kind == "trip":
            self.stats["filtered"] += 1

        if advanced is not None:
            self._broadcast(advanced)

    def tick(self):
        advanced = self.assigner.tick()
        if advanced is not None:
            self._broadcast(advanced)

    def drain(self):
        for w in self.workers:
            w.queue.join()
        self._check_workers()

    def close(self) -> int:
        for w in self.workers:
            w.queue.put(_STOP)
        for w in self.workers:
            w.join()
        dropped = sum(m.discard() for m in self.partitions)
        if dropped:
            log.info("discarded %d accumulators of windows still open at shutdown", dropped)
        return dropped

    def _route(self, index: int, item):
        if self.workers:
            self.workers[index].queue.put(item)
        else:
            self.partitions[index].add(item[1], item[2])

    def _broadcast(self, watermark: int):
        if self.workers:
            for w in self.workers:
                w.queue.put(("watermark", watermark))
        else:
            for m in self.partitions:
                m.advance_watermark(watermark)

    def _check_workers(self):
        for w in self.workers:
            if w.error is not None:
                raise RuntimeError(f"partition {w.index} failed") from w.error


def decode_record(raw: bytes):
    return parse_event(json.loads(raw.decode("utf-8")))


def log_result(result):
    log.info("%s", result)


def _serialize(v) -> bytes:
    return (v if isinstance(v, str) else json.dumps(v)).encode("utf-8")


def main(argv=None):
    settings = Settings.from_args(argv)
    logging.basicConfig(level=settings.log_level.upper(),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    consumer = KafkaConsumer(
            settings.stream,
            bootstrap_servers=settings.bootstrap_servers,
            enable_auto_commit=True,
            auto_offset_reset="earliest",
            group_id=settings.group_id,
    )

    producer = KafkaProducer(
            bootstrap_servers=settings.bootstrap_servers,
            value_serializer=_serialize,
            linger_ms=25,
            acks=1
    )

    pickup_sink = DeliveryStreamSink(producer, settings.pickup_topic) if settings.pickup_topic else None
    duration_sink = (AnalyticsStoreSink(settings.analytics_url, settings.analytics_index)
                     if settings.analytics_url else None)
    sinks = [s for s in (pickup_sink, duration_sink) if s is not None]

    processor = StreamProcessor(settings,
                                pickup_sink=pickup_sink or log_result,
                                duration_sink=duration_sink or log_result)

    stop = threading.Event()

    def _shutdown(sig, frame):
        stop.set()
    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    log.info("Starting to consume events from stream %s (%s, %d workers)",
             settings.stream, processor.assigner.strategy.name, settings.workers)

    next_flush = time.time() + FLUSH_INTERVAL_SEC
    failed = False
    try:
        while not stop.is_set():
            msg_batch = consumer.poll(timeout_ms=500)

            for tp, records in msg_batch.items():
                for rec in records:
                    try:
                        event = decode_record(rec.value)
                    except ValueError as e:
                        log.debug("undecodable record at %s:%d: %s", tp, rec.offset, e)
                        if settings.dlq_topic:
                            producer.send(settings.dlq_topic, value={
                                "error": "decode_failed",
                                "detail": str(e),
                                "payload": rec.value.decode("utf-8", errors="replace"),
                            })
                        continue
                    processor.process(event)

            processor.tick()

            now = time.time()
            if now >= next_flush:
                processor.drain()
                for s in sinks:
                    s.flush()
                next_flush = now + FLUSH_INTERVAL_SEC
    except BaseException:
        failed = True
        raise
    finally:
        shutdown(processor, sinks, producer, consumer, failed)


def shutdown(processor, sinks, producer, consumer, failed=False):
    """
    Stops the workers, flushes the sinks and closes the Kafka clients.

    When the loop is already failing, a sink that cannot flush is logged
    instead of raised so the original error propagates.
    """
    try:
        processor.close()
        for s in sinks:
            try:
                s.flush()
            except Exception:
                if not failed:
                    raise
                log.exception("could not flush %s while shutting down", type(s).__name__)
    finally:
        try:
            producer.flush()
        finally:
            consumer.close()
            log.info("stopped after %d events (%d trips kept, %d filtered)",
                     processor.stats["events"], processor.stats["trips"], processor.stats["filtered"])


if __name__ == "__main__":
    main()
