import argparse
import os
from dataclasses import dataclass
from typing import List, Optional

from taxi_geo import DEFAULT_PRECISION
from windowing import MIN_PICKUP_COUNT, MIN_TRIP_COUNT


@dataclass
class Settings:
    stream: str
    bootstrap_servers: str = "broker:9092"
    group_id: str = "nyctaxi-hotspots"
    pickup_topic: Optional[str] = None
    analytics_url: Optional[str] = None
    analytics_index: str = "taxi-dashboard"
    dlq_topic: Optional[str] = "nyctaxi.dlq"
    window_minutes: int = 10
    geohash_precision: int = DEFAULT_PRECISION
    min_pickup_count: int = MIN_PICKUP_COUNT
    min_trip_count: int = MIN_TRIP_COUNT
    event_time: bool = True
    workers: int = 4
    log_level: str = "INFO"

    @property
    def window_length_ms(self) -> int:
        return self.window_minutes * 60 * 1000

    @classmethod
    def from_args(cls, argv: Optional[List[str]] = None) -> "Settings":
        ap = build_parser()
        args = ap.parse_args(argv)
        for name in ("window_minutes", "geohash_precision", "min_pickup_count", "min_trip_count"):
            if getattr(args, name) < 1:
                ap.error(f"--{name.replace('_', '-')} must be at least 1")
        if args.workers < 0:
            ap.error("--workers must not be negative")
        return cls(
            stream=args.stream,
            bootstrap_servers=args.bootstrap_servers,
            group_id=args.group_id,
            pickup_topic=args.pickup_topic,
            analytics_url=args.analytics_url,
            analytics_index=args.analytics_index,
            dlq_topic=args.dlq_topic or None,
            window_minutes=args.window_minutes,
            geohash_precision=args.geohash_precision,
            min_pickup_count=args.min_pickup_count,
            min_trip_count=args.min_trip_count,
            event_time=not args.noeventtime,
            workers=args.workers,
            log_level=args.log_level,
        )


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Windowed pickup hotspots and airport trip durations")
    ap.add_argument("--stream", required=True, help="raw trip topic to consume")
    ap.add_argument("--bootstrap-servers", default=os.getenv("KAFKA_BOOTSTRAP_SERVERS", "broker:9092"))
    ap.add_argument("--group-id", default="nyctaxi-hotspots")
    ap.add_argument("--pickup-topic", default=os.getenv("PICKUP_COUNT_TOPIC"),
                    help="delivery topic for pickup counts")
    ap.add_argument("--analytics-url", default=os.getenv("ANALYTICS_URL"),
                    help="base url of the analytics store for trip durations")
    ap.add_argument("--analytics-index", default="taxi-dashboard")
    ap.add_argument("--dlq-topic", default="nyctaxi.dlq", help="empty string disables the dead letter topic")
    ap.add_argument("--window-minutes", type=int, default=10)
    ap.add_argument("--geohash-precision", type=int, default=DEFAULT_PRECISION)
    ap.add_argument("--min-pickup-count", type=int, default=MIN_PICKUP_COUNT)
    ap.add_argument("--min-trip-count", type=int, default=MIN_TRIP_COUNT)
    ap.add_argument("--noeventtime", action="store_true", help="window on processing time instead of event time")
    ap.add_argument("--workers", type=int, default=4, help="0 processes inline on the consumer thread")
    ap.add_argument("--log-level", default="INFO")
    return ap
