from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Union

from dateutil import parser as dtp


class EventDecodeError(ValueError):
    """A record of a known type could not be turned into an event."""


def parse_dt(s) -> datetime:
    if isinstance(s, datetime):
        return s
    return dtp.parse(s)


def to_epoch_millis(dt: datetime) -> int:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


@dataclass(frozen=True)
class TripEvent:
    pickup_lat: float
    pickup_lon: float
    dropoff_lat: float
    dropoff_lon: float
    pickup_datetime: datetime
    dropoff_datetime: datetime
    kind: str = field(default="trip", init=False)

    @property
    def timestamp(self) -> int:
        # windows are always assigned on pickup time
        return to_epoch_millis(self.pickup_datetime)

    @property
    def dropoff_timestamp(self) -> int:
        return to_epoch_millis(self.dropoff_datetime)


@dataclass(frozen=True)
class WatermarkEvent:
    watermark: datetime
    kind: str = field(default="watermark", init=False)

    @property
    def timestamp(self) -> int:
        return to_epoch_millis(self.watermark)


@dataclass(frozen=True)
class UnknownEvent:
    type_name: str
    payload: dict
    kind: str = field(default="unknown", init=False)

    @property
    def timestamp(self) -> Optional[int]:
        return None


Event = Union[TripEvent, WatermarkEvent, UnknownEvent]


def _float(msg: dict, name: str) -> float:
    value = msg.get(name)
    if value is None or value == "":
        raise EventDecodeError(f"missing field {name!r}")
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise EventDecodeError(f"field {name!r} is not a number: {value!r}") from e


def _datetime(msg: dict, name: str) -> datetime:
    value = msg.get(name)
    if value is None or value == "":
        raise EventDecodeError(f"missing field {name!r}")
    try:
        return parse_dt(value)
    except (TypeError, ValueError, OverflowError) as e:
        raise EventDecodeError(f"field {name!r} is not a datetime: {value!r}") from e


def parse_event(msg: dict) -> Event:
    """Decode one raw record (already JSON-decoded) into its event variant."""
    if not isinstance(msg, dict):
        raise EventDecodeError(f"expected a JSON object, got {type(msg).__name__}")

    kind = msg.get("type")
    if kind == "trip":
        return TripEvent(
            pickup_lat=_float(msg, "pickup_latitude"),
            pickup_lon=_float(msg, "pickup_longitude"),
            dropoff_lat=_float(msg, "dropoff_latitude"),
            dropoff_lon=_float(msg, "dropoff_longitude"),
            pickup_datetime=_datetime(msg, "pickup_datetime"),
            dropoff_datetime=_datetime(msg, "dropoff_datetime"),
        )
    if kind == "watermark":
        return WatermarkEvent(watermark=_datetime(msg, "watermark"))
    return UnknownEvent(type_name=str(kind), payload=msg)
