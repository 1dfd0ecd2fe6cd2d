from datetime import datetime, timedelta, timezone

import pytest

from taxi_events import (
    EventDecodeError,
    TripEvent,
    UnknownEvent,
    WatermarkEvent,
    parse_event,
    to_epoch_millis,
)


def trip_msg(**overrides):
    msg = {
        "type": "trip",
        "pickup_latitude": 40.712,
        "pickup_longitude": -74.009,
        "dropoff_latitude": "40.6413",
        "dropoff_longitude": "-73.7781",
        "pickup_datetime": "2015-01-15 08:01:00",
        "dropoff_datetime": "2015-01-15T08:31:30",
        "trip_distance": 17.2,
        "total_amount": 52.8,
    }
    msg.update(overrides)
    return msg


def test_parse_trip():
    event = parse_event(trip_msg())

    assert isinstance(event, TripEvent)
    assert event.kind == "trip"
    assert event.dropoff_lat == pytest.approx(40.6413)
    assert event.pickup_datetime == datetime(2015, 1, 15, 8, 1)
    assert event.timestamp == to_epoch_millis(datetime(2015, 1, 15, 8, 1, tzinfo=timezone.utc))
    assert event.dropoff_timestamp - event.timestamp == 30 * 60 * 1000 + 30 * 1000


def test_fields_outside_the_trip_model_are_ignored():
    event = parse_event(trip_msg(passenger_count=2))
    assert not hasattr(event, "trip_distance")
    assert not hasattr(event, "passenger_count")


def test_parse_watermark():
    event = parse_event({"type": "watermark", "watermark": "2015-01-15T08:10:00+00:00"})

    assert isinstance(event, WatermarkEvent)
    assert event.kind == "watermark"
    assert event.timestamp == to_epoch_millis(datetime(2015, 1, 15, 8, 10))


def test_unknown_types_are_kept_as_unknown_events():
    event = parse_event({"type": "fare", "amount": 3})
    assert isinstance(event, UnknownEvent)
    assert event.kind == "unknown"
    assert event.type_name == "fare"
    assert event.timestamp is None


@pytest.mark.parametrize("msg", [
    trip_msg(pickup_latitude=None),
    trip_msg(pickup_longitude="north"),
    trip_msg(dropoff_datetime="not a date"),
    {"type": "watermark"},
    ["trip"],
])
def test_decode_errors(msg):
    with pytest.raises(EventDecodeError):
        parse_event(msg)


def test_events_are_immutable():
    event = parse_event(trip_msg())
    with pytest.raises(AttributeError):
        event.pickup_lat = 0.0


def test_aware_datetimes_are_converted_to_utc():
    eastern = timezone(timedelta(hours=-5))
    assert to_epoch_millis(datetime(2015, 1, 15, 3, 0, tzinfo=eastern)) == to_epoch_millis(datetime(2015, 1, 15, 8, 0))
