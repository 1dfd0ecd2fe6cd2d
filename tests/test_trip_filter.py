from helpers import DR5REG, JFK, MIDTOWN, trip, watermark

from taxi_events import UnknownEvent
from trip_filter import classify, filter_trips

BOSTON = (42.36, -71.06)


def test_keeps_trips_inside_nyc():
    t = trip(pickup=DR5REG[0], dropoff=JFK)
    assert classify(t) is t


def test_drops_other_variants():
    assert classify(watermark(10)) is None
    assert classify(UnknownEvent(type_name="fare", payload={})) is None


def test_drops_placeholder_coordinates():
    assert classify(trip(pickup=(0.0, 0.0))) is None
    assert classify(trip(dropoff=(40.75, 0.0))) is None


def test_drops_trips_starting_outside_nyc():
    assert classify(trip(pickup=BOSTON, dropoff=MIDTOWN)) is None


def test_dropoff_outside_nyc_is_fine():
    t = trip(pickup=MIDTOWN, dropoff=BOSTON)
    assert classify(t) is t


def test_filter_trips_streams_survivors_in_order():
    a = trip(start=1)
    b = trip(start=2)
    events = [watermark(0), a, trip(pickup=BOSTON), UnknownEvent("x", {}), b]

    assert list(filter_trips(events)) == [a, b]
