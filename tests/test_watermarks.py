from helpers import ms, trip, watermark

from watermarks import MIN_WATERMARK, EventTime, ProcessingTime, WatermarkAssigner


def test_trip_records_carry_their_pickup_time_but_no_punctuation():
    assigner = WatermarkAssigner(EventTime())

    ts, advanced = assigner.assign(trip(start=3))
    assert ts == ms(3)
    assert advanced is None
    assert assigner.current == MIN_WATERMARK


def test_watermark_records_advance_the_watermark():
    assigner = WatermarkAssigner()

    ts, advanced = assigner.assign(watermark(10))
    assert ts == ms(10)
    assert advanced == ms(10)
    assert assigner.current == ms(10)


def test_watermark_never_moves_backwards():
    assigner = WatermarkAssigner(EventTime())
    assigner.assign(watermark(20))

    assert assigner.assign(watermark(5)) == (ms(5), None)
    assert assigner.assign(watermark(20)) == (ms(20), None)
    assert assigner.current == ms(20)

    assert assigner.assign(watermark(21))[1] == ms(21)


def test_event_time_does_not_advance_when_idle():
    assigner = WatermarkAssigner(EventTime())
    assert assigner.tick() is None


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


def test_processing_time_stamps_records_with_the_clock():
    clock = FakeClock(1000)
    assigner = WatermarkAssigner(ProcessingTime(clock))

    ts, advanced = assigner.assign(trip(start=3))
    assert ts == 1000
    assert advanced == 1000

    clock.now = 5000
    assert assigner.tick() == 5000
    assert assigner.tick() is None

    # a clock that steps back does not pull the watermark with it
    clock.now = 4000
    assert assigner.assign(trip()) == (4000, None)
    assert assigner.current == 5000
