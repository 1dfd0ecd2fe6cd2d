from datetime import datetime, timedelta

import requests

from taxi_events import TripEvent, WatermarkEvent, to_epoch_millis

# aligned to a 10 minute boundary
BASE = datetime(2015, 1, 15, 8, 0)

# inside geohash cell dr5reg (lower Manhattan)
DR5REG = [(40.712, -74.009), (40.713, -74.010), (40.711, -74.006)]
MIDTOWN = (40.7580, -73.9855)
JFK = (40.6413, -73.7781)
LGA = (40.7769, -73.8740)


def at(minutes: float) -> datetime:
    return BASE + timedelta(minutes=minutes)


def ms(minutes: float) -> int:
    return to_epoch_millis(at(minutes))


def trip(pickup=DR5REG[0], dropoff=MIDTOWN, start=0, duration=15):
    return TripEvent(
        pickup_lat=pickup[0],
        pickup_lon=pickup[1],
        dropoff_lat=dropoff[0],
        dropoff_lon=dropoff[1],
        pickup_datetime=at(start),
        dropoff_datetime=at(start + duration),
    )


def watermark(minutes: float) -> WatermarkEvent:
    return WatermarkEvent(watermark=at(minutes))


class FakeProducer:
    def __init__(self, **config):
        self.config = config
        self.sent = []
        self.flushed = 0

    def send(self, topic, value=None):
        self.sent.append((topic, value))

    def flush(self):
        self.flushed += 1


class FakeResponse:
    def __init__(self, status=200, body=None):
        self.status_code = status
        self.body = body if body is not None else {"errors": False}

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self.body


class FakeSession:
    def __init__(self, response=None):
        self.response = response or FakeResponse()
        self.posts = []

    def post(self, url, data=None, headers=None, timeout=None):
        self.posts.append((url, data, headers))
        return self.response
