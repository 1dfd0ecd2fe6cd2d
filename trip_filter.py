import logging
from typing import Iterable, Iterator, Optional

from taxi_events import TripEvent
from taxi_geo import is_near_nyc, is_valid_coordinate

log = logging.getLogger(__name__)


def has_valid_coordinates(trip: TripEvent) -> bool:
    return (is_valid_coordinate(trip.pickup_lat, trip.pickup_lon)
            and is_valid_coordinate(trip.dropoff_lat, trip.dropoff_lon))


def starts_near_nyc(trip: TripEvent) -> bool:
    return is_near_nyc(trip.pickup_lat, trip.pickup_lon)


def classify(event) -> Optional[TripEvent]:
    """Return the event as a trip if it survives every check, else None."""
    if event.kind != "trip":
        return None
    if not has_valid_coordinates(event):
        log.debug("dropping trip with invalid coordinates: %s", event)
        return None
    if not starts_near_nyc(event):
        log.debug("dropping trip outside NYC: %s", event)
        return None
    return event


def filter_trips(events: Iterable) -> Iterator[TripEvent]:
    for event in events:
        trip = classify(event)
        if trip is not None:
            yield trip
