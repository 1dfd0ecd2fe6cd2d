import math
from typing import Optional

BASE32 = "0123456789bcdefghjkmnpqrstuvwxyz"

DEFAULT_PRECISION = 6

# (lat_min, lat_max, lon_min, lon_max)
NYC_BOX = (40.489979, 40.878808, -74.256958, -73.700272)
JFK_BOX = (40.620549, 40.666755, -73.823342, -73.749641)
LGA_BOX = (40.766014, 40.786593, -73.887078, -73.855995)


def encode(lat: float, lon: float, precision: int = DEFAULT_PRECISION) -> str:
    """Geohash of (lat, lon) with exactly `precision` characters."""
    lat_lo, lat_hi = -90.0, 90.0
    lon_lo, lon_hi = -180.0, 180.0
    chars = []
    bits, ch, even = 0, 0, True
    while len(chars) < precision:
        # even bits refine longitude, odd bits latitude
        if even:
            mid = (lon_lo + lon_hi) / 2
            if lon >= mid:
                ch = (ch << 1) | 1
                lon_lo = mid
            else:
                ch = ch << 1
                lon_hi = mid
        else:
            mid = (lat_lo + lat_hi) / 2
            if lat >= mid:
                ch = (ch << 1) | 1
                lat_lo = mid
            else:
                ch = ch << 1
                lat_hi = mid
        even = not even
        bits += 1
        if bits == 5:
            chars.append(BASE32[ch])
            bits, ch = 0, 0
    return "".join(chars)


def _in_box(lat: float, lon: float, box) -> bool:
    lat_min, lat_max, lon_min, lon_max = box
    return lat_min <= lat <= lat_max and lon_min <= lon <= lon_max


def is_valid_coordinate(lat, lon) -> bool:
    if lat is None or lon is None:
        return False
    if math.isnan(lat) or math.isnan(lon):
        return False
    # the feed reports missing positions as 0.0
    if lat == 0.0 or lon == 0.0:
        return False
    return -90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0


def is_near_nyc(lat: float, lon: float) -> bool:
    return _in_box(lat, lon, NYC_BOX)


def is_near_jfk(lat: float, lon: float) -> bool:
    return _in_box(lat, lon, JFK_BOX)


def is_near_lga(lat: float, lon: float) -> bool:
    return _in_box(lat, lon, LGA_BOX)


def airport_code(lat: float, lon: float) -> Optional[str]:
    if is_near_jfk(lat, lon):
        return "JFK"
    if is_near_lga(lat, lon):
        return "LGA"
    return None
