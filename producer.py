import json, os, sys
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, Optional

import requests
from kafka import KafkaProducer

BROKER = os.getenv("KAFKA_BOOTSTRAP_SERVERS", "broker:9092")
TOPIC = "nyctaxi.raw_trips"

# older yellow cab files still carry pickup/dropoff coordinates
URLS = [
    "https://d37ci6vzurychx.cloudfront.net/trip-data/yellow_tripdata_2015-01.parquet"
]

WATERMARK_EVERY = 1000
# trips inside a file are only roughly ordered by pickup time
WATERMARK_SLACK = timedelta(minutes=1)


def rows_from_http_parquet(url: str) -> Iterable[Dict]:
    import pyarrow.parquet as pq
    import tempfile, shutil

    with requests.get(url, stream=True, timeout=60) as r:
        r.raise_for_status()
        with tempfile.NamedTemporaryFile(suffix=".parquet") as tf:
            shutil.copyfileobj(r.raw, tf)
            tf.flush()
            pf = pq.ParquetFile(tf.name)
            for batch in pf.iter_batches(batch_size=10000):
                for rec in batch.to_pylist():
                    yield rec


def _first(row: Dict, *names):
    for n in names:
        if row.get(n) is not None:
            return row[n]
    return None


def trip_record(row: Dict) -> Optional[Dict]:
    pickup = _first(row, "tpep_pickup_datetime", "pickup_datetime")
    dropoff = _first(row, "tpep_dropoff_datetime", "dropoff_datetime")
    if pickup is None or dropoff is None or row.get("pickup_latitude") is None:
        return None
    return {
        "type": "trip",
        "pickup_latitude": row.get("pickup_latitude"),
        "pickup_longitude": row.get("pickup_longitude"),
        "dropoff_latitude": row.get("dropoff_latitude"),
        "dropoff_longitude": row.get("dropoff_longitude"),
        "pickup_datetime": pickup,
        "dropoff_datetime": dropoff,
    }


def watermark_record(latest_pickup: datetime) -> Dict:
    wm = latest_pickup - WATERMARK_SLACK
    if wm.tzinfo is None:
        wm = wm.replace(tzinfo=timezone.utc)
    return {"type": "watermark", "watermark": wm.isoformat()}


def stream_urls_to_kafka(urls):
    producer = KafkaProducer(
        bootstrap_servers=BROKER,
            value_serializer=lambda v: json.dumps(v, default=str).encode("utf-8"),
            linger_ms=50, acks=1
    )
    sent = 0
    latest = None
    for url in urls:
        lower = url.lower()
        if lower.endswith(".parquet"):
            it = rows_from_http_parquet(url)
        else:
            continue
        for row in it:
            trip = trip_record(row)
            if trip is None:
                continue
            producer.send(TOPIC, value=trip)
            sent += 1
            if isinstance(trip["pickup_datetime"], datetime):
                latest = trip["pickup_datetime"] if latest is None else max(latest, trip["pickup_datetime"])
            if sent % WATERMARK_EVERY == 0 and latest is not None:
                producer.send(TOPIC, value=watermark_record(latest))
            if sent % 5000 == 0:
                producer.flush()
    if latest is not None:
        # close every window of the replay
        producer.send(TOPIC, value=watermark_record(latest + timedelta(days=1)))
    producer.flush()
    print(f"Done. Sent {sent} records.")

if __name__ == '__main__':
    if not URLS:
        print("Populate URLS with monthly files from the TLC page.")

        sys.exit(2)
    stream_urls_to_kafka(URLS)
