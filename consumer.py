import json, os
from kafka import KafkaConsumer

BROKER = os.getenv("KAFKA_BOOTSTRAP_SERVERS", "broker:9092") # use broker port
TOPIC = os.getenv("PICKUP_COUNT_TOPIC", "nyctaxi.pickup_counts")

consumer = KafkaConsumer(
    TOPIC,
        bootstrap_servers=BROKER,
        value_deserializer=lambda b: json.loads(b.decode("utf-8")),
        auto_offset_reset="earliest",
        enable_auto_commit=True,
        group_id="nyctaxi-hotspot-inspector"
)

print(f"Listening for pickup hotspots on {TOPIC}... (Ctrl+C to exit)")
for message in consumer:
    data = message.value
    print(f"{data['timestamp']}  {data['location']}  {data['pickup_count']:>5}")
