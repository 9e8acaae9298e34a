import sys
import time


def handle_request(event, context):
    print("sleeping", file=sys.stderr, flush=True)
    time.sleep(float(event.get("seconds", 1)))
    return {"slept": event.get("seconds", 1)}
