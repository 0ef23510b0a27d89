"""Posts synthetic water tests for one tank to a running AquaHub API."""
import logging
import os
import random
import time

import requests
from dotenv import load_dotenv

load_dotenv()

API_BASE = os.getenv("API_BASE_URL", "http://localhost:8000").rstrip("/")
TANK_ID = int(os.getenv("TANK_ID", "1"))
INTERVAL = int(os.getenv("INTERVAL_SEC", "5"))
INCIDENT_MODE = os.getenv("INCIDENT_MODE", "1") == "1"

READINGS_URL = f"{API_BASE}/api/v1/readings"

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"), format="%(asctime)s %(levelname)s %(name)s - %(message)s")
logger = logging.getLogger("aquahub.simulator")

ph_base = 8.2
nitrate_base = 5.0


def clamp(x, lo, hi):
    return max(lo, min(hi, x))


def build_payload(t: int) -> dict:
    # Scripted incident: pH sags while nitrate and ammonia creep up
    if INCIDENT_MODE:
        ph = ph_base - (t * 0.01) + random.uniform(-0.03, 0.03)
        nitrate = nitrate_base + (t * 0.4) + random.uniform(-0.5, 0.5)
        ammonia = 0.02 * t + random.uniform(0.0, 0.02)
    else:
        ph = ph_base + random.uniform(-0.08, 0.08)
        nitrate = nitrate_base + random.uniform(-1.0, 1.0)
        ammonia = random.uniform(0.0, 0.05)

    return {
        "tank_id": TANK_ID,
        "ph": round(clamp(ph, 6.0, 9.0), 2),
        "temperature": round(clamp(78.0 + random.uniform(-1.5, 1.5), 60.0, 90.0), 1),
        "ammonia": round(clamp(ammonia, 0.0, 4.0), 3),
        "nitrite": round(random.uniform(0.0, 0.05), 3),
        "nitrate": round(clamp(nitrate, 0.0, 160.0), 1),
    }


def main():
    t = 0
    while True:
        t += 1
        payload = build_payload(t)
        try:
            r = requests.post(READINGS_URL, json=payload, timeout=10)
            body = r.json()
            logger.info(
                "ingest status=%s created=%d resolved=%d",
                r.status_code,
                len(body.get("created", [])),
                len(body.get("resolved", [])),
            )
        except (requests.RequestException, ValueError) as e:
            logger.warning("ingest error: %s", e)

        time.sleep(INTERVAL)


if __name__ == "__main__":
    main()
