# scheduler.py

import os
import time
import logging

import schedule
import requests
from dotenv import load_dotenv

# ─── Load .env & Config ──────────────────────────────────────────────────────
load_dotenv()

# Base URL for the FLC Seek API (override via .env if needed)
BASE_URL = os.getenv("API_BASE_URL", "http://127.0.0.1:8000")
# Superadmin bearer token used for maintenance endpoints
API_TOKEN = os.getenv("SCHEDULER_API_TOKEN", "")

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)


# ─── Generic API Caller ──────────────────────────────────────────────────────
def call_api(endpoint: str, label: str):
    """
    POSTs BASE_URL + endpoint with the scheduler token and logs the outcome.
    """
    url = f"{BASE_URL}{endpoint}"
    headers = {"Authorization": f"Bearer {API_TOKEN}"} if API_TOKEN else {}
    try:
        resp = requests.post(url, headers=headers, timeout=120)
        if resp.ok:
            logging.info(f"{label} succeeded (status {resp.status_code}): {resp.text[:200]}")
        else:
            logging.warning(f"{label} returned {resp.status_code}: {resp.text}")
    except requests.RequestException as e:
        logging.error(f"Exception during {label}: {e}", exc_info=True)


# ─── Job Schedule Definitions ────────────────────────────────────────────────
# time_str is HH:MM (24-hour), endpoint is the API path, label for logs
JOBS = [
    ("02:00", "/attendance/sync-milestone", "Attendance milestone sync"),
]


def schedule_jobs():
    for t, endpoint, label in JOBS:
        schedule.every().day.at(t).do(call_api, endpoint, label)
        logging.info(f"Scheduled '{label}' daily at {t}")


# ─── Entrypoint ─────────────────────────────────────────────────────────────
def main():
    if not API_TOKEN:
        logging.warning("SCHEDULER_API_TOKEN not set; protected endpoints will return 401")
    schedule_jobs()
    logging.info("Scheduler started, waiting for jobs")
    while True:
        schedule.run_pending()
        time.sleep(60)


if __name__ == "__main__":
    main()
