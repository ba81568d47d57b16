import logging
import os
import sys

import requests
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger


def _env_float(name: str, default: float, minimum: float | None = None) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except (TypeError, ValueError):
        logging.getLogger("scheduler").warning("Invalid %s=%r, fallback to %.2f", name, raw, default)
        return default
    if minimum is not None and value < minimum:
        logging.getLogger("scheduler").warning("Out-of-range %s=%r, fallback to %.2f", name, raw, default)
        return default
    return value


API_BASE_URL = os.getenv("API_BASE_URL", "http://api:4321")
CLASSIFY_CRON = os.getenv("CLASSIFY_CRON", "0 */6 * * *")
CLASSIFY_TIMEOUT = _env_float("CLASSIFY_TIMEOUT", 30.0, minimum=0.1)
CLASSIFY_USE_EXISTING = os.getenv("CLASSIFY_USE_EXISTING", "true").strip().lower() in ("1", "true", "yes", "on")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
ADMIN_TOKEN = os.getenv("ADMIN_TOKEN", "").strip()

logger = logging.getLogger("scheduler")


def build_payload() -> dict:
    return {"only_new": True, "use_existing": CLASSIFY_USE_EXISTING}


def trigger_classify() -> None:
    url = f"{API_BASE_URL.rstrip('/')}/classify"
    headers = {"X-Admin-Token": ADMIN_TOKEN} if ADMIN_TOKEN else None
    try:
        logger.info("Triggering classification of new stars: %s", url)
        response = requests.post(url, json=build_payload(), timeout=CLASSIFY_TIMEOUT, headers=headers)
        if response.status_code == 409:
            logger.info("Classification already running, skipping this tick")
            return
        logger.info("Classify response %s: %s", response.status_code, response.text[:500])
    except requests.RequestException as exc:
        logger.error("Classify trigger failed: %s", exc)


def main() -> None:
    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(message)s")
    try:
        trigger = CronTrigger.from_crontab(CLASSIFY_CRON)
    except ValueError as exc:
        logger.error("Invalid CLASSIFY_CRON '%s': %s", CLASSIFY_CRON, exc)
        sys.exit(1)

    scheduler = BlockingScheduler(timezone="UTC")
    scheduler.add_job(trigger_classify, trigger)
    logger.info("Scheduler started with cron: %s", CLASSIFY_CRON)

    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler stopped")


if __name__ == "__main__":
    main()
