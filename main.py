"""
streakseed — entry point for the nightly rollover.

Run once a day shortly after midnight (cron, systemd timer...). Safe to run
more than once for the same day.

    python main.py            # evaluate yesterday
    python main.py 2024-03-09 # evaluate a specific day
    python main.py --catch-up # evaluate every day a failed run skipped
"""

import logging
import os
import sys
from pathlib import Path

# Ensure the package is importable from a checkout
sys.path.insert(0, str(Path(__file__).resolve().parent))

from streakseed.data.database import DEFAULT_DB_PATH, Database
from streakseed.data.repository import Repository
from streakseed.seed.time_distribution import Clock
from streakseed.services.rollover_job import DailyRolloverJob, TaskStatus


def setup_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler("streakseed.log", encoding="utf-8"),
        ],
    )


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    setup_logging()
    logger = logging.getLogger(__name__)

    db_path = Path(os.environ.get("STREAKSEED_DB", DEFAULT_DB_PATH))
    db = Database(db_path)
    db.connect()
    try:
        job = DailyRolloverJob(Repository(db.conn), Clock())
        if argv and argv[0] == "--catch-up":
            tasks = job.catch_up()
            logger.info("Catch-up ran %d day(s).", len(tasks))
        else:
            tasks = [job.run(argv[0] if argv else None)]
    finally:
        db.close()

    failed = [t for t in tasks if t.status == TaskStatus.FAILED]
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())


# ---------------------------------------------------------------------------
# Explanation (for interviews)
# ---------------------------------------------------------------------------
# What this file does:
#   The "main()" the scheduler calls. Sets up logging, opens the database and
#   runs one DailyRolloverJob (or a catch-up pass).
#
# Key points:
#   - sys.path manipulation: imports work whether you run from the repo root
#     or another directory.
#   - Exit code 1 if any day FAILED, so cron/systemd can alert on it.
#   - STREAKSEED_DB picks the database file; default is streakseed.db at the
#     repo root.
#
# Interviewer-friendly talking points:
#   1. Logging to both console and file: console for interactive runs, file
#      for reading what happened at 00:05 last night.
#   2. The job itself is idempotent, so "run it again" is always a valid
#      recovery step.
