# backend/catalog_analytics/scripts/run_job.py

"""
Run one analytics job once, outside the web host.

Usage examples:

  cd backend
  source venv/bin/activate
  python -m catalog_analytics.scripts.run_job compute_related_books

  # List the available jobs
  python -m catalog_analytics.scripts.run_job --list
"""

import argparse
import logging
import sys

from catalog_analytics.database import init_db
from catalog_analytics.jobs.definitions import build_job_definitions
from catalog_analytics.jobs.registry import JobRegistry

logger = logging.getLogger("catalog_analytics.scripts.run_job")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Run a catalog analytics job once.")
    parser.add_argument("job", nargs="?", help="Job name, e.g. compute_related_books")
    parser.add_argument("--list", action="store_true", help="List job names and exit")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    registry = JobRegistry()
    registry.register_all(build_job_definitions())

    if args.list or not args.job:
        for name in registry.job_names:
            print(name)
        return 0

    if not registry.is_registered(args.job):
        print(f"[run_job] Unknown job: {args.job}. Known jobs: {', '.join(registry.job_names)}")
        return 2

    init_db()
    registry.trigger_job(args.job)

    status = registry.get_job_status()[args.job]
    print(f"[run_job] {args.job}: succeeded={status['last_succeeded']} ({status['last_duration_ms']:.0f}ms)")
    return 0 if status["last_succeeded"] else 1


if __name__ == "__main__":
    sys.exit(main())
