"""Process one pending evaluation job outside the API server.

Usage: python scripts/process_job.py <job_id>

Exits 1 when the job can't be processed or fails, 0 once it completes.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

logger = logging.getLogger(__name__)


async def _process(job_id: str) -> int:
    from server.db.database import close_db, get_db, init_db
    from server.db.queries import jobs as job_queries
    from server.services.eval_service import JobError, process_job_by_id

    await init_db()
    try:
        db = await get_db()
        try:
            results = await process_job_by_id(db, job_id)
        except JobError as e:
            logger.error("%s", e)
            return 1
        except Exception:
            logger.exception("Job %s failed", job_id)
            return 1

        job = await job_queries.get_job(db, job_id)
        print(
            f"Job {job_id}: {job['status']} "
            f"({job['completed_traces']} completed, {job['failed_traces']} failed, "
            f"{len(results)} results)"
        )
        return 0 if job["status"] == "completed" else 1
    finally:
        await close_db()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run a pending evaluation job")
    parser.add_argument("job_id", help="ID of the evaluation job to process")
    args = parser.parse_args(argv)

    from server.config import settings

    logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
    return asyncio.run(_process(args.job_id))


if __name__ == "__main__":
    sys.exit(main())
