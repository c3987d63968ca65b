from __future__ import annotations

import logging
import multiprocessing

from rq import Worker

from sample_catalog.config import settings
from sample_catalog.infrastructure.jobs import QUEUE_NAME, get_redis_connection


def run_worker_instance(index: int) -> None:
    logging.basicConfig(level=settings.log_level)
    connection = get_redis_connection()
    worker = Worker([QUEUE_NAME], connection=connection, name=f"samples-worker-{index}")
    worker.work()


if __name__ == "__main__":
    worker_count = max(1, settings.worker_concurrency)
    if worker_count == 1:
        run_worker_instance(1)
    else:
        processes: list[multiprocessing.Process] = []
        for idx in range(worker_count):
            process = multiprocessing.Process(target=run_worker_instance, args=(idx + 1,))
            process.start()
            processes.append(process)
        for process in processes:
            process.join()
