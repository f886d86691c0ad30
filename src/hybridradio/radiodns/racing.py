from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, List, Optional, Sequence, TypeVar

from ..errors import AllCandidatesFailed

logger = logging.getLogger(__name__)

T = TypeVar("T")


def first_success(
    tasks: Sequence[Callable[[threading.Event], T]],
    *,
    max_workers: int = 8,
    label: str = "race",
) -> T:
    """Brief: Run tasks concurrently and return the first successful result.

    Inputs:
      - tasks: Callables taking a shared stop event. Long-running tasks should
        poll the event and give up once it is set.
      - max_workers: Upper bound on concurrently running tasks.
      - label: Name used in log lines and the aggregate error message.

    Outputs:
      - The result of whichever task completes first without raising.

    Raises:
      - AllCandidatesFailed: when there are no tasks or every task raised. The
        exception carries the per-task errors in submission order.

    Notes:
      - Losers that have not started are cancelled; running losers are signalled
        through the stop event and their late results are discarded.
    """

    if not tasks:
        raise AllCandidatesFailed(f"{label}: no candidates to try")

    stop = threading.Event()
    errors: List[Optional[BaseException]] = [None] * len(tasks)
    workers = max(1, min(int(max_workers), len(tasks)))

    executor = ThreadPoolExecutor(max_workers=workers)
    try:
        futures = {executor.submit(task, stop): i for i, task in enumerate(tasks)}
        for fut in as_completed(futures):
            idx = futures[fut]
            try:
                result = fut.result()
            except Exception as exc:
                logger.debug("%s: candidate %d failed: %s", label, idx, exc)
                errors[idx] = exc
                continue
            stop.set()
            return result
    finally:
        stop.set()
        executor.shutdown(wait=False, cancel_futures=True)

    collected = [e for e in errors if e is not None]
    raise AllCandidatesFailed(
        f"{label}: all {len(tasks)} candidates failed", errors=collected
    )
