"""Order-preserving ``map`` over a bounded thread pool, in the spirit of ``p-map``.

Used by bulk capture to run several model calls at once without flooding the
API. Only the window of ``concurrency`` in-flight calls is submitted at any
time; results come back in input order.

Mappers that want per-item error reporting should catch inside the mapper and
return an outcome value; any exception that escapes a mapper cancels the
not-yet-started work and is re-raised to the caller.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import TypeVar

InT = TypeVar("InT")
OutT = TypeVar("OutT")


def p_map(
    iterable: Iterable[InT],
    mapper: Callable[[InT], OutT],
    *,
    concurrency: int,
    thread_name_prefix: str = "ff-pmap",
) -> list[OutT]:
    """Map ``iterable`` through ``mapper`` with at most ``concurrency`` calls in flight."""

    if isinstance(concurrency, bool) or not isinstance(concurrency, int) or concurrency < 1:
        raise ValueError("concurrency must be a positive integer")

    pending = enumerate(iterable)
    results: dict[int, OutT] = {}
    index_of: dict[Future[OutT], int] = {}

    with ThreadPoolExecutor(max_workers=concurrency, thread_name_prefix=thread_name_prefix) as pool:

        def _submit_next() -> Future[OutT] | None:
            nxt = next(pending, None)
            if nxt is None:
                return None
            idx, item = nxt
            fut = pool.submit(mapper, item)
            index_of[fut] = idx
            return fut

        active: set[Future[OutT]] = set()
        for _ in range(concurrency):
            fut = _submit_next()
            if fut is None:
                break
            active.add(fut)

        while active:
            done, active = wait(active, return_when=FIRST_COMPLETED)
            for fut in done:
                idx = index_of.pop(fut)
                try:
                    results[idx] = fut.result()
                except Exception:
                    pool.shutdown(wait=False, cancel_futures=True)
                    raise
                refill = _submit_next()
                if refill is not None:
                    active.add(refill)

    return [results[i] for i in sorted(results)]


__all__ = ["p_map"]
