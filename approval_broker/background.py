"""Utilities for running follow-up work off the request thread."""

from contextvars import copy_context
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable

import structlog
from structlog.contextvars import bind_contextvars, get_contextvars


_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="broker-bg")


def _log_failure(task_name: str) -> Callable[[Future], None]:
    def callback(future: Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            structlog.get_logger().error(
                "background_task_failed",
                task=task_name,
                error=str(exc),
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    return callback


def run_async(
    func: Callable[..., Any],
    /,
    *args: Any,
    trace_id: str | None = None,
    **kwargs: Any,
) -> Future:
    """Submit *func* to the shared thread pool and return a Future.

    The caller's structlog context travels with the task, and an exception
    escaping *func* is logged instead of vanishing with the Future.
    """

    context = copy_context()

    if trace_id is not None:
        existing_trace = context.run(lambda: get_contextvars().get("trace_id"))

        if existing_trace != trace_id:

            context.run(lambda: bind_contextvars(trace_id=trace_id))

    def runner() -> Any:
        return context.run(func, *args, **kwargs)

    future = _executor.submit(runner)
    future.add_done_callback(_log_failure(getattr(func, "__name__", repr(func))))
    return future
