# lizexpress/infra/deadline.py
import asyncio
import logging
from typing import Awaitable, Optional, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)


class DeadlineExceeded(Exception):
    def __init__(self, label: str, timeout: float):
        self.label = label
        self.timeout = timeout
        super().__init__(f"{label} did not settle within {timeout:.1f}s")


def _discard_late_result(label: str):
    def _done(task: "asyncio.Task") -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("late %s failed after deadline: %r", label, exc)
        else:
            logger.info("late %s settled after deadline; result discarded", label)

    return _done


async def first_settled(
    aw: Awaitable[T],
    timeout: Optional[float],
    *,
    label: str = "operation",
) -> T:
    """
    Race ``aw`` tegen een deadline: wie het eerst klaar is wint.

    Bij een timeout loopt de operatie zelf door (niet gegarandeerd
    geannuleerd), maar het resultaat wordt genegeerd en
    ``DeadlineExceeded`` gaat omhoog.
    """
    task = asyncio.ensure_future(aw)
    try:
        done, _ = await asyncio.wait({task}, timeout=timeout)
    except asyncio.CancelledError:
        task.cancel()
        raise

    if task in done:
        return task.result()

    task.add_done_callback(_discard_late_result(label))
    raise DeadlineExceeded(label, timeout or 0.0)
