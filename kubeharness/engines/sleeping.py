"""
Advanced modes of sleeping.
"""
import asyncio
from typing import Optional


async def sleep(
        delay: Optional[float],
        *wakeups: Optional[asyncio.Event],
) -> Optional[float]:
    """
    Measure the sleep time: either until the timeout, or until any event is set.

    Returns the number of seconds left to sleep, or ``None`` if the sleep was
    not interrupted and reached its specified delay (an equivalent of ``0``).
    In theory, the result can be ``0`` if the sleep was interrupted precisely
    the last moment before timing out; this is unlikely to happen though.

    The delay of ``None`` means sleeping until any of the events is set
    (or forever if there are no events). Negative delays are not slept at all.
    """
    events = [event for event in wakeups if event is not None]
    if delay is not None and delay <= 0:
        return None
    if not events:
        if delay is None:
            await asyncio.Event().wait()  # forever, until cancelled.
        else:
            await asyncio.sleep(delay)
        return None

    loop = asyncio.get_running_loop()
    start_time = loop.time()
    waiters = [asyncio.create_task(event.wait()) for event in events]
    try:
        done, _ = await asyncio.wait(waiters, timeout=delay, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for waiter in waiters:
            waiter.cancel()
        await asyncio.wait(waiters)

    if not done:
        return None  # interruptable sleep is over: uninterrupted.
    elif delay is None:
        return 0
    else:
        end_time = loop.time()
        duration = end_time - start_time
        return max(0, delay - duration)
