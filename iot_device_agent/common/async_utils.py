#  Copyright 2025 ThingsBoard
#
#  Licensed under the Apache License, Version 2.0 (the "License");
#  you may not use this file except in compliance with the License.
#  You may obtain a copy of the License at
#
#       http://www.apache.org/licenses/LICENSE-2.0
#
#  Unless required by applicable law or agreed to in writing, software
#  distributed under the License is distributed on an "AS IS" BASIS,
#  WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#  See the License for the specific language governing permissions and
#  limitations under the License.

import asyncio
from typing import Union, Optional, Any

from iot_device_agent.common.logging_utils import get_logger

logger = get_logger(__name__)


async def await_or_stop(future_or_coroutine: Union[asyncio.Future, asyncio.Task, Any],
                        stop_event: asyncio.Event,
                        timeout: Optional[float]) -> Optional[Any]:
    """
    Waits for a future or coroutine to finish, returning None early if the stop event fires first.
    Raises asyncio.TimeoutError if neither happens within the timeout (a negative timeout waits forever).
    """
    if asyncio.iscoroutine(future_or_coroutine):
        main_task = asyncio.create_task(future_or_coroutine)
    elif asyncio.isfuture(future_or_coroutine):
        if future_or_coroutine.done():
            return future_or_coroutine.result()
        main_task = future_or_coroutine
    else:
        raise TypeError("Expected coroutine or Future/Task")

    stop_task = asyncio.create_task(stop_event.wait())

    if timeout is not None and timeout < 0:
        timeout = None

    try:
        done, _ = await asyncio.wait(
            [main_task, stop_task],
            timeout=timeout,
            return_when=asyncio.FIRST_COMPLETED
        )
        if main_task in done:
            return await main_task
        if stop_task in done and stop_event.is_set():
            return None
        raise asyncio.TimeoutError("Operation timed out")
    finally:
        if not stop_task.done():
            stop_task.cancel()


async def wait_for_event(event: asyncio.Event, timeout: float) -> bool:
    """
    Sleeps for up to `timeout` seconds, waking early when the event is set.
    Returns True if the event was set.
    """
    try:
        await asyncio.wait_for(event.wait(), timeout=timeout)
    except asyncio.TimeoutError:
        pass
    return event.is_set()
