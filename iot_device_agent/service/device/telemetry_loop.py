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
from datetime import datetime
from enum import Enum
from random import Random
from typing import Iterator, Optional

from iot_device_agent.common.async_utils import wait_for_event
from iot_device_agent.common.exceptions import TelemetrySendError
from iot_device_agent.common.logging_utils import get_logger
from iot_device_agent.entities.data.telemetry_sample import TelemetryBaseline, TelemetrySample
from iot_device_agent.service.transport import Session

logger = get_logger(__name__)

DEFAULT_TELEMETRY_INTERVAL = 1.0


class TelemetryLoopResult(Enum):
    CANCELLED = "cancelled"

    def __str__(self):
        return self.value


class TelemetryLoop:
    """
    Emits one synthetic reading per interval until cancelled.

    Cancellation is only observed at the top of an iteration; a send in progress always completes.
    The interval is waited after each send completes. A loop runs once.
    """

    def __init__(self, session: Session,
                 baseline: Optional[TelemetryBaseline] = None,
                 interval: float = DEFAULT_TELEMETRY_INTERVAL,
                 rng: Optional[Random] = None):
        if interval < 0:
            raise ValueError("Telemetry interval must not be negative")
        self._session = session
        self._baseline = baseline or TelemetryBaseline()
        self._interval = interval
        self._rng = rng or Random()
        self._started = False
        self._sent_count = 0

    @property
    def sent_count(self) -> int:
        return self._sent_count

    def samples(self) -> Iterator[TelemetrySample]:
        while True:
            yield TelemetrySample.generate(self._baseline, self._rng)

    async def run(self, cancel_event: asyncio.Event) -> TelemetryLoopResult:
        if self._started:
            raise RuntimeError("TelemetryLoop can only be run once, create a new one to restart")
        self._started = True

        for sample in self.samples():
            if cancel_event.is_set():
                logger.info("Telemetry loop cancelled after %d messages", self._sent_count)
                return TelemetryLoopResult.CANCELLED

            payload = sample.to_bytes()
            try:
                await self._session.send_telemetry(payload)
            except Exception as e:
                logger.error("Failed to send telemetry: %s", e)
                raise TelemetrySendError(f"Failed to send telemetry: {e}") from e

            self._sent_count += 1
            logger.info("%s > Sending telemetry: %s", datetime.now(), payload.decode())

            await wait_for_event(cancel_event, self._interval)
