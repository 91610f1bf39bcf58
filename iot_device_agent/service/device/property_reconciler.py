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
from random import Random
from typing import List, Optional

from orjson import dumps

from iot_device_agent.common.exceptions import ReconciliationPushError
from iot_device_agent.common.logging_utils import get_logger
from iot_device_agent.entities.data.desired_state_delta import DesiredStateDelta
from iot_device_agent.entities.data.reported_state import AcknowledgementEnvelope, ReportedState
from iot_device_agent.service.transport import Session

logger = get_logger(__name__)

DIE_NUMBER_KEY = "dieNumber"
RECOGNIZED_SETTINGS = ("fanSpeed", "setVoltage", "setCurrent", "activateIR")


class PropertyReconciler:
    """
    Sole writer of the reported state.

    Every desired state patch is acknowledged setting by setting, in the fixed order of
    RECOGNIZED_SETTINGS, and the whole document is pushed once per patch.
    Unknown settings are ignored. Push failures are raised to the caller and never retried here.
    """

    def __init__(self, session: Session, rng: Optional[Random] = None,
                 recognized_settings=RECOGNIZED_SETTINGS):
        self._session = session
        self._rng = rng or Random()
        self._recognized_settings = tuple(recognized_settings)
        self._lock = asyncio.Lock()

    @property
    def recognized_settings(self):
        return self._recognized_settings

    async def initial_snapshot(self, reported_state: ReportedState):
        """
        Sets the hardware instance number and pushes it.
        Must complete before telemetry starts so observers never see an anonymous device.
        """
        async with self._lock:
            reported_state.set(DIE_NUMBER_KEY, self._rng.randint(1, 6))
            logger.info("Send device properties...")
            await self._push(reported_state)

    async def handle_desired_change(self, reported_state: ReportedState, delta: DesiredStateDelta) -> List[str]:
        """
        Stages one acknowledgement per recognized setting present in the delta and pushes the document.
        Returns the acknowledged setting names.
        """
        logger.info("Received settings change...")
        logger.info("%s", dumps(delta.as_dict()).decode())

        async with self._lock:
            acknowledged = []
            for setting in self._recognized_settings:
                if setting in delta:
                    reported_state.stage_acknowledgement(setting, AcknowledgementEnvelope.build(delta, setting))
                    acknowledged.append(setting)

            ignored = [key for key in delta.keys() if key not in self._recognized_settings]
            if ignored:
                logger.debug("Ignoring unrecognized settings: %s", ignored)

            logger.info("Send settings changed acknowledgement...")
            await self._push(reported_state)
            return acknowledged

    async def _push(self, reported_state: ReportedState):
        document = reported_state.to_payload_format()
        logger.info("%s", dumps(document).decode())
        try:
            await self._session.set_reported_state(document)
        except Exception as e:
            raise ReconciliationPushError(f"Failed to push reported state: {e}") from e
