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

from iot_device_agent.common.exceptions import ProvisioningError
from iot_device_agent.common.logging_utils import get_logger
from iot_device_agent.entities.data.device_identity import DeviceIdentity
from iot_device_agent.entities.data.registration_result import Assignment, RegistrationResult
from iot_device_agent.service.transport import Transport

logger = get_logger(__name__)


class ProvisioningStage:
    """
    One-shot registration of the device identity. Single attempt, no retry:
    anything but an `assigned` result is fatal.
    """

    def __init__(self, transport: Transport):
        self._transport = transport

    async def register(self, identity: DeviceIdentity) -> Assignment:
        logger.info("Register device...")
        logger.info("RegistrationID = %s", identity.registration_id)

        try:
            result: RegistrationResult = await self._transport.register(identity)
        except ProvisioningError:
            raise
        except Exception as e:
            raise ProvisioningError(f"Provisioning transport failure: {e}") from e

        logger.info("Provisioning status: %s", result.status)

        if not result.is_assigned():
            logger.error("Failed to register device: %r", result)
            raise ProvisioningError(f"Failed to register device, status: {result.status}"
                                    + (f" ({result.error})" if result.error else ""),
                                    status=result.status)

        assignment = result.assignment
        logger.info("Assigned hub: %s; DeviceID: %s", assignment.hub_address, assignment.device_id)
        return assignment
