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

import pytest

from iot_device_agent.common.exceptions import ProvisioningError
from iot_device_agent.entities.data.registration_result import Assignment, RegistrationResult, RegistrationStatus
from iot_device_agent.service.device.provisioning_stage import ProvisioningStage


@pytest.mark.asyncio
async def test_assigned_result_returns_confirmed_device_id(fake_transport_factory, identity):
    transport = fake_transport_factory(registration_result=RegistrationResult.build({
        "status": "assigned",
        "registrationState": {"assignedHub": "hub.example.net", "deviceId": "confirmed-id"}
    }))

    assignment = await ProvisioningStage(transport).register(identity)

    assert assignment == Assignment(hub_address="hub.example.net", device_id="confirmed-id")
    assert transport.registered == [identity]


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["failed", "disabled", "unassigned", "assigning"])
async def test_non_assigned_status_is_fatal(fake_transport_factory, identity, status):
    transport = fake_transport_factory(registration_result=RegistrationResult.build({
        "status": status,
        "registrationState": {"errorMessage": "nope"}
    }))

    with pytest.raises(ProvisioningError) as exc:
        await ProvisioningStage(transport).register(identity)

    assert exc.value.status == RegistrationStatus(status)


@pytest.mark.asyncio
async def test_transport_failure_becomes_provisioning_error(fake_transport_factory, identity):
    transport = fake_transport_factory(register_error=OSError("dns failure"))

    with pytest.raises(ProvisioningError) as exc:
        await ProvisioningStage(transport).register(identity)

    assert isinstance(exc.value.__cause__, OSError)
    assert transport.connected == []
