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
import ssl
from typing import Optional

from iot_device_agent.common.config_loader import AgentConfig
from iot_device_agent.common.logging_utils import get_logger
from iot_device_agent.entities.data.device_identity import DeviceIdentity
from iot_device_agent.entities.data.registration_result import Assignment, RegistrationResult
from iot_device_agent.service.mqtt.hub_session import HubSession
from iot_device_agent.service.mqtt.provisioning_client import ProvisioningClient
from iot_device_agent.service.transport import Session, Transport

logger = get_logger(__name__)


class MqttTransport(Transport):
    """
    Transport over MQTT/TLS: provisioning service registration and hub sessions.
    """

    def __init__(self, config: AgentConfig):
        self._config = config
        self._ssl_context: Optional[ssl.SSLContext] = None

    def _get_ssl_context(self) -> ssl.SSLContext:
        if self._ssl_context is None:
            self._ssl_context = ssl.create_default_context()
            if self._config.use_custom_ca():
                self._ssl_context.load_verify_locations(self._config.ca_cert)
        return self._ssl_context

    async def register(self, identity: DeviceIdentity) -> RegistrationResult:
        provisioning_client = ProvisioningClient(host=self._config.provisioning_host,
                                                 port=self._config.provisioning_port,
                                                 identity=identity,
                                                 ssl_context=self._get_ssl_context())
        try:
            return await asyncio.wait_for(provisioning_client.provision(), timeout=self._config.timeout)
        except asyncio.TimeoutError:
            logger.error("Provisioning timed out after %s seconds", self._config.timeout)
            return RegistrationResult.failure("Provisioning timed out")
        finally:
            await provisioning_client.close()

    async def connect(self, identity: DeviceIdentity, assignment: Assignment) -> Session:
        session = HubSession(assignment, identity,
                             port=self._config.hub_port,
                             qos=self._config.qos,
                             ssl_context=self._get_ssl_context(),
                             timeout=self._config.timeout,
                             token_ttl=self._config.sas_token_ttl)
        try:
            await session.open()
        except Exception:
            await session.close()
            raise
        return session
