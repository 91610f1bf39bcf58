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
from asyncio import Event
from typing import Optional, Set

from gmqtt import Client as GMQTTClient
from gmqtt.mqtt.constants import MQTTv311

from iot_device_agent.common.logging_utils import get_logger
from iot_device_agent.common.request_id_generator import RequestIdProducer
from iot_device_agent.common.sas_token import generate_sas_token
from iot_device_agent.constants import mqtt_topics
from iot_device_agent.entities.data.device_identity import DeviceIdentity
from iot_device_agent.entities.data.registration_result import RegistrationResult
from iot_device_agent.service.mqtt.message_adapter import JsonMessageAdapter

logger = get_logger(__name__)

PROVISIONING_KEY_NAME = "registration"


class ProvisioningClient:
    """
    Registers one device identity with the provisioning service over MQTT.
    Sends a single register request and follows the operation until it reaches a terminal status.
    """

    def __init__(self, host: str, port: int, identity: DeviceIdentity,
                 ssl_context: Optional[ssl.SSLContext] = None):
        self._log = logger
        self._host = host
        self._port = port
        self._identity = identity
        self._ssl_context = ssl_context
        self._client_id = identity.registration_id
        self._client = GMQTTClient(self._client_id)
        self._client.on_connect = self._on_connect
        self._client.on_message = self._on_message
        self._provisioned = Event()
        self._registration_result: Optional[RegistrationResult] = None
        self._message_adapter = JsonMessageAdapter()
        self._poll_tasks: Set[asyncio.Task] = set()

    def _on_connect(self, client, _, rc, __):
        if rc == 0:
            self._log.debug("[Provisioning client] Connected to %s", self._host)
            client.subscribe(mqtt_topics.DPS_RESPONSE_TOPIC_FOR_SUBSCRIPTION, qos=1)
            self._track(asyncio.ensure_future(self._send_registration_request()))
        else:
            self._finish(RegistrationResult.failure(f"Cannot connect to provisioning service, result: {rc}"))
            self._log.error("[Provisioning client] Cannot connect to provisioning service!, result: %s", rc)

    async def _send_registration_request(self):
        request_id = await RequestIdProducer.get_next()
        topic, payload = self._message_adapter.build_registration_request(self._identity, request_id)
        self._log.debug("[Provisioning client] Sending registration request %s", payload)
        self._client.publish(topic, payload, qos=1)

    async def _on_message(self, _, topic, payload, ___, ____):
        self._log.debug("[Provisioning client] Received %s: %s", topic, payload)
        try:
            reply = self._message_adapter.parse_provisioning_reply(topic, payload)
        except ValueError as e:
            self._log.warning("[Provisioning client] Ignoring unexpected message on %s: %s", topic, e)
            return 0

        if reply.is_pending():
            self._log.debug("[Provisioning client] Registration %s, polling in %s s",
                            reply.result.status, reply.retry_after)
            self._track(asyncio.ensure_future(self._poll_operation(reply.result.operation_id, reply.retry_after)))
            return 0

        self._finish(reply.result)
        await self._client.disconnect()
        return 0

    async def _poll_operation(self, operation_id: str, delay: float):
        await asyncio.sleep(delay)
        if self._provisioned.is_set():
            return
        request_id = await RequestIdProducer.get_next()
        topic, payload = self._message_adapter.build_operation_status_request(operation_id, request_id)
        self._client.publish(topic, payload, qos=1)

    def _finish(self, result: RegistrationResult):
        if self._provisioned.is_set():
            return
        self._registration_result = result
        self._provisioned.set()

    def _track(self, task: asyncio.Future):
        self._poll_tasks.add(task)
        task.add_done_callback(self._poll_tasks.discard)

    async def provision(self) -> RegistrationResult:
        resource_uri = mqtt_topics.build_dps_resource_uri(self._identity.scope_id, self._identity.registration_id)
        self._client.set_auth_credentials(
            mqtt_topics.build_dps_username(self._identity.scope_id, self._identity.registration_id),
            generate_sas_token(resource_uri, self._identity.shared_key, key_name=PROVISIONING_KEY_NAME)
        )

        try:
            await self._client.connect(self._host, self._port,
                                       ssl=self._ssl_context or True,
                                       version=MQTTv311)
        except Exception as e:
            self._log.error("[Provisioning client] Connection to %s:%s failed: %s", self._host, self._port, e)
            self._finish(RegistrationResult.failure(f"Cannot connect to provisioning service: {e}"))

        try:
            await self._provisioned.wait()
        finally:
            for task in list(self._poll_tasks):
                task.cancel()

        return self._registration_result

    async def close(self):
        if self._client.is_connected:
            await self._client.disconnect()
