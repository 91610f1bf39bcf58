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
from typing import Any, Dict, Optional, Set

from gmqtt import Client as GMQTTClient, Subscription
from gmqtt.mqtt.constants import MQTTv311

from iot_device_agent.common.async_utils import await_or_stop, wait_for_event
from iot_device_agent.common.logging_utils import get_logger
from iot_device_agent.common.request_id_generator import RequestIdProducer
from iot_device_agent.common.sas_token import DEFAULT_TOKEN_TTL, generate_sas_token
from iot_device_agent.constants import mqtt_topics
from iot_device_agent.entities.data.device_identity import DeviceIdentity
from iot_device_agent.entities.data.method_request import MethodRequest
from iot_device_agent.entities.data.method_response import MethodResponse, STATUS_NOT_FOUND, STATUS_INTERNAL_ERROR
from iot_device_agent.entities.data.registration_result import Assignment
from iot_device_agent.service.mqtt.message_adapter import JsonMessageAdapter
from iot_device_agent.service.transport import DesiredStateHandler, MethodHandler, Session

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 30.0
TOKEN_RENEWAL_RATIO = 0.8


class HubSession(Session):
    """
    MQTT session to the assigned hub.

    Reported state patches are correlated with their twin responses through `$rid`.
    Desired state patches and method requests are handled in their own tasks so the
    MQTT receive path never waits on application code.
    """

    def __init__(self, assignment: Assignment, identity: DeviceIdentity,
                 port: int = 8883,
                 qos: int = 1,
                 ssl_context: Optional[ssl.SSLContext] = None,
                 timeout: float = DEFAULT_TIMEOUT,
                 keepalive: int = 60,
                 token_ttl: float = DEFAULT_TOKEN_TTL):
        self._assignment = assignment
        self._identity = identity
        self._port = port
        self._qos = qos
        self._ssl_context = ssl_context
        self._timeout = timeout
        self._keepalive = keepalive
        self._token_ttl = token_ttl

        self._client = GMQTTClient(assignment.device_id)
        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect
        self._client.on_message = self._on_message
        self._client.on_subscribe = self._on_subscribe

        self._message_adapter = JsonMessageAdapter()
        self._stop_event = asyncio.Event()
        self._pending_twin_requests: Dict[str, asyncio.Future] = {}
        self._desired_state_handler: Optional[DesiredStateHandler] = None
        self._method_handlers: Dict[str, MethodHandler] = {}
        self._callback_tasks: Set[asyncio.Task] = set()
        self._subscription_mid: Optional[int] = None
        self._subscribed = asyncio.Event()
        self._closing = False
        self._closed = False
        self._token_renewal_task: Optional[asyncio.Task] = None
        self._reconnected = asyncio.Event()
        self._reconnected.set()

    @property
    def device_id(self) -> str:
        return self._assignment.device_id

    def is_connected(self) -> bool:
        return self._client.is_connected and not self._closed

    async def open(self):
        hub = self._assignment.hub_address
        logger.info("Connecting to hub %s as %s", hub, self.device_id)
        self._refresh_credentials()
        await self._client.connect(hub, self._port,
                                   ssl=self._ssl_context or True,
                                   keepalive=self._keepalive,
                                   version=MQTTv311)
        try:
            await asyncio.wait_for(self._subscribed.wait(), timeout=self._timeout)
        except asyncio.TimeoutError:
            raise TimeoutError(f"Hub {hub} did not confirm subscriptions in {self._timeout} seconds")
        self._token_renewal_task = asyncio.create_task(self._renew_token_periodically())

    def _refresh_credentials(self):
        hub = self._assignment.hub_address
        self._client.set_auth_credentials(
            mqtt_topics.build_hub_username(hub, self.device_id),
            generate_sas_token(mqtt_topics.build_hub_resource_uri(hub, self.device_id),
                               self._identity.shared_key,
                               ttl=self._token_ttl)
        )

    async def _renew_token_periodically(self):
        """
        Reconnects with a fresh token before the current one expires.
        Sends issued meanwhile wait for the reconnect instead of failing.
        """
        while not await wait_for_event(self._stop_event, self._token_ttl * TOKEN_RENEWAL_RATIO):
            logger.info("Renewing hub access token")
            self._refresh_credentials()
            self._reconnected.clear()
            self._subscribed.clear()
            try:
                await self._client.reconnect()
                await asyncio.wait_for(self._subscribed.wait(), timeout=self._timeout)
            except Exception as e:
                logger.error("Reconnect with renewed token failed: %s", e)
            finally:
                self._reconnected.set()

    def _on_connect(self, client, _, rc, __):
        if rc != 0:
            logger.error("Hub refused connection, result: %s", rc)
            return
        logger.info("Connected to hub %s", self._assignment.hub_address)
        self._subscription_mid = client.subscribe([Subscription(topic, qos=self._qos)
                                                   for topic in mqtt_topics.HUB_SUBSCRIPTIONS])

    def _on_subscribe(self, client, mid, qos, properties):
        if mid == self._subscription_mid:
            logger.debug("Subscribed to twin and method topics, granted qos: %s", qos)
            self._subscribed.set()

    def _on_disconnect(self, client, packet, exc=None):
        logger.info("Hub session disconnected.")
        if not self._closing:
            self._refresh_credentials()
        for future in self._pending_twin_requests.values():
            if not future.done():
                future.set_exception(ConnectionError("Hub session disconnected"))
        self._pending_twin_requests.clear()

    async def send_telemetry(self, payload: bytes) -> None:
        await self._ensure_connected()
        topic, body = self._message_adapter.build_telemetry(self.device_id, payload)
        logger.trace("Publishing telemetry to %s: %s", topic, body)
        self._client.publish(topic, body, qos=self._qos)

    async def set_reported_state(self, patch: Dict[str, Any]) -> None:
        await self._ensure_connected()
        request_id = str(await RequestIdProducer.get_next())
        future = asyncio.get_running_loop().create_future()
        self._pending_twin_requests[request_id] = future

        topic, body = self._message_adapter.build_reported_state_patch(patch, request_id)
        try:
            self._client.publish(topic, body, qos=self._qos)
            status = await await_or_stop(future, stop_event=self._stop_event, timeout=self._timeout)
        except asyncio.TimeoutError:
            raise TimeoutError(f"Timed out waiting for reported state acknowledgement (rid={request_id})")
        finally:
            self._pending_twin_requests.pop(request_id, None)

        if status is None:
            raise ConnectionError("Hub session closed before reported state was acknowledged")
        if not 200 <= status < 300:
            raise ConnectionError(f"Hub rejected reported state update with status {status}")

    def on_desired_state_changed(self, handler: DesiredStateHandler):
        self._desired_state_handler = handler

    def on_invoke(self, method_name: str, handler: MethodHandler):
        self._method_handlers[method_name] = handler

    async def _on_message(self, _, topic, payload, __, ___):
        try:
            if topic.startswith(mqtt_topics.TWIN_RESPONSE_TOPIC_PREFIX):
                self._handle_twin_response(topic)
            elif topic.startswith(mqtt_topics.TWIN_DESIRED_PATCH_TOPIC_PREFIX):
                self._handle_desired_state_patch(payload)
            elif topic.startswith(mqtt_topics.METHOD_REQUEST_TOPIC_PREFIX):
                self._handle_method_request(topic, payload)
            else:
                logger.debug("No handler for topic %s", topic)
        except Exception as e:
            logger.exception("Failed to handle message on %s: %s", topic, e)
        return 0

    def _handle_twin_response(self, topic: str):
        status, request_id = self._message_adapter.parse_twin_response(topic)
        future = self._pending_twin_requests.get(request_id)
        if future is None:
            logger.debug("No pending twin request for rid %s (status %s)", request_id, status)
            return
        if not future.done():
            future.set_result(status)

    def _handle_desired_state_patch(self, payload: bytes):
        delta = self._message_adapter.parse_desired_state_patch(payload)
        if self._desired_state_handler is None:
            logger.debug("No desired state handler set. Skipping %r", delta)
            return
        self._spawn(self._desired_state_handler(delta))

    def _handle_method_request(self, topic: str, payload: bytes):
        request = self._message_adapter.parse_method_request(topic, payload)
        handler = self._method_handlers.get(request.name)
        if handler is None:
            logger.warning("Method %s is not registered", request.name)
            self._publish_method_response(MethodResponse.build(request.request_id, status=STATUS_NOT_FOUND))
            return
        self._spawn(self._invoke_method(handler, request))

    async def _invoke_method(self, handler: MethodHandler, request: MethodRequest):
        try:
            response = await handler(request)
        except Exception as e:
            logger.exception("Method %s failed: %s", request.name, e)
            response = MethodResponse.build(request.request_id, status=STATUS_INTERNAL_ERROR)
        self._publish_method_response(response)

    def _publish_method_response(self, response: MethodResponse):
        if not self.is_connected():
            logger.warning("Cannot send %r, hub session is not connected", response)
            return
        topic, body = self._message_adapter.build_method_response(response)
        self._client.publish(topic, body, qos=self._qos)

    def _spawn(self, coroutine):
        if self._closing:
            logger.debug("Hub session is closing, dropping callback %r", coroutine)
            coroutine.close()
            return
        task = asyncio.create_task(coroutine)
        self._callback_tasks.add(task)
        task.add_done_callback(self._on_callback_done)

    def _on_callback_done(self, task: asyncio.Task):
        self._callback_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Callback failed: %s", task.exception())

    async def _ensure_connected(self):
        if not self._reconnected.is_set():
            try:
                await await_or_stop(self._reconnected.wait(), stop_event=self._stop_event, timeout=self._timeout)
            except asyncio.TimeoutError:
                logger.warning("Hub reconnect did not finish in %s seconds", self._timeout)
        if not self.is_connected():
            raise ConnectionError("Hub session is not connected")

    async def close(self) -> None:
        if self._closing:
            return
        self._closing = True

        if self._token_renewal_task is not None and not self._token_renewal_task.done():
            self._token_renewal_task.cancel()
            await asyncio.gather(self._token_renewal_task, return_exceptions=True)

        while self._callback_tasks:
            await asyncio.gather(*self._callback_tasks, return_exceptions=True)
        self._closed = True

        self._stop_event.set()
        for future in self._pending_twin_requests.values():
            if not future.done():
                future.set_exception(ConnectionError("Hub session closed"))
        self._pending_twin_requests.clear()

        if self._client.is_connected:
            try:
                await self._client.disconnect()
            except ConnectionResetError:
                logger.debug("Connection reset error during disconnect, ignoring.")
        logger.info("Hub session closed.")
