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

from typing import Any, Dict, Optional, Tuple

from orjson import dumps, loads

from iot_device_agent.common.logging_utils import get_logger
from iot_device_agent.constants import mqtt_topics
from iot_device_agent.entities.data.desired_state_delta import DesiredStateDelta
from iot_device_agent.entities.data.device_identity import DeviceIdentity
from iot_device_agent.entities.data.method_request import MethodRequest
from iot_device_agent.entities.data.method_response import MethodResponse
from iot_device_agent.entities.data.registration_result import RegistrationResult

logger = get_logger(__name__)

DEFAULT_RETRY_AFTER = 3.0


class ProvisioningReply:
    """
    One message from the provisioning service: either the terminal result or
    a hint to poll `operation_id` again after `retry_after` seconds.
    """

    def __init__(self, status_code: int, request_id: Optional[str], result: RegistrationResult,
                 retry_after: float = DEFAULT_RETRY_AFTER):
        self.status_code = status_code
        self.request_id = request_id
        self.result = result
        self.retry_after = retry_after

    def __repr__(self):
        return (f"ProvisioningReply(status_code={self.status_code}, request_id={self.request_id}, "
                f"result={self.result}, retry_after={self.retry_after})")

    def is_pending(self) -> bool:
        return not self.result.status.is_terminal() and self.result.operation_id is not None


class JsonMessageAdapter:
    """
    Builds and parses the JSON payloads and topics exchanged with the provisioning service and the hub.
    Outgoing messages are returned as (topic, payload) pairs.
    """

    @staticmethod
    def build_registration_request(identity: DeviceIdentity, request_id: int) -> Tuple[str, bytes]:
        payload = dumps({"registrationId": identity.registration_id})
        return mqtt_topics.build_register_topic(request_id), payload

    @staticmethod
    def build_operation_status_request(operation_id: str, request_id: int) -> Tuple[str, bytes]:
        return mqtt_topics.build_operation_status_topic(request_id, operation_id), b""

    @staticmethod
    def parse_provisioning_reply(topic: str, payload: bytes) -> ProvisioningReply:
        status_code, params = mqtt_topics.parse_status_topic(topic, mqtt_topics.DPS_RESPONSE_TOPIC_PREFIX)
        try:
            data = loads(payload) if payload else {}
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        if status_code >= 300:
            error = data.get("message") or data.get("errorMessage") or f"Provisioning service returned {status_code}"
            result = RegistrationResult.failure(error)
        else:
            result = RegistrationResult.build(data)

        try:
            retry_after = float(params.get("retry-after", DEFAULT_RETRY_AFTER))
        except ValueError:
            retry_after = DEFAULT_RETRY_AFTER

        return ProvisioningReply(status_code, params.get("$rid"), result, retry_after)

    @staticmethod
    def build_telemetry(device_id: str, payload: bytes) -> Tuple[str, bytes]:
        return mqtt_topics.build_telemetry_topic(device_id), payload

    @staticmethod
    def build_reported_state_patch(patch: Dict[str, Any], request_id: int) -> Tuple[str, bytes]:
        return mqtt_topics.build_reported_patch_topic(request_id), dumps(patch)

    @staticmethod
    def parse_twin_response(topic: str) -> Tuple[int, Optional[str]]:
        status_code, params = mqtt_topics.parse_status_topic(topic, mqtt_topics.TWIN_RESPONSE_TOPIC_PREFIX)
        return status_code, params.get("$rid")

    @staticmethod
    def parse_desired_state_patch(payload: bytes) -> DesiredStateDelta:
        return DesiredStateDelta.from_dict(loads(payload))

    @staticmethod
    def parse_method_request(topic: str, payload: bytes) -> MethodRequest:
        name, request_id = mqtt_topics.parse_method_request_topic(topic)
        if request_id is None:
            raise ValueError(f"Missing request id in method request topic {topic!r}")
        return MethodRequest(request_id=request_id, name=name, payload=bytes(payload or b""))

    @staticmethod
    def build_method_response(response: MethodResponse) -> Tuple[str, bytes]:
        return mqtt_topics.build_method_response_topic(response.status, response.request_id), response.payload
