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

from typing import Dict, Optional, Tuple
from urllib.parse import parse_qs

WILDCARD = "#"

DPS_API_VERSION = "2019-03-31"
HUB_API_VERSION = "2021-04-12"

# Provisioning service topics
DPS_RESPONSE_TOPIC_PREFIX = "$dps/registrations/res/"
DPS_RESPONSE_TOPIC_FOR_SUBSCRIPTION = DPS_RESPONSE_TOPIC_PREFIX + WILDCARD
DPS_REGISTER_TOPIC = "$dps/registrations/PUT/iotdps-register/?$rid={request_id}"
DPS_OPERATION_STATUS_TOPIC = "$dps/registrations/GET/iotdps-get-operationstatus/?$rid={request_id}&operationId={operation_id}"  # noqa

# Hub device topics
DEVICE_TELEMETRY_TOPIC = "devices/{device_id}/messages/events/"
TWIN_RESPONSE_TOPIC_PREFIX = "$iothub/twin/res/"
TWIN_RESPONSE_TOPIC_FOR_SUBSCRIPTION = TWIN_RESPONSE_TOPIC_PREFIX + WILDCARD
TWIN_REPORTED_PATCH_TOPIC = "$iothub/twin/PATCH/properties/reported/?$rid={request_id}"
TWIN_DESIRED_PATCH_TOPIC_PREFIX = "$iothub/twin/PATCH/properties/desired/"
TWIN_DESIRED_PATCH_TOPIC_FOR_SUBSCRIPTION = TWIN_DESIRED_PATCH_TOPIC_PREFIX + WILDCARD
METHOD_REQUEST_TOPIC_PREFIX = "$iothub/methods/POST/"
METHOD_REQUEST_TOPIC_FOR_SUBSCRIPTION = METHOD_REQUEST_TOPIC_PREFIX + WILDCARD
METHOD_RESPONSE_TOPIC = "$iothub/methods/res/{status}/?$rid={request_id}"

HUB_SUBSCRIPTIONS = (
    TWIN_RESPONSE_TOPIC_FOR_SUBSCRIPTION,
    TWIN_DESIRED_PATCH_TOPIC_FOR_SUBSCRIPTION,
    METHOD_REQUEST_TOPIC_FOR_SUBSCRIPTION,
)


def build_dps_username(scope_id: str, registration_id: str) -> str:
    return f"{scope_id}/registrations/{registration_id}/api-version={DPS_API_VERSION}"


def build_dps_resource_uri(scope_id: str, registration_id: str) -> str:
    return f"{scope_id}/registrations/{registration_id}"


def build_hub_username(hub_address: str, device_id: str) -> str:
    return f"{hub_address}/{device_id}/?api-version={HUB_API_VERSION}"


def build_hub_resource_uri(hub_address: str, device_id: str) -> str:
    return f"{hub_address}/devices/{device_id}"


def build_telemetry_topic(device_id: str) -> str:
    return DEVICE_TELEMETRY_TOPIC.format(device_id=device_id)


def build_register_topic(request_id) -> str:
    return DPS_REGISTER_TOPIC.format(request_id=request_id)


def build_operation_status_topic(request_id, operation_id: str) -> str:
    return DPS_OPERATION_STATUS_TOPIC.format(request_id=request_id, operation_id=operation_id)


def build_reported_patch_topic(request_id) -> str:
    return TWIN_REPORTED_PATCH_TOPIC.format(request_id=request_id)


def build_method_response_topic(status: int, request_id) -> str:
    return METHOD_RESPONSE_TOPIC.format(status=status, request_id=request_id)


def _split_query(topic: str) -> Tuple[str, Dict[str, str]]:
    path, _, query = topic.partition("?")
    params = {key: values[0] for key, values in parse_qs(query, keep_blank_values=True).items()}
    return path, params


def parse_status_topic(topic: str, prefix: str) -> Tuple[int, Dict[str, str]]:
    """
    Parses "<prefix>{status}/?$rid=..&..." into the status code and query parameters.
    Used for both provisioning and twin responses.
    """
    if not topic.startswith(prefix):
        raise ValueError(f"Topic {topic!r} does not start with {prefix!r}")
    path, params = _split_query(topic[len(prefix):])
    status = path.strip("/")
    if not status.isdigit():
        raise ValueError(f"Topic {topic!r} has no status code")
    return int(status), params


def parse_method_request_topic(topic: str) -> Tuple[str, Optional[str]]:
    """
    Parses "$iothub/methods/POST/{name}/?$rid={rid}" into the method name and request id.
    """
    if not topic.startswith(METHOD_REQUEST_TOPIC_PREFIX):
        raise ValueError(f"Topic {topic!r} is not a method request topic")
    path, params = _split_query(topic[len(METHOD_REQUEST_TOPIC_PREFIX):])
    name = path.strip("/")
    if not name:
        raise ValueError(f"Topic {topic!r} has no method name")
    return name, params.get("$rid")
