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

from dataclasses import dataclass
from typing import Any, Dict, Iterator

from iot_device_agent.entities.data.desired_state_delta import DesiredStateDelta

ACK_STATUS_COMPLETED = "completed"
ACK_MESSAGE_PROCESSED = "Processed"


@dataclass(frozen=True)
class AcknowledgementEnvelope:
    """
    Device answer to one desired setting. `desired_version` echoes the `$version`
    of the delta that triggered it so the cloud can detect stale acknowledgements.
    """
    value: Any
    desired_version: int
    status: str = ACK_STATUS_COMPLETED
    message: str = ACK_MESSAGE_PROCESSED

    @classmethod
    def build(cls, delta: DesiredStateDelta, setting: str) -> 'AcknowledgementEnvelope':
        return cls(value=delta.value_of(setting), desired_version=delta.version)

    def to_payload_format(self) -> Dict[str, Any]:
        return {
            "value": self.value,
            "status": self.status,
            "desiredVersion": self.desired_version,
            "message": self.message
        }


class ReportedState:
    """
    Ordered device-authored half of the twin. Last writer wins per key.
    """

    def __init__(self):
        self._properties: Dict[str, Any] = {}

    def __repr__(self):
        return f"ReportedState({self.to_payload_format()})"

    def __contains__(self, key: str) -> bool:
        return key in self._properties

    def __len__(self) -> int:
        return len(self._properties)

    def __iter__(self) -> Iterator[str]:
        return iter(self._properties)

    def get(self, key: str, default=None):
        return self._properties.get(key, default)

    def set(self, key: str, value: Any):
        self._properties[key] = value

    def stage_acknowledgement(self, setting: str, envelope: AcknowledgementEnvelope):
        self._properties[setting] = envelope

    def to_payload_format(self) -> Dict[str, Any]:
        return {key: value.to_payload_format() if isinstance(value, AcknowledgementEnvelope) else value
                for key, value in self._properties.items()}
