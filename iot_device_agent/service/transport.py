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

from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Dict, Any

from iot_device_agent.entities.data.desired_state_delta import DesiredStateDelta
from iot_device_agent.entities.data.device_identity import DeviceIdentity
from iot_device_agent.entities.data.method_request import MethodRequest
from iot_device_agent.entities.data.method_response import MethodResponse
from iot_device_agent.entities.data.registration_result import Assignment, RegistrationResult

DesiredStateHandler = Callable[[DesiredStateDelta], Awaitable[None]]
MethodHandler = Callable[[MethodRequest], Awaitable[MethodResponse]]


class Session(ABC):
    """
    An open, authenticated channel to the hub. Owned by exactly one SessionManager.
    """

    @abstractmethod
    async def send_telemetry(self, payload: bytes) -> None:
        """
        Sends one telemetry event. Raises on failure.
        """

    @abstractmethod
    async def set_reported_state(self, patch: Dict[str, Any]) -> None:
        """
        Pushes the reported state document and waits until the hub acknowledges it.
        Raises on failure.
        """

    @abstractmethod
    def on_desired_state_changed(self, handler: DesiredStateHandler):
        """
        Sets the coroutine invoked for every desired state patch pushed by the cloud.
        """

    @abstractmethod
    def on_invoke(self, method_name: str, handler: MethodHandler):
        """
        Routes invocations of `method_name` to the handler. Other names never reach it.
        """

    @abstractmethod
    async def close(self) -> None:
        """
        Releases the channel. Safe to call more than once.
        """


class Transport(ABC):
    """
    Cloud side of the agent: registers identities and opens sessions.
    """

    @abstractmethod
    async def register(self, identity: DeviceIdentity) -> RegistrationResult:
        """
        Runs one registration against the provisioning endpoint and returns its terminal result.
        """

    @abstractmethod
    async def connect(self, identity: DeviceIdentity, assignment: Assignment) -> Session:
        """
        Opens a session to the assigned hub, authenticated with the identity's shared key.
        """
