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
from copy import deepcopy
from typing import Any, Dict, List, Optional

import pytest

from iot_device_agent.entities.data.device_identity import DeviceIdentity
from iot_device_agent.entities.data.registration_result import RegistrationResult
from iot_device_agent.service.transport import Session, Transport


class FakeSession(Session):
    """
    In-memory session recording everything the agent pushes.
    """

    def __init__(self, send_error: Optional[BaseException] = None, push_error: Optional[BaseException] = None,
                 send_delay: float = 0.0):
        self.send_error = send_error
        self.push_error = push_error
        self.send_delay = send_delay
        self.telemetry: List[bytes] = []
        self.reported_pushes: List[Dict[str, Any]] = []
        self.events: List[str] = []
        self.desired_handler = None
        self.method_handlers = {}
        self.close_calls = 0

    async def send_telemetry(self, payload: bytes) -> None:
        self.events.append("telemetry")
        if self.send_delay:
            await asyncio.sleep(self.send_delay)
        if self.send_error is not None:
            raise self.send_error
        self.telemetry.append(payload)

    async def set_reported_state(self, patch: Dict[str, Any]) -> None:
        self.events.append("reported")
        if self.push_error is not None:
            raise self.push_error
        self.reported_pushes.append(deepcopy(patch))

    def on_desired_state_changed(self, handler):
        self.events.append("desired_handler")
        self.desired_handler = handler

    def on_invoke(self, method_name: str, handler):
        self.events.append("method_handler")
        self.method_handlers[method_name] = handler

    async def close(self) -> None:
        self.events.append("close")
        self.close_calls += 1


class FakeTransport(Transport):
    def __init__(self, session: Optional[FakeSession] = None,
                 registration_result: Optional[RegistrationResult] = None,
                 register_error: Optional[BaseException] = None,
                 connect_error: Optional[BaseException] = None):
        self.session = session or FakeSession()
        self.registration_result = registration_result or RegistrationResult.build({
            "operationId": "op-1",
            "status": "assigned",
            "registrationState": {"assignedHub": "h1", "deviceId": "D", "status": "assigned"}
        })
        self.register_error = register_error
        self.connect_error = connect_error
        self.registered = []
        self.connected = []

    async def register(self, identity):
        self.registered.append(identity)
        if self.register_error is not None:
            raise self.register_error
        return self.registration_result

    async def connect(self, identity, assignment):
        self.connected.append((identity, assignment))
        if self.connect_error is not None:
            raise self.connect_error
        return self.session


@pytest.fixture
def identity():
    return DeviceIdentity(scope_id="S", device_id="D", shared_key="c2VjcmV0LWtleQ==")


@pytest.fixture
def fake_session_factory():
    return FakeSession


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def fake_transport_factory():
    return FakeTransport


@pytest.fixture
def fake_transport(fake_session):
    return FakeTransport(session=fake_session)
