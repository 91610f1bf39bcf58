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
from random import Random

import pytest

from iot_device_agent.common.config_loader import AgentConfig
from iot_device_agent.common.exceptions import (
    ProvisioningError,
    ReconciliationPushError,
    SessionConnectionError,
    TelemetrySendError,
)
from iot_device_agent.entities.data.desired_state_delta import DesiredStateDelta
from iot_device_agent.entities.data.method_request import MethodRequest
from iot_device_agent.entities.data.registration_result import Assignment, RegistrationResult
from iot_device_agent.service.device.command_dispatcher import CommandDispatcher
from iot_device_agent.service.device.session_manager import SessionManager, SessionState
from iot_device_agent.service.device.telemetry_loop import TelemetryLoopResult

FULL_LIFECYCLE = [
    SessionState.PROVISIONING,
    SessionState.CONNECTING,
    SessionState.PROPERTY_SYNC,
    SessionState.RUNNING,
    SessionState.DRAINING,
    SessionState.CLOSED,
]


async def start(manager: SessionManager):
    shutdown_event = asyncio.Event()
    task = asyncio.create_task(manager.run(shutdown_event))
    await asyncio.wait_for(manager.wait_until_running(), timeout=1)
    return shutdown_event, task


@pytest.mark.asyncio
async def test_provisions_connects_and_reaches_running(fake_transport, fake_session, identity):
    manager = SessionManager(fake_transport, identity, telemetry_interval=0.01, rng=Random(2))

    shutdown_event, task = await start(manager)

    assert manager.state == SessionState.RUNNING
    assert fake_transport.registered == [identity]
    assert fake_transport.connected == [(identity, Assignment(hub_address="h1", device_id="D"))]
    first_push = fake_session.reported_pushes[0]
    assert list(first_push.keys()) == ["dieNumber"]
    assert 1 <= first_push["dieNumber"] <= 6

    shutdown_event.set()
    result = await asyncio.wait_for(task, timeout=1)

    assert result is TelemetryLoopResult.CANCELLED
    assert manager.history == FULL_LIFECYCLE
    assert fake_session.close_calls == 1


@pytest.mark.asyncio
async def test_initial_push_precedes_callbacks_and_telemetry(fake_transport, fake_session, identity):
    manager = SessionManager(fake_transport, identity, telemetry_interval=0.01)

    shutdown_event, task = await start(manager)
    await asyncio.sleep(0.03)
    shutdown_event.set()
    await task

    assert fake_session.events[0] == "reported"
    assert fake_session.events[1:3] == ["desired_handler", "method_handler"]
    assert "telemetry" in fake_session.events
    assert fake_session.events.index("telemetry") > 2
    assert fake_session.events[-1] == "close"


@pytest.mark.asyncio
async def test_desired_change_is_acknowledged_without_touching_other_keys(fake_transport, fake_session, identity):
    manager = SessionManager(fake_transport, identity, telemetry_interval=0.01)
    shutdown_event, task = await start(manager)
    die_number = manager.reported_state.get("dieNumber")

    await fake_session.desired_handler(DesiredStateDelta.from_dict({"fanSpeed": {"value": 42}, "$version": 7}))

    assert fake_session.reported_pushes[-1] == {
        "dieNumber": die_number,
        "fanSpeed": {"value": 42, "status": "completed", "desiredVersion": 7, "message": "Processed"}
    }
    assert len(fake_session.reported_pushes) == 2

    shutdown_event.set()
    await task


@pytest.mark.asyncio
async def test_failed_acknowledgement_is_not_fatal(fake_transport, fake_session, identity):
    manager = SessionManager(fake_transport, identity, telemetry_interval=0.01)
    shutdown_event, task = await start(manager)

    fake_session.push_error = ConnectionError("twin unavailable")
    await fake_session.desired_handler(DesiredStateDelta.from_dict({"setVoltage": {"value": 12}, "$version": 2}))

    assert manager.state == SessionState.RUNNING
    assert not task.done()
    assert manager.reported_state.get("setVoltage").desired_version == 2

    shutdown_event.set()
    assert await task is TelemetryLoopResult.CANCELLED


@pytest.mark.asyncio
async def test_command_returns_200_without_side_effects(fake_transport, fake_session, identity):
    manager = SessionManager(fake_transport, identity, telemetry_interval=0.01)
    shutdown_event, task = await start(manager)
    pushes_before = len(fake_session.reported_pushes)
    reported_before = manager.reported_state.to_payload_format()

    handler = fake_session.method_handlers["WriteToConsole"]
    response = await handler(MethodRequest(request_id="5", name="WriteToConsole", payload=b"\x01\x02 anything"))

    assert response.status == 200
    assert response.payload == b""
    assert manager.reported_state.to_payload_format() == reported_before
    assert len(fake_session.reported_pushes) == pushes_before
    assert manager.telemetry_loop is not None
    assert not task.done()

    shutdown_event.set()
    await task


@pytest.mark.asyncio
async def test_custom_method_name_is_registered(fake_transport, fake_session, identity):
    manager = SessionManager(fake_transport, identity, telemetry_interval=0.01,
                             dispatcher=CommandDispatcher("blink"))
    shutdown_event, task = await start(manager)

    assert list(fake_session.method_handlers) == ["blink"]

    shutdown_event.set()
    await task


@pytest.mark.asyncio
async def test_rejected_registration_never_connects(fake_transport_factory, identity):
    transport = fake_transport_factory(registration_result=RegistrationResult.build({"status": "failed"}))
    manager = SessionManager(transport, identity, telemetry_interval=0.01)

    with pytest.raises(ProvisioningError):
        await manager.run(asyncio.Event())

    assert transport.connected == []
    assert transport.session.telemetry == []
    assert transport.session.close_calls == 0
    assert manager.history == [SessionState.PROVISIONING, SessionState.CLOSED]


@pytest.mark.asyncio
async def test_connection_failure_is_fatal(fake_transport_factory, identity):
    transport = fake_transport_factory(connect_error=OSError("tls handshake failed"))
    manager = SessionManager(transport, identity, telemetry_interval=0.01)

    with pytest.raises(SessionConnectionError) as exc:
        await manager.run(asyncio.Event())

    assert isinstance(exc.value.__cause__, OSError)
    assert transport.session.telemetry == []
    assert manager.history == [SessionState.PROVISIONING, SessionState.CONNECTING, SessionState.CLOSED]


@pytest.mark.asyncio
async def test_initial_snapshot_failure_closes_session_once(fake_transport_factory, fake_session_factory, identity):
    session = fake_session_factory(push_error=ConnectionError("twin unavailable"))
    transport = fake_transport_factory(session=session)
    manager = SessionManager(transport, identity, telemetry_interval=0.01)

    with pytest.raises(ReconciliationPushError):
        await manager.run(asyncio.Event())

    assert session.telemetry == []
    assert session.desired_handler is None
    assert session.close_calls == 1
    assert manager.state == SessionState.CLOSED


@pytest.mark.asyncio
async def test_telemetry_failure_drains_and_is_raised(fake_transport_factory, fake_session_factory, identity):
    session = fake_session_factory(send_error=ConnectionError("socket closed"))
    transport = fake_transport_factory(session=session)
    manager = SessionManager(transport, identity, telemetry_interval=0.01)

    with pytest.raises(TelemetrySendError):
        await asyncio.wait_for(manager.run(asyncio.Event()), timeout=1)

    assert session.close_calls == 1
    assert manager.history == FULL_LIFECYCLE


@pytest.mark.asyncio
async def test_run_only_once(fake_transport, identity):
    manager = SessionManager(fake_transport, identity, telemetry_interval=0.01)
    shutdown_event = asyncio.Event()
    shutdown_event.set()
    await manager.run(shutdown_event)

    with pytest.raises(RuntimeError):
        await manager.run(shutdown_event)


@pytest.mark.asyncio
async def test_from_config_uses_configured_values(fake_transport, fake_session):
    config = AgentConfig({
        "scope_id": "S",
        "device_id": "D",
        "device_key": "a2V5",
        "telemetry_interval": 0.01,
        "method_name": "blink",
    })
    manager = SessionManager.from_config(fake_transport, config)
    shutdown_event, task = await start(manager)

    assert "blink" in fake_session.method_handlers

    shutdown_event.set()
    await task


@pytest.mark.asyncio
async def test_shutdown_waits_for_send_in_flight(fake_transport_factory, fake_session_factory, identity):
    session = fake_session_factory(send_delay=0.2)
    transport = fake_transport_factory(session=session)
    manager = SessionManager(transport, identity, telemetry_interval=0.01)
    shutdown_event = asyncio.Event()
    asyncio.get_running_loop().call_later(0.05, shutdown_event.set)

    result = await asyncio.wait_for(manager.run(shutdown_event), timeout=2)

    assert result is TelemetryLoopResult.CANCELLED
    assert session.events[-2:] == ["telemetry", "close"]
    assert len(session.telemetry) == 1
    assert manager.telemetry_loop.sent_count == 1
    assert manager.history == FULL_LIFECYCLE


def test_negative_telemetry_interval_is_rejected_up_front(fake_transport, identity):
    with pytest.raises(ValueError):
        SessionManager(fake_transport, identity, telemetry_interval=-1)
