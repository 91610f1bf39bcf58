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
from enum import Enum
from random import Random
from typing import Callable, List, Optional

from iot_device_agent.common.config_loader import AgentConfig
from iot_device_agent.common.exceptions import ReconciliationPushError, SessionConnectionError
from iot_device_agent.common.logging_utils import get_logger
from iot_device_agent.entities.data.desired_state_delta import DesiredStateDelta
from iot_device_agent.entities.data.device_identity import DeviceIdentity
from iot_device_agent.entities.data.method_request import MethodRequest
from iot_device_agent.entities.data.method_response import MethodResponse
from iot_device_agent.entities.data.reported_state import ReportedState
from iot_device_agent.entities.data.telemetry_sample import TelemetryBaseline
from iot_device_agent.service.device.command_dispatcher import CommandDispatcher
from iot_device_agent.service.device.property_reconciler import PropertyReconciler
from iot_device_agent.service.device.provisioning_stage import ProvisioningStage
from iot_device_agent.service.device.telemetry_loop import (
    DEFAULT_TELEMETRY_INTERVAL,
    TelemetryLoop,
    TelemetryLoopResult,
)
from iot_device_agent.service.transport import Session, Transport

logger = get_logger(__name__)


class SessionState(Enum):
    PROVISIONING = "provisioning"
    CONNECTING = "connecting"
    PROPERTY_SYNC = "property_sync"
    RUNNING = "running"
    DRAINING = "draining"
    CLOSED = "closed"

    def __str__(self):
        return self.value


class SessionManager:
    """
    Owns the device session from provisioning to shutdown.

    PROVISIONING -> CONNECTING -> PROPERTY_SYNC -> RUNNING -> DRAINING -> CLOSED.
    Any failure before RUNNING goes straight to CLOSED and is raised. The reported state
    document lives here and is handed to the reconciler, its only writer.
    """

    def __init__(self,
                 transport: Transport,
                 identity: DeviceIdentity,
                 telemetry_interval: float = DEFAULT_TELEMETRY_INTERVAL,
                 baseline: Optional[TelemetryBaseline] = None,
                 dispatcher: Optional[CommandDispatcher] = None,
                 rng: Optional[Random] = None,
                 on_state_change: Optional[Callable[['SessionState'], None]] = None):
        if telemetry_interval < 0:
            raise ValueError("Telemetry interval must not be negative")
        self._transport = transport
        self._identity = identity
        self._telemetry_interval = telemetry_interval
        self._baseline = baseline
        self._dispatcher = dispatcher or CommandDispatcher()
        self._rng = rng or Random()
        self._on_state_change = on_state_change

        self._provisioning = ProvisioningStage(transport)
        self._reported_state = ReportedState()
        self._cancel_event = asyncio.Event()
        self._running_event = asyncio.Event()

        self._state: Optional[SessionState] = None
        self._history: List[SessionState] = []
        self._session: Optional[Session] = None
        self._session_closed = False
        self._reconciler: Optional[PropertyReconciler] = None
        self._telemetry_loop: Optional[TelemetryLoop] = None
        self._telemetry_task: Optional[asyncio.Task] = None

    @classmethod
    def from_config(cls, transport: Transport, config: AgentConfig) -> 'SessionManager':
        return cls(transport=transport,
                   identity=config.device_identity(),
                   telemetry_interval=config.telemetry_interval,
                   baseline=config.telemetry_baseline(),
                   dispatcher=CommandDispatcher(config.method_name))

    @property
    def state(self) -> Optional[SessionState]:
        return self._state

    @property
    def history(self) -> List[SessionState]:
        return list(self._history)

    @property
    def reported_state(self) -> ReportedState:
        return self._reported_state

    @property
    def telemetry_loop(self) -> Optional[TelemetryLoop]:
        return self._telemetry_loop

    async def wait_until_running(self):
        await self._running_event.wait()

    async def run(self, shutdown_event: asyncio.Event) -> TelemetryLoopResult:
        """
        Drives the whole lifecycle and returns once the session is closed.
        Provisioning and connection failures raise before any telemetry is sent;
        a telemetry send failure drains the session and is raised afterwards.
        """
        if self._state is not None:
            raise RuntimeError("SessionManager can only be run once")

        try:
            self._set_state(SessionState.PROVISIONING)
            assignment = await self._provisioning.register(self._identity)

            self._set_state(SessionState.CONNECTING)
            try:
                self._session = await self._transport.connect(self._identity, assignment)
            except Exception as e:
                raise SessionConnectionError(f"Failed to connect to {assignment.hub_address}: {e}") from e

            self._set_state(SessionState.PROPERTY_SYNC)
            self._reconciler = PropertyReconciler(self._session, rng=self._rng)
            await self._reconciler.initial_snapshot(self._reported_state)

            self._set_state(SessionState.RUNNING)
            logger.info("Register settings changed handler...")
            self._session.on_desired_state_changed(self._on_desired_state_changed)
            self._session.on_invoke(self._dispatcher.method_name, self._on_method_invoked)

            self._telemetry_loop = TelemetryLoop(self._session,
                                                 baseline=self._baseline,
                                                 interval=self._telemetry_interval,
                                                 rng=self._rng)
            self._telemetry_task = asyncio.create_task(self._telemetry_loop.run(self._cancel_event))
            self._running_event.set()

            await self._wait_for_shutdown(shutdown_event)

            self._set_state(SessionState.DRAINING)
            self._cancel_event.set()
            return await self._telemetry_task
        finally:
            await self._close()

    async def _wait_for_shutdown(self, shutdown_event: asyncio.Event):
        shutdown_task = asyncio.create_task(shutdown_event.wait())
        try:
            await asyncio.wait([shutdown_task, self._telemetry_task], return_when=asyncio.FIRST_COMPLETED)
        finally:
            if not shutdown_task.done():
                shutdown_task.cancel()

        if self._telemetry_task.done() and not shutdown_event.is_set():
            logger.error("Telemetry loop stopped unexpectedly, shutting down session")

    async def _close(self):
        if self._telemetry_task is not None and not self._telemetry_task.done():
            self._cancel_event.set()
            try:
                await self._telemetry_task
            except Exception as e:
                logger.debug("Telemetry loop ended with error during close: %s", e)

        if self._session is not None and not self._session_closed:
            self._session_closed = True
            try:
                await self._session.close()
            except Exception as e:
                logger.error("Failed to close session: %s", e)
        self._set_state(SessionState.CLOSED)

    async def _on_desired_state_changed(self, delta: DesiredStateDelta):
        try:
            await self._reconciler.handle_desired_change(self._reported_state, delta)
        except ReconciliationPushError as e:
            logger.error("Settings acknowledgement was not delivered, it will be resent with the next change: %s", e)

    async def _on_method_invoked(self, request: MethodRequest) -> MethodResponse:
        return await self._dispatcher.invoke(request)

    def _set_state(self, state: SessionState):
        if self._state == state:
            return
        logger.debug("Session state: %s -> %s", self._state, state)
        self._state = state
        self._history.append(state)
        if self._on_state_change is not None:
            self._on_state_change(state)
