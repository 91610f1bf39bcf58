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
from orjson import loads

from iot_device_agent.common.exceptions import TelemetrySendError
from iot_device_agent.entities.data.telemetry_sample import TelemetryBaseline
from iot_device_agent.service.device.telemetry_loop import TelemetryLoop, TelemetryLoopResult


class CountingSession:
    """
    Records start/end loop times of each send and cancels after `limit` sends.
    """

    def __init__(self, cancel_event: asyncio.Event, limit: int, send_duration: float = 0.0):
        self.cancel_event = cancel_event
        self.limit = limit
        self.send_duration = send_duration
        self.payloads = []
        self.spans = []

    async def send_telemetry(self, payload: bytes):
        loop = asyncio.get_running_loop()
        started = loop.time()
        if self.send_duration:
            await asyncio.sleep(self.send_duration)
        self.payloads.append(payload)
        self.spans.append((started, loop.time()))
        if len(self.payloads) >= self.limit:
            self.cancel_event.set()


@pytest.mark.asyncio
async def test_cancel_before_start_sends_nothing(fake_session):
    cancel_event = asyncio.Event()
    cancel_event.set()
    loop = TelemetryLoop(fake_session, interval=0.01)

    result = await loop.run(cancel_event)

    assert result is TelemetryLoopResult.CANCELLED
    assert fake_session.telemetry == []
    assert loop.sent_count == 0


@pytest.mark.asyncio
async def test_payload_fields_and_ranges():
    cancel_event = asyncio.Event()
    session = CountingSession(cancel_event, limit=25)
    baseline = TelemetryBaseline(temperature=60, pressure=500, humidity=50)

    result = await TelemetryLoop(session, baseline=baseline, interval=0, rng=Random(1)).run(cancel_event)

    assert result is TelemetryLoopResult.CANCELLED
    assert len(session.payloads) == 25
    for payload in session.payloads:
        data = loads(payload)
        assert set(data.keys()) == {"humidity", "pressure", "temp"}
        assert 60 <= data["temp"] < 80
        assert 500 <= data["pressure"] < 600
        assert 50 <= data["humidity"] < 70


@pytest.mark.asyncio
async def test_sends_never_overlap_and_wait_full_interval():
    cancel_event = asyncio.Event()
    interval = 0.05
    session = CountingSession(cancel_event, limit=3, send_duration=0.02)

    await TelemetryLoop(session, interval=interval).run(cancel_event)

    assert len(session.spans) == 3
    for (_, previous_end), (next_start, _) in zip(session.spans, session.spans[1:]):
        assert next_start >= previous_end + interval - 0.01


@pytest.mark.asyncio
async def test_cancel_during_delay_stops_before_next_send():
    cancel_event = asyncio.Event()
    session = CountingSession(cancel_event, limit=1)

    result = await asyncio.wait_for(TelemetryLoop(session, interval=10).run(cancel_event), timeout=1)

    assert result is TelemetryLoopResult.CANCELLED
    assert len(session.payloads) == 1


@pytest.mark.asyncio
async def test_send_failure_is_raised(fake_session_factory):
    session = fake_session_factory(send_error=ConnectionError("broken pipe"))
    loop = TelemetryLoop(session, interval=0.01)

    with pytest.raises(TelemetrySendError) as exc:
        await loop.run(asyncio.Event())

    assert isinstance(exc.value.__cause__, ConnectionError)
    assert session.events == ["telemetry"]
    assert loop.sent_count == 0


@pytest.mark.asyncio
async def test_loop_runs_only_once(fake_session):
    cancel_event = asyncio.Event()
    cancel_event.set()
    loop = TelemetryLoop(fake_session, interval=0.01)
    await loop.run(cancel_event)

    with pytest.raises(RuntimeError):
        await loop.run(cancel_event)


def test_samples_are_lazy_and_within_bounds(fake_session):
    loop = TelemetryLoop(fake_session, baseline=TelemetryBaseline(temperature=0, pressure=0, humidity=0),
                         rng=Random(5))
    samples = loop.samples()
    for _ in range(100):
        sample = next(samples)
        assert 0 <= sample.temperature < 20
        assert 0 <= sample.pressure < 100
        assert 0 <= sample.humidity < 20


def test_negative_interval_rejected(fake_session):
    with pytest.raises(ValueError):
        TelemetryLoop(fake_session, interval=-1)
