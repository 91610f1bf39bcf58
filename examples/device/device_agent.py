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
import logging
import signal

from iot_device_agent.common.config_loader import AgentConfig
from iot_device_agent.common.logging_utils import configure_logging, get_logger
from iot_device_agent.service.device.session_manager import SessionManager, SessionState
from iot_device_agent.service.mqtt.mqtt_transport import MqttTransport

configure_logging()
logger = get_logger(__name__)
logger.setLevel(logging.DEBUG)
logging.getLogger("iot_device_agent").setLevel(logging.DEBUG)


def state_changed_callback(state: SessionState):
    """
    Callback function to follow the session lifecycle.
    :param state: The state the session just entered.
    """
    logger.info("Session is now %s", state)


async def main():
    stop_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)  # noqa
        except NotImplementedError:
            # Windows compatibility fallback
            signal.signal(sig, lambda *_: stop_event.set())  # noqa

    config = AgentConfig()
    config.scope_id = "YOUR_ID_SCOPE"
    config.device_id = "YOUR_DEVICE_ID"
    config.device_key = "YOUR_BASE64_DEVICE_KEY"
    config.telemetry_interval = 5

    manager = SessionManager(MqttTransport(config),
                             config.device_identity(),
                             telemetry_interval=config.telemetry_interval,
                             baseline=config.telemetry_baseline(),
                             on_state_change=state_changed_callback)

    result = await manager.run(stop_event)
    logger.info("Telemetry loop finished: %s, %s samples sent.", result, manager.telemetry_loop.sent_count)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("Interrupted by user.")
