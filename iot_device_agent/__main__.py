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
import signal
import sys

import uvloop

from iot_device_agent.common.config_loader import AgentConfig
from iot_device_agent.common.exceptions import (
    AgentError,
    ProvisioningError,
    SessionConnectionError,
    exception_handler,
)
from iot_device_agent.common.logging_utils import configure_logging, get_logger
from iot_device_agent.service.device.session_manager import SessionManager
from iot_device_agent.service.mqtt.mqtt_transport import MqttTransport

logger = get_logger("iot_device_agent")


def _log_unhandled(exc: BaseException, context=None):
    logger.error("Unhandled error in background task: %s", exc, exc_info=exc)


async def main(config: AgentConfig = None) -> int:
    logger.info("== Raspberry Pi IoT device agent ==")

    try:
        config = config or AgentConfig()
        manager = SessionManager.from_config(MqttTransport(config), config)
    except ValueError as e:
        logger.error("Invalid configuration: %s", e)
        return 1

    exception_handler.register(None, _log_unhandled)
    exception_handler.install_asyncio_handler()

    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, shutdown_event.set)  # noqa
        except NotImplementedError:
            # Windows compatibility fallback
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(shutdown_event.set))  # noqa

    logger.info("Press Ctrl+C to exit...")
    try:
        result = await manager.run(shutdown_event)
    except (ProvisioningError, SessionConnectionError) as e:
        logger.error("%s", e)
        return 1
    except AgentError as e:
        logger.error("Device agent stopped: %s", e)
        return 1

    logger.info("Device agent stopped, telemetry %s.", result)
    return 0


def run():
    try:
        config = AgentConfig()
    except ValueError as e:
        configure_logging()
        logger.error("Invalid configuration: %s", e)
        sys.exit(1)
    configure_logging(config.log_level)
    asyncio.set_event_loop_policy(uvloop.EventLoopPolicy())
    try:
        sys.exit(asyncio.run(main(config)))
    except KeyboardInterrupt:
        print("Interrupted by user.")


if __name__ == "__main__":
    run()
