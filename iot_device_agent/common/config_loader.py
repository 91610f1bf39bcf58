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

import os
from typing import Optional

from iot_device_agent.common.logging_utils import resolve_level
from iot_device_agent.common.sas_token import DEFAULT_TOKEN_TTL
from iot_device_agent.entities.data.device_identity import DeviceIdentity
from iot_device_agent.entities.data.telemetry_sample import TelemetryBaseline

DEFAULT_PROVISIONING_HOST = "global.azure-devices-provisioning.net"
DEFAULT_METHOD_NAME = "WriteToConsole"


class AgentConfig:
    """
    Configuration class for the device agent.
    Options are loaded from environment variables and can be overridden with a dict,
    so credentials are supplied at startup rather than discovered.
    """
    def __init__(self, config: Optional[dict] = None):
        # Identity
        self.scope_id: Optional[str] = os.getenv("IOT_SCOPE_ID")
        self.device_id: Optional[str] = os.getenv("IOT_DEVICE_ID")
        self.device_key: Optional[str] = os.getenv("IOT_DEVICE_KEY")

        # Endpoints
        self.provisioning_host: str = os.getenv("IOT_PROVISIONING_HOST", DEFAULT_PROVISIONING_HOST)
        self.provisioning_port: int = int(os.getenv("IOT_PROVISIONING_PORT", 8883))
        self.hub_port: int = int(os.getenv("IOT_HUB_PORT", 8883))
        self.ca_cert: Optional[str] = os.getenv("IOT_CA_CERT")
        self.qos: int = int(os.getenv("IOT_QOS", 1))
        self.timeout: float = float(os.getenv("IOT_TIMEOUT", 30))
        self.sas_token_ttl: int = int(os.getenv("IOT_SAS_TOKEN_TTL", DEFAULT_TOKEN_TTL))

        # Telemetry
        self.telemetry_interval: float = float(os.getenv("IOT_TELEMETRY_INTERVAL", 1.0))
        self.base_temperature: float = float(os.getenv("IOT_BASE_TEMPERATURE", 60))
        self.base_pressure: float = float(os.getenv("IOT_BASE_PRESSURE", 500))
        self.base_humidity: float = float(os.getenv("IOT_BASE_HUMIDITY", 50))

        # Commands
        self.method_name: str = os.getenv("IOT_METHOD_NAME", DEFAULT_METHOD_NAME)

        self.log_level: str = os.getenv("IOT_LOG_LEVEL", "INFO")

        if config is not None:
            for key, value in config.items():
                if hasattr(self, key) and value is not None:
                    setattr(self, key, value)

        self.validate()

    def validate(self):
        """
        Raises ValueError for option values the agent cannot run with.
        Identity fields are checked separately by `device_identity()`.
        """
        if self.qos not in (0, 1):
            raise ValueError(f"QoS must be 0 or 1, got {self.qos}")
        if self.timeout <= 0:
            raise ValueError(f"Timeout must be positive, got {self.timeout}")
        if self.sas_token_ttl <= 0:
            raise ValueError(f"SAS token lifetime must be positive, got {self.sas_token_ttl}")
        if self.telemetry_interval < 0:
            raise ValueError(f"Telemetry interval must not be negative, got {self.telemetry_interval}")
        resolve_level(self.log_level)

    def device_identity(self) -> DeviceIdentity:
        missing = [name for name in ("scope_id", "device_id", "device_key") if not getattr(self, name)]
        if missing:
            raise ValueError(f"Missing device identity configuration: {', '.join(missing)}")
        return DeviceIdentity(scope_id=self.scope_id, device_id=self.device_id, shared_key=self.device_key)

    def telemetry_baseline(self) -> TelemetryBaseline:
        return TelemetryBaseline(temperature=self.base_temperature,
                                 pressure=self.base_pressure,
                                 humidity=self.base_humidity)

    def use_custom_ca(self) -> bool:
        return self.ca_cert is not None

    def __repr__(self):
        return (f"AgentConfig(scope_id={self.scope_id}, device_id={self.device_id}, "
                f"provisioning_host={self.provisioning_host}:{self.provisioning_port}, "
                f"telemetry_interval={self.telemetry_interval}, method_name={self.method_name})")
