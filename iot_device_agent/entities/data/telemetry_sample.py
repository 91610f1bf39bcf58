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
from random import Random
from typing import Dict, Optional

from orjson import dumps

TEMPERATURE_SPREAD = 20
PRESSURE_SPREAD = 100
HUMIDITY_SPREAD = 20

_default_rng = Random()


@dataclass(frozen=True)
class TelemetryBaseline:
    temperature: float = 60
    pressure: float = 500
    humidity: float = 50


@dataclass(frozen=True)
class TelemetrySample:
    humidity: float
    pressure: float
    temperature: float

    @classmethod
    def generate(cls, baseline: TelemetryBaseline, rng: Optional[Random] = None) -> 'TelemetrySample':
        """
        Draws an independent reading around each baseline:
        temperature in [base, base+20), pressure in [base, base+100), humidity in [base, base+20).
        """
        rng = rng or _default_rng
        return cls(
            humidity=baseline.humidity + rng.random() * HUMIDITY_SPREAD,
            pressure=baseline.pressure + rng.random() * PRESSURE_SPREAD,
            temperature=baseline.temperature + rng.random() * TEMPERATURE_SPREAD
        )

    def to_payload_format(self) -> Dict[str, float]:
        return {
            "humidity": self.humidity,
            "pressure": self.pressure,
            "temp": self.temperature
        }

    def to_bytes(self) -> bytes:
        return dumps(self.to_payload_format())
