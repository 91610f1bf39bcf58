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


@dataclass(frozen=True)
class DeviceIdentity:
    """
    Credentials a device proves itself with during provisioning.
    Supplied once at startup and never mutated.
    """
    scope_id: str
    device_id: str
    shared_key: str

    @property
    def registration_id(self) -> str:
        return self.device_id

    def __repr__(self):
        return f"DeviceIdentity(scope_id={self.scope_id}, device_id={self.device_id}, shared_key=***)"
