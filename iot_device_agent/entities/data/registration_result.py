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
from enum import Enum
from typing import Optional, Dict, Any


class RegistrationStatus(Enum):
    UNASSIGNED = "unassigned"
    ASSIGNING = "assigning"
    ASSIGNED = "assigned"
    FAILED = "failed"
    DISABLED = "disabled"

    def __str__(self):
        return self.value

    @classmethod
    def parse(cls, value: Optional[str]) -> 'RegistrationStatus':
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.FAILED

    def is_terminal(self) -> bool:
        return self not in (RegistrationStatus.UNASSIGNED, RegistrationStatus.ASSIGNING)


@dataclass(frozen=True)
class Assignment:
    """
    Where the provisioning service routed the device.
    `device_id` is the registration-confirmed id and must be used for everything after provisioning.
    """
    hub_address: str
    device_id: str


@dataclass(frozen=True)
class RegistrationResult:
    status: RegistrationStatus
    assignment: Optional[Assignment] = None
    operation_id: Optional[str] = None
    error: Optional[str] = None

    def __new__(cls, *args, **kwargs):
        raise TypeError("Direct instantiation of RegistrationResult is not allowed. "
                        "Use RegistrationResult.build(payload) or RegistrationResult.failure(error).")

    def __repr__(self) -> str:
        return (f"RegistrationResult(status={self.status}, assignment={self.assignment}, "
                f"operation_id={self.operation_id}, error={self.error})")

    def is_assigned(self) -> bool:
        return self.status == RegistrationStatus.ASSIGNED and self.assignment is not None

    @classmethod
    def build(cls, payload: Dict[str, Any]) -> 'RegistrationResult':
        """
        Constructs a RegistrationResult from a decoded registration operation payload.
        """
        self = object.__new__(cls)
        registration_state = payload.get("registrationState") or {}
        status = RegistrationStatus.parse(payload.get("status") or registration_state.get("status"))

        assignment = None
        if status == RegistrationStatus.ASSIGNED:
            hub = registration_state.get("assignedHub")
            device_id = registration_state.get("deviceId")
            if not hub or not device_id:
                status = RegistrationStatus.FAILED
            else:
                assignment = Assignment(hub_address=hub, device_id=device_id)

        error = registration_state.get("errorMessage") or payload.get("message")
        if status == RegistrationStatus.FAILED and not error:
            error = "Registration failed"

        object.__setattr__(self, 'status', status)
        object.__setattr__(self, 'assignment', assignment)
        object.__setattr__(self, 'operation_id', payload.get("operationId"))
        object.__setattr__(self, 'error', error)
        return self

    @classmethod
    def failure(cls, error: str, status: RegistrationStatus = RegistrationStatus.FAILED) -> 'RegistrationResult':
        self = object.__new__(cls)
        object.__setattr__(self, 'status', status)
        object.__setattr__(self, 'assignment', None)
        object.__setattr__(self, 'operation_id', None)
        object.__setattr__(self, 'error', error)
        return self
