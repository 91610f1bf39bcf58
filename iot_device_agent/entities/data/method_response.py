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
from typing import Union

STATUS_OK = 200
STATUS_NOT_FOUND = 404
STATUS_INTERNAL_ERROR = 500


@dataclass(frozen=True)
class MethodResponse:
    """
    Status code and raw body returned for a direct method.
    """
    request_id: Union[int, str]
    status: int = STATUS_OK
    payload: bytes = b""

    def __new__(cls, *args, **kwargs):
        raise TypeError("Direct instantiation of MethodResponse is not allowed. "
                        "Use MethodResponse.build(request_id, status, payload).")

    def __repr__(self) -> str:
        return f"MethodResponse(request_id={self.request_id}, status={self.status}, payload={self.payload!r})"

    def is_successful(self) -> bool:
        return 200 <= self.status < 300

    @classmethod
    def build(cls, request_id: Union[int, str], status: int = STATUS_OK, payload: bytes = b"") -> 'MethodResponse':
        if not isinstance(status, int):
            raise ValueError("Status must be an integer")
        if not isinstance(payload, (bytes, bytearray)):
            raise ValueError("Payload must be bytes")
        self = object.__new__(cls)
        object.__setattr__(self, 'request_id', request_id)
        object.__setattr__(self, 'status', status)
        object.__setattr__(self, 'payload', bytes(payload))
        return self
