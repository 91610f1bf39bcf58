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
from typing import Any, Optional, Union

from orjson import loads, JSONDecodeError


@dataclass(frozen=True)
class MethodRequest:
    """
    Direct method invocation received from the cloud.
    """
    request_id: Union[int, str]
    name: str
    payload: bytes = b""

    def __repr__(self):
        return f"MethodRequest(id={self.request_id}, name={self.name}, payload={self.payload!r})"

    @property
    def data_as_json(self) -> str:
        return self.payload.decode("utf-8", errors="replace")

    def json(self) -> Optional[Any]:
        if not self.payload:
            return None
        try:
            return loads(self.payload)
        except JSONDecodeError:
            return None
