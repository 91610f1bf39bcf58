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
from types import MappingProxyType
from typing import Any, Dict, Mapping

VERSION_KEY = "$version"


@dataclass(frozen=True)
class DesiredStateDelta:
    """
    Cloud-authored intent: setting name to `{"value": ...}`, stamped with the twin `$version`.
    Read-only once built.
    """
    version: int
    settings: Mapping[str, Any]

    def __repr__(self):
        return f"DesiredStateDelta(version={self.version}, settings={dict(self.settings)})"

    def __contains__(self, setting: str) -> bool:
        return setting in self.settings

    def keys(self):
        return list(self.settings.keys())

    def value_of(self, setting: str) -> Any:
        entry = self.settings[setting]
        if isinstance(entry, Mapping) and "value" in entry:
            return entry["value"]
        return entry

    def as_dict(self) -> Dict[str, Any]:
        data = dict(self.settings)
        data[VERSION_KEY] = self.version
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DesiredStateDelta':
        if not isinstance(data, dict):
            raise ValueError("Desired state patch must be a JSON object")
        version = data.get(VERSION_KEY)
        if isinstance(version, bool) or not isinstance(version, int):
            raise ValueError(f"Desired state patch has no integer {VERSION_KEY}: {version!r}")
        settings = {key: value for key, value in data.items() if key != VERSION_KEY}
        return cls(version=version, settings=MappingProxyType(settings))
