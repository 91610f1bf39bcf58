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

from iot_device_agent.common.config_loader import DEFAULT_METHOD_NAME
from iot_device_agent.common.logging_utils import get_logger
from iot_device_agent.entities.data.method_request import MethodRequest
from iot_device_agent.entities.data.method_response import MethodResponse, STATUS_OK, STATUS_NOT_FOUND

logger = get_logger(__name__)


class CommandDispatcher:
    """
    Answers the single supported direct method by echoing its payload to the log.
    """

    def __init__(self, method_name: str = DEFAULT_METHOD_NAME):
        self._method_name = method_name

    @property
    def method_name(self) -> str:
        return self._method_name

    async def invoke(self, request: MethodRequest) -> MethodResponse:
        if request.name != self._method_name:
            logger.warning("Method %s is not supported, expected %s", request.name, self._method_name)
            return MethodResponse.build(request.request_id, status=STATUS_NOT_FOUND)

        logger.info("*** %s was called.", request.name)
        logger.info("%s", request.data_as_json)
        return MethodResponse.build(request.request_id, status=STATUS_OK, payload=b"")
