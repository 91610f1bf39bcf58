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

import base64
import hashlib
import hmac
from time import time
from typing import Optional
from urllib.parse import quote

DEFAULT_TOKEN_TTL = 3600


def sign(shared_key: str, message: str) -> str:
    """
    HMAC-SHA256 of the message with the base64 encoded shared key, base64 encoded.
    """
    key_bytes = base64.b64decode(shared_key)
    digest = hmac.new(key_bytes, message.encode("utf-8"), hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


def generate_sas_token(resource_uri: str,
                       shared_key: str,
                       key_name: Optional[str] = None,
                       ttl: int = DEFAULT_TOKEN_TTL,
                       now: Optional[float] = None) -> str:
    """
    Builds a SharedAccessSignature token for the given resource.

    :param resource_uri: Resource the token grants access to, e.g. "{scope}/registrations/{id}".
    :param shared_key: Base64 encoded device key.
    :param key_name: Optional policy name appended as `skn`.
    :param ttl: Token lifetime in seconds.
    :param now: Current unix time, mostly useful for tests.
    """
    expiry = int((time() if now is None else now) + ttl)
    encoded_uri = quote(resource_uri, safe="")
    signature = sign(shared_key, f"{encoded_uri}\n{expiry}")
    token = f"SharedAccessSignature sr={encoded_uri}&sig={quote(signature, safe='')}&se={expiry}"
    if key_name:
        token += f"&skn={key_name}"
    return token
