# Copyright 2024. ThingsBoard
# 
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
# 
#  http://www.apache.org/licenses/LICENSE-2.0
# 
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#

from os import path
from setuptools import setup, find_namespace_packages


this_directory = path.abspath(path.dirname(__file__))
with open(path.join(this_directory, 'README.md')) as f:
    long_description = f.read()

VERSION = "0.1.0"

setup(
    version=VERSION,
    name="iot-device-agent",
    license="Apache Software License (Apache Software License 2.0)",
    description="IoT device agent: provisioning, device twin reconciliation, telemetry and direct methods",
    long_description=long_description,
    long_description_content_type="text/markdown",
    python_requires=">=3.10",
    packages=find_namespace_packages(include=["iot_device_agent", "iot_device_agent.*"]),
    install_requires=['gmqtt>=0.6.16', 'orjson', 'uvloop'],
    extras_require={
        'test': ['pytest', 'pytest-asyncio'],
    },
    entry_points={
        'console_scripts': ['iot-device-agent=iot_device_agent.__main__:run'],
    })
