# Copyright 2025 Roger Cibrian
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Acquisition and packaging for intunesync.

Modules:

- manager: package_app, the per-application pipeline
- packager: pack_source, IntuneWinAppUtil.exe invocation
- extract: run_extraction for self-extracting containers

Example:
    from pathlib import Path
    from intunesync.build import package_app

    result = package_app(descriptor, Path("packages"))

"""

from .extract import run_extraction
from .manager import package_app
from .packager import pack_source

__all__ = ["pack_source", "package_app", "run_extraction"]
