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

"""Static discovery strategy: always use the configured fallback triple."""

from __future__ import annotations

from typing import Any

from intunesync.config.descriptor import ApplicationDescriptor
from intunesync.logging import get_global_logger
from intunesync.versioning.keys import ResolvedVersion

from .base import fallback_version, register_strategy


class StaticStrategy:
    """Discovery handler for StaticFallbackOnly descriptors."""

    def get_version_info(self, descriptor: ApplicationDescriptor) -> ResolvedVersion:
        logger = get_global_logger()
        logger.verbose("DISCOVERY", "Strategy: static (pinned fallback)")
        return fallback_version(descriptor)

    def validate_config(self, source: dict[str, Any]) -> list[str]:
        # The fallback block lives outside 'source'; validation checks it.
        return []


register_strategy("static", StaticStrategy)
