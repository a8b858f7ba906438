# Copyright 2025 TIER IV, INC. All rights reserved.
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

from __future__ import annotations

import os

DEFAULT_TMP_FNAME_PREFIX = "tmp"


def tmp_fname(
    hint: str = "",
    prefix: str = DEFAULT_TMP_FNAME_PREFIX,
    suffix: str = "",
    sep: str = "_",
    *,
    random_bytes: int = 4,
) -> str:
    return f"{prefix}{sep}{hint}{sep}{os.urandom(random_bytes).hex()}{suffix}"


def is_safe_path_segment(_in: str) -> bool:
    """Check whether <_in> can be used as exactly one component of a path."""
    return bool(_in) and _in not in (".", "..") and "/" not in _in and "\0" not in _in
