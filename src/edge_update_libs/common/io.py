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
"""Common shared helper functions for IO."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Generator

DEFAULT_FILE_CHUNK_SIZE = 1024**2  # 1MiB


def iter_files(_root: Path) -> Generator[Path]:
    """Yield the path of every non-directory entry under <_root>, relative to <_root>.

    Entries are yielded in a stable order: directories are walked top-down,
        files within one directory are sorted by name.
    """
    for curdir, dirnames, files in os.walk(_root):
        dirnames.sort()
        relative_curdir = Path(curdir).relative_to(_root)
        for _fname in sorted(files):
            yield relative_curdir / _fname

