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

import logging
import shutil
from pathlib import Path

from edge_update_libs.errors import UploadError

from .base import Uploader

logger = logging.getLogger(__name__)


class FileUploader(Uploader):
    """Copy the repo into a local folder with the storage layout."""

    def __init__(self, base_path: Path) -> None:
        self._base_path = Path(base_path)

    def upload_file(self, src: Path, key: str) -> None:
        _dst = self._base_path / key
        try:
            _dst.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(src, _dst, follow_symlinks=False)
        except OSError as e:
            raise UploadError(src, e) from e
