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
"""Publish a built update repo to the artifact storage."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath

from edge_update_libs.common.io import iter_files
from edge_update_libs.errors import UploadError
from edge_update_libs.update.schema import UpdateRecord

logger = logging.getLogger(__name__)


def storage_key(account: str, record_id: int, relpath: str | Path) -> str:
    """The storage key of <relpath> in the uploaded repo of record <record_id>.

    Uploaded repos are laid out as `<account>/<record_id>/<relpath>`, the artifact
        serving proxy maps `/<api prefix>/<record_id>/<relpath>` onto this key.
    """
    return str(PurePosixPath(account, str(record_id), PurePosixPath(Path(relpath))))


class Uploader(ABC):
    @abstractmethod
    def upload_file(self, src: Path, key: str) -> None:
        """Upload <src> as <key>.

        Raises:
            UploadError on any failure.
        """

    def upload(self, source_dir: Path, record: UpdateRecord) -> int:
        """Upload every file under <source_dir> for <record>.

        Already uploaded files are not rolled back if any file fails.

        Returns:
            The number of uploaded files.
        """
        if record.id is None:
            raise UploadError(source_dir, ValueError("record is not yet persisted"))

        _count = 0
        for _relpath in iter_files(source_dir):
            self.upload_file(
                source_dir / _relpath, storage_key(record.account, record.id, _relpath)
            )
            _count += 1
        logger.info(f"uploaded {_count} files from {source_dir} for record {record.id}")
        return _count
