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

from typing import TYPE_CHECKING

from .base import Uploader, storage_key
from .local import FileUploader
from .s3 import S3Uploader

if TYPE_CHECKING:
    from edge_update_libs.config import BuilderConfig

__all__ = ["Uploader", "FileUploader", "S3Uploader", "storage_key", "create_uploader"]


def create_uploader(cfg: BuilderConfig) -> Uploader:
    """Upload to S3 when a bucket is configured, otherwise to the local repo storage."""
    if cfg.bucket_name:
        return S3Uploader(
            cfg.bucket_name, region=cfg.s3_region, endpoint_url=cfg.s3_endpoint_url
        )
    return FileUploader(cfg.repo_storage_path)
