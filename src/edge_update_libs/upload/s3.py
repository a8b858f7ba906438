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
from pathlib import Path
from typing import Any, Optional

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import BotoCoreError, ClientError

from edge_update_libs.errors import UploadError

from .base import Uploader

logger = logging.getLogger(__name__)


class S3Uploader(Uploader):
    def __init__(
        self,
        bucket: str,
        *,
        client: Optional[Any] = None,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
    ) -> None:
        self._bucket = bucket
        if client is None:
            client = boto3.client(
                "s3", region_name=region, endpoint_url=endpoint_url
            )
        self._client = client

    def upload_file(self, src: Path, key: str) -> None:
        try:
            self._client.upload_file(str(src), self._bucket, key)
        except (BotoCoreError, ClientError, S3UploadFailedError, OSError) as e:
            raise UploadError(src, e) from e
        logger.debug(f"uploaded {src} to s3://{self._bucket}/{key}")
