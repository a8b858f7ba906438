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
"""Errors raised while submitting and building update repositories.

Every error raised from inside the build pipeline is a `BuildError`, tagged
    with the `BuildStage` it was raised at. The build orchestrator persists
    the stage and the cause when a build ends in the ERROR state.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from edge_update_libs.update.schema import BuildStage


class ConfigError(Exception): ...


class SubmissionValidationError(Exception):
    """Malformed update submission, raised before any record is created."""


class RecordNotFoundError(Exception): ...


class BuildError(Exception):
    """Base for all errors that abort a build."""

    def __init__(self, msg: str = "", *, stage: Optional[BuildStage] = None) -> None:
        super().__init__(msg)
        self.stage = stage


class PersistenceError(BuildError): ...


class BuildLeaseError(BuildError):
    """The record cannot be claimed for building."""


class WorkdirError(BuildError): ...


class FetchError(BuildError): ...


class ExtractError(BuildError): ...


class CommitError(BuildError): ...


class RevisionNotFoundError(BuildError): ...


class DeltaGenerationError(BuildError): ...


class CleanupError(BuildError):
    """Failed to remove build leftovers, never fails the build."""


class UploadError(BuildError):
    def __init__(
        self, path: Path, cause: BaseException, *, stage: Optional[BuildStage] = None
    ) -> None:
        super().__init__(f"failed to upload {path}: {cause!r}", stage=stage)
        self.path = path
        self.cause = cause
