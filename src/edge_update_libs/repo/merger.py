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
"""Merge an old OSTree commit into the update repo and generate the static delta."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import NamedTuple

from edge_update_libs.errors import DeltaGenerationError, RevisionNotFoundError

from .ostree import RepoTool, RepoToolCallFailed

logger = logging.getLogger(__name__)


class DeltaSpec(NamedTuple):
    from_revision: str
    to_revision: str


class RepoMerger:
    def __init__(self, repo_tool: RepoTool) -> None:
        self._repo_tool = repo_tool

    def _resolve(self, repo: Path, ref: str) -> str:
        try:
            _rev = self._repo_tool.resolve_revision(repo, ref)
        except RepoToolCallFailed as e:
            raise RevisionNotFoundError(f"{ref} not found in {repo}: {e}") from e
        if not _rev:
            raise RevisionNotFoundError(f"{ref} resolved to nothing in {repo}")
        return _rev

    def merge_and_delta(
        self, target_repo: Path, target_ref: str, source_repo: Path, source_ref: str
    ) -> DeltaSpec:
        """Pull <source_ref> from <source_repo> into <target_repo>, then generate
        the static delta from it to <target_ref>.

        Both refs are resolved before <target_repo> is touched.

        Raises:
            RevisionNotFoundError if any of the refs cannot be resolved.
            DeltaGenerationError if the pull or the delta generation failed.
        """
        to_rev = self._resolve(target_repo, target_ref)
        from_rev = self._resolve(source_repo, source_ref)

        try:
            self._repo_tool.pull_local(target_repo, source_repo, from_rev)
        except RepoToolCallFailed as e:
            raise DeltaGenerationError(
                f"failed to pull {from_rev} from {source_repo}: {e}"
            ) from e

        try:
            self._repo_tool.generate_delta(target_repo, from_rev, to_rev)
        except RepoToolCallFailed as e:
            raise DeltaGenerationError(
                f"failed to generate static delta {from_rev} -> {to_rev}: {e}"
            ) from e

        logger.info(f"static delta generated in {target_repo}: {from_rev} -> {to_rev}")
        return DeltaSpec(from_revision=from_rev, to_revision=to_rev)
