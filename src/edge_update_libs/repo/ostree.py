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
"""Adapter around the external repository-management tool.

All the repository operations the builder needs go through `RepoTool`, so that
    the `ostree` executable can be replaced without touching the callers.
"""

from __future__ import annotations

import logging
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Sequence

logger = logging.getLogger(__name__)

DEFAULT_OSTREE_BIN = "ostree"


class RepoToolCallFailed(Exception):
    def __init__(
        self, cmd: Sequence[str], returncode: Optional[int], stderr: str = ""
    ) -> None:
        self.cmd = list(cmd)
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(
            f"`{' '.join(self.cmd)}` failed with exit code {returncode}: {stderr}"
        )


class RepoTool(ABC):
    @abstractmethod
    def resolve_revision(self, repo: Path, ref: str) -> str:
        """Resolve <ref> in <repo> to the revision it currently points to."""

    @abstractmethod
    def commit_metadata(self, repo: Path, ref: str, metadata: str) -> None:
        """Commit the `<key>=<value>` string <metadata> onto <ref> in <repo>."""

    @abstractmethod
    def pull_local(self, repo: Path, source_repo: Path, revision: str) -> None:
        """Pull <revision> with all its objects from <source_repo> into <repo>."""

    @abstractmethod
    def generate_delta(self, repo: Path, from_revision: str, to_revision: str) -> None:
        """Generate the static delta from <from_revision> to <to_revision> in <repo>."""


class OSTreeCLI(RepoTool):
    """Implement `RepoTool` by calling the ostree executable.

    Calls block until the ostree process exits, exit code 0 means success.
    """

    def __init__(self, ostree_bin: str = DEFAULT_OSTREE_BIN) -> None:
        self._ostree_bin = ostree_bin

    def _call(self, *args: str) -> str:
        cmd = [self._ostree_bin, *args]
        logger.debug(f"execute: {cmd}")
        try:
            _res = subprocess.run(cmd, capture_output=True, check=False)
        except OSError as e:
            raise RepoToolCallFailed(cmd, None, repr(e)) from e

        if _res.returncode != 0:
            raise RepoToolCallFailed(
                cmd,
                _res.returncode,
                _res.stderr.decode("utf-8", errors="replace").strip(),
            )
        return _res.stdout.decode("utf-8", errors="replace")

    def resolve_revision(self, repo: Path, ref: str) -> str:
        return self._call(f"--repo={repo}", "rev-parse", ref).strip()

    def commit_metadata(self, repo: Path, ref: str, metadata: str) -> None:
        self._call(
            f"--repo={repo}",
            "commit",
            f"--branch={ref}",
            f"--tree=ref={ref}",
            f"--add-metadata-string={metadata}",
        )

    def pull_local(self, repo: Path, source_repo: Path, revision: str) -> None:
        self._call(f"--repo={repo}", "pull-local", str(source_repo), revision)

    def generate_delta(self, repo: Path, from_revision: str, to_revision: str) -> None:
        self._call(
            f"--repo={repo}",
            "static-delta",
            "generate",
            f"--from={from_revision}",
            f"--to={to_revision}",
        )
