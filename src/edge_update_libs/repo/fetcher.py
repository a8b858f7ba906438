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
"""Materialize an image build's OSTree repo from its tarball."""

from __future__ import annotations

import logging
import os
import tarfile
from pathlib import Path
from typing import Optional

import requests

from edge_update_libs import version
from edge_update_libs.common.io import DEFAULT_FILE_CHUNK_SIZE
from edge_update_libs.errors import CommitError, ExtractError, FetchError, WorkdirError
from edge_update_libs.update.schema import Commit

from . import REPO_DIRNAME
from .ostree import RepoTool, RepoToolCallFailed

logger = logging.getLogger(__name__)

USER_AGENT = f"edge-update-libs/{version}"


def build_session() -> requests.Session:
    """Session for fetching image build tarballs.

    NOTE: no retry is configured, a failed download fails the build.
    """
    sess = requests.Session()
    sess.headers.update({"User-Agent": USER_AGENT})
    return sess


def _safe_extract_tar(tar_obj: tarfile.TarFile, target_dir: Path) -> None:
    if hasattr(tarfile, "data_filter"):
        # the `data` filter rejects members and link targets outside <target_dir>,
        #   while keeping the in-repo symlinks that OSTree repos might contain.
        tar_obj.extractall(path=target_dir, filter="data")
        return

    base = target_dir.resolve()

    def _is_within_base(_path: Path) -> bool:
        return os.path.commonpath([base, _path.resolve()]) == str(base)

    for member in tar_obj.getmembers():
        member_path = base / member.name
        if not _is_within_base(member_path):
            raise ExtractError(f"unsafe path in archive: {member.name}")

        # symlink target is relative to the link, hardlink target to the archive root
        if member.issym():
            _link_target = member_path.parent / member.linkname
        elif member.islnk():
            _link_target = base / member.linkname
        else:
            continue
        if os.path.isabs(member.linkname) or not _is_within_base(_link_target):
            raise ExtractError(
                f"unsafe link in archive: {member.name} -> {member.linkname}"
            )
    tar_obj.extractall(path=base)


class ArtifactFetcher:
    """Download, extract and version-stamp image build tarballs.

    This class is safe for multi-thread use as long as each call works on
        its own destination folder.
    """

    def __init__(
        self,
        repo_tool: RepoTool,
        *,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
        chunk_size: int = DEFAULT_FILE_CHUNK_SIZE,
    ) -> None:
        self._repo_tool = repo_tool
        self._session = session or build_session()
        self._timeout = timeout
        self._chunk_size = chunk_size

    def _download(self, url: str, save_dst: Path) -> int:
        _size = 0
        try:
            with self._session.get(url, stream=True, timeout=self._timeout) as resp:
                resp.raise_for_status()
                with open(save_dst, "wb") as _dst:
                    for _chunk in resp.iter_content(chunk_size=self._chunk_size):
                        if not _chunk:
                            continue
                        _dst.write(_chunk)
                        _size += len(_chunk)
        except (requests.RequestException, OSError) as e:
            raise FetchError(f"failed to download {url}: {e!r}") from e
        return _size

    def _extract(self, tarball: Path, dest_dir: Path) -> None:
        try:
            with tarfile.open(tarball, mode="r:*") as tar_obj:
                _safe_extract_tar(tar_obj, dest_dir)
        except ExtractError:
            raise
        except (tarfile.TarError, OSError) as e:
            raise ExtractError(f"failed to extract {tarball}: {e!r}") from e

        try:
            tarball.unlink(missing_ok=True)
        except OSError as e:
            raise ExtractError(f"failed to remove {tarball}: {e!r}") from e

    def materialize(self, commit: Commit, dest_dir: Path) -> Path:
        """Materialize <commit> under <dest_dir>, return the path to the OSTree repo.

        <dest_dir> MUST be a fresh folder, it will be created if not exists.

        Raises:
            FetchError, ExtractError, CommitError, WorkdirError.
        """
        try:
            dest_dir.mkdir(mode=0o755, parents=True, exist_ok=True)
        except OSError as e:
            raise WorkdirError(f"failed to prepare {dest_dir}: {e!r}") from e

        tarball = dest_dir / f"{commit.build_hash}.tar"
        logger.info(f"download {commit.tar_url} to {tarball} ...")
        _size = self._download(commit.tar_url, tarball)
        logger.debug(f"downloaded {_size} bytes for {commit.build_hash}")

        self._extract(tarball, dest_dir)

        repo = dest_dir / REPO_DIRNAME
        if not repo.is_dir():
            raise CommitError(f"{commit.build_hash}: OSTree repo not found at {repo}")

        try:
            self._repo_tool.commit_metadata(repo, commit.ref, commit.version_metadata)
        except RepoToolCallFailed as e:
            raise CommitError(
                f"failed to commit {commit.version_metadata} onto {commit.ref}: {e}"
            ) from e

        logger.info(f"materialized {commit.ref}({commit.build_hash}) at {repo}")
        return repo
