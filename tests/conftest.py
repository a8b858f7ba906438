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
"""Shared test fixtures for edge-update-libs tests."""

from __future__ import annotations

import hashlib
import io
import tarfile
from pathlib import Path
from typing import Callable, Optional, Union

import pytest
import requests

from edge_update_libs.repo.fetcher import ArtifactFetcher
from edge_update_libs.repo.ostree import RepoTool, RepoToolCallFailed
from edge_update_libs.update.db import UpdateRecordDBHelper
from edge_update_libs.update.schema import Commit

TEST_ACCOUNT = "acme"
TEST_REF = "rhel/9/x86_64/edge"
TEST_URL_BASE = "https://images.example.com/builds"


def make_commit(
    build_hash: str,
    *,
    ref: str = TEST_REF,
    build_date: str = "20250101",
    build_number: int = 1,
) -> Commit:
    return Commit(
        ref=ref,
        build_hash=build_hash,
        tar_url=f"{TEST_URL_BASE}/{build_hash}.tar",
        build_date=build_date,
        build_number=build_number,
    )


def fake_revision(seed: str) -> str:
    return hashlib.sha256(seed.encode()).hexdigest()


def make_repo_tarball(ref: str, revision: str) -> bytes:
    """Create a tarball that holds a minimal OSTree-like `repo` folder with <ref>."""
    _members = {
        "repo/config": b"[core]\nrepo_version=1\nmode=archive-z2\n",
        f"repo/refs/heads/{ref}": f"{revision}\n".encode(),
        f"repo/objects/{revision[:2]}/{revision[2:]}.commit": revision.encode(),
    }

    _buffer = io.BytesIO()
    with tarfile.open(fileobj=_buffer, mode="w") as tar:
        for _name, _data in _members.items():
            _info = tarfile.TarInfo(_name)
            _info.size = len(_data)
            tar.addfile(_info, io.BytesIO(_data))
    return _buffer.getvalue()


class FakeResponse:
    def __init__(self, url: str, status_code: int, content: bytes = b"") -> None:
        self.url = url
        self.status_code = status_code
        self._content = content

    def __enter__(self):
        return self

    def __exit__(self, *_):
        return False

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error for {self.url}")

    def iter_content(self, chunk_size: int = 1):
        for _offset in range(0, len(self._content), chunk_size):
            yield self._content[_offset : _offset + chunk_size]


class FakeSession:
    """Serve the registered tarballs, 404 for any other URL."""

    def __init__(self) -> None:
        self.served: dict[str, Union[bytes, Exception]] = {}
        self.requested: list[str] = []

    def add(self, url: str, content: Union[bytes, Exception]) -> None:
        self.served[url] = content

    def get(self, url: str, *, stream: bool = False, timeout: Optional[float] = None):
        self.requested.append(url)
        _content = self.served.get(url)
        if isinstance(_content, Exception):
            raise _content
        if _content is None:
            return FakeResponse(url, 404)
        return FakeResponse(url, 200, _content)


class FakeRepoTool(RepoTool):
    """A `RepoTool` working on the on-disk layout of `make_repo_tarball`.

    Refs are resolved from `refs/heads/<ref>`, static deltas are recorded as
        `deltas/<from>-<to>` files.
    """

    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.fail_on: dict[str, RepoToolCallFailed] = {}

    def _check_fail(self, op: str) -> None:
        if _exc := self.fail_on.get(op):
            raise _exc

    def resolve_revision(self, repo: Path, ref: str) -> str:
        self.calls.append(("resolve_revision", repo, ref))
        self._check_fail("resolve_revision")
        _ref_f = repo / "refs" / "heads" / ref
        if not _ref_f.is_file():
            raise RepoToolCallFailed(
                ["ostree", f"--repo={repo}", "rev-parse", ref],
                1,
                f"error: Refspec '{ref}' not found",
            )
        return _ref_f.read_text().strip()

    def commit_metadata(self, repo: Path, ref: str, metadata: str) -> None:
        self.calls.append(("commit_metadata", repo, ref, metadata))
        self._check_fail("commit_metadata")
        _ref_f = repo / "refs" / "heads" / ref
        if not _ref_f.is_file():
            raise RepoToolCallFailed(["ostree", "commit"], 1, f"ref {ref} not found")
        _new_rev = fake_revision(f"{_ref_f.read_text().strip()}:{metadata}")
        _ref_f.write_text(f"{_new_rev}\n")

    def pull_local(self, repo: Path, source_repo: Path, revision: str) -> None:
        self.calls.append(("pull_local", repo, source_repo, revision))
        self._check_fail("pull_local")

    def generate_delta(self, repo: Path, from_revision: str, to_revision: str) -> None:
        self.calls.append(("generate_delta", repo, from_revision, to_revision))
        self._check_fail("generate_delta")
        _deltas = repo / "deltas"
        _deltas.mkdir(exist_ok=True)
        (_deltas / f"{from_revision}-{to_revision}").write_text("delta")

    def ops(self) -> list[str]:
        return [_call[0] for _call in self.calls]


@pytest.fixture
def db_helper(tmp_path: Path) -> UpdateRecordDBHelper:
    _helper = UpdateRecordDBHelper(tmp_path / "edge_update.sqlite3")
    _helper.bootstrap_db()
    return _helper


@pytest.fixture
def fake_repo_tool() -> FakeRepoTool:
    return FakeRepoTool()


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def serve_commit(fake_session: FakeSession) -> Callable[[Commit], str]:
    """Serve the tarball of a commit, return the original revision of its ref."""

    def _serve(commit: Commit) -> str:
        _rev = fake_revision(commit.build_hash)
        fake_session.add(commit.tar_url, make_repo_tarball(commit.ref, _rev))
        return _rev

    return _serve


@pytest.fixture
def fetcher(fake_repo_tool: FakeRepoTool, fake_session: FakeSession) -> ArtifactFetcher:
    return ArtifactFetcher(fake_repo_tool, session=fake_session, chunk_size=64)  # type: ignore[arg-type]
