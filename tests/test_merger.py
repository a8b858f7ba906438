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

from pathlib import Path

import pytest

from edge_update_libs.errors import DeltaGenerationError, RevisionNotFoundError
from edge_update_libs.repo.merger import DeltaSpec, RepoMerger
from edge_update_libs.repo.ostree import RepoToolCallFailed
from tests.conftest import TEST_REF, FakeRepoTool


def _init_repo(repo: Path, ref: str, revision: str) -> Path:
    _ref_f = repo / "refs" / "heads" / ref
    _ref_f.parent.mkdir(parents=True)
    _ref_f.write_text(f"{revision}\n")
    return repo


class TestRepoMerger:
    @pytest.fixture
    def repos(self, tmp_path: Path) -> tuple[Path, Path]:
        return (
            _init_repo(tmp_path / "repo", TEST_REF, "new-rev"),
            _init_repo(tmp_path / "staging" / "old0" / "repo", TEST_REF, "old-rev"),
        )

    def test_merge_and_delta(self, repos: tuple[Path, Path], fake_repo_tool: FakeRepoTool):
        target, source = repos

        res = RepoMerger(fake_repo_tool).merge_and_delta(target, TEST_REF, source, TEST_REF)

        assert res == DeltaSpec(from_revision="old-rev", to_revision="new-rev")
        assert fake_repo_tool.calls == [
            ("resolve_revision", target, TEST_REF),
            ("resolve_revision", source, TEST_REF),
            ("pull_local", target, source, "old-rev"),
            ("generate_delta", target, "old-rev", "new-rev"),
        ]
        assert (target / "deltas" / "old-rev-new-rev").is_file()

    def test_source_ref_not_found(
        self, repos: tuple[Path, Path], fake_repo_tool: FakeRepoTool
    ):
        target, source = repos

        with pytest.raises(RevisionNotFoundError):
            RepoMerger(fake_repo_tool).merge_and_delta(
                target, TEST_REF, source, "rhel/8/x86_64/edge"
            )
        # nothing is pulled into the target repo
        assert "pull_local" not in fake_repo_tool.ops()

    def test_target_ref_not_found(
        self, repos: tuple[Path, Path], fake_repo_tool: FakeRepoTool
    ):
        target, source = repos

        with pytest.raises(RevisionNotFoundError):
            RepoMerger(fake_repo_tool).merge_and_delta(
                target, "missing", source, TEST_REF
            )
        assert fake_repo_tool.ops() == ["resolve_revision"]

    def test_empty_revision(self, repos: tuple[Path, Path], mocker):
        target, source = repos
        repo_tool = mocker.MagicMock()
        repo_tool.resolve_revision.return_value = ""

        with pytest.raises(RevisionNotFoundError):
            RepoMerger(repo_tool).merge_and_delta(target, TEST_REF, source, TEST_REF)

    @pytest.mark.parametrize("failed_op", ("pull_local", "generate_delta"))
    def test_delta_generation_failed(
        self, repos: tuple[Path, Path], fake_repo_tool: FakeRepoTool, failed_op: str
    ):
        target, source = repos
        fake_repo_tool.fail_on[failed_op] = RepoToolCallFailed(
            ["ostree", failed_op], 1, "error"
        )

        with pytest.raises(DeltaGenerationError):
            RepoMerger(fake_repo_tool).merge_and_delta(
                target, TEST_REF, source, TEST_REF
            )
