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

from edge_update_libs.common.io import iter_files


class TestIterFiles:
    def test_iter_files_relative_and_sorted(self, tmp_path: Path):
        (tmp_path / "b").mkdir()
        (tmp_path / "a" / "nested").mkdir(parents=True)
        (tmp_path / "config").write_text("c")
        (tmp_path / "b" / "2").write_text("2")
        (tmp_path / "b" / "1").write_text("1")
        (tmp_path / "a" / "nested" / "x").write_text("x")

        assert list(iter_files(tmp_path)) == [
            Path("config"),
            Path("a/nested/x"),
            Path("b/1"),
            Path("b/2"),
        ]

    def test_iter_files_skips_empty_dirs(self, tmp_path: Path):
        (tmp_path / "empty").mkdir()
        assert list(iter_files(tmp_path)) == []

    def test_iter_files_includes_symlinks(self, tmp_path: Path):
        (tmp_path / "target").write_text("t")
        (tmp_path / "link").symlink_to("target")
        assert set(iter_files(tmp_path)) == {Path("target"), Path("link")}
