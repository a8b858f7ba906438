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

import json

import pytest

from edge_update_libs.errors import SubmissionValidationError
from edge_update_libs.update.schema import UpdateState
from edge_update_libs.update.submission import UpdateSubmission
from tests.conftest import TEST_ACCOUNT, make_commit


def _submission_doc(*old_hashes: str) -> dict:
    return {
        "UpdateCommit": make_commit("new", build_number=2).model_dump(by_alias=True),
        "OldCommits": [
            make_commit(_hash).model_dump(by_alias=True) for _hash in old_hashes
        ],
        "InventoryHosts": ["host-a", "host-b"],
    }


class TestUpdateSubmission:
    def test_parse(self):
        submission = UpdateSubmission.parse(json.dumps(_submission_doc("old0", "old1")))

        assert submission.update_commit.build_hash == "new"
        assert [_c.build_hash for _c in submission.old_commits] == ["old0", "old1"]
        assert submission.inventory_hosts == ["host-a", "host-b"]

    def test_parse_without_old_commits(self):
        doc = _submission_doc()
        doc.pop("OldCommits")
        submission = UpdateSubmission.parse(json.dumps(doc))
        assert submission.old_commits == []

    def test_parse_null_lists_as_empty(self):
        doc = _submission_doc()
        doc["OldCommits"] = None
        doc["InventoryHosts"] = None

        submission = UpdateSubmission.parse(json.dumps(doc))

        assert submission.old_commits == []
        assert submission.inventory_hosts == []
        assert list(submission.to_record(TEST_ACCOUNT).old_commits) == []

    def test_missing_update_commit(self):
        doc = _submission_doc("old0")
        doc.pop("UpdateCommit")
        with pytest.raises(SubmissionValidationError):
            UpdateSubmission.parse(json.dumps(doc))

    def test_malformed_json(self):
        with pytest.raises(SubmissionValidationError):
            UpdateSubmission.parse(b"{not a json")

    def test_duplicated_old_commits(self):
        with pytest.raises(SubmissionValidationError):
            UpdateSubmission.parse(json.dumps(_submission_doc("old0", "old0")))

    def test_to_record(self):
        submission = UpdateSubmission.parse(json.dumps(_submission_doc("old0")))
        record = submission.to_record(TEST_ACCOUNT)

        assert record.account == TEST_ACCOUNT
        assert record.update_state == UpdateState.PENDING
        assert record.update_commit == submission.update_commit
        assert list(record.old_commits) == submission.old_commits

    def test_to_record_with_invalid_account(self):
        submission = UpdateSubmission.parse(json.dumps(_submission_doc()))
        with pytest.raises(SubmissionValidationError):
            submission.to_record("../escape")
