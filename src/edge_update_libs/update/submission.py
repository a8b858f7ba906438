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
"""Decode update submissions into new update records."""

from __future__ import annotations

from typing import Any, List, Union

from pydantic import Field, ValidationError, field_validator, model_validator
from typing_extensions import Self

from edge_update_libs.common import AliasEnabledModel, MsgPackedStrList
from edge_update_libs.errors import SubmissionValidationError

from .schema import Commit, MsgPackedCommitList, UpdateRecord, UpdateState


class UpdateSubmission(AliasEnabledModel):
    update_commit: Commit = Field(alias="UpdateCommit")
    old_commits: List[Commit] = Field(default_factory=list, alias="OldCommits")
    inventory_hosts: List[str] = Field(default_factory=list, alias="InventoryHosts")

    @field_validator("old_commits", "inventory_hosts", mode="before")
    @classmethod
    def _null_as_empty(cls, v: Any) -> Any:
        # NOTE: empty lists might be encoded as `null` by the submitter
        return [] if v is None else v

    @model_validator(mode="after")
    def _check_old_commits(self) -> Self:
        # NOTE: each old commit is staged under a folder named by its build hash
        _seen: set[str] = set()
        for _commit in self.old_commits:
            if _commit.build_hash in _seen:
                raise ValueError(
                    f"old commit with build hash {_commit.build_hash} is listed more than once"
                )
            _seen.add(_commit.build_hash)
        return self

    @classmethod
    def parse(cls, _input: Union[str, bytes]) -> Self:
        """Decode a JSON submission document.

        Raises:
            SubmissionValidationError if the document is malformed.
        """
        try:
            return cls.model_validate_json(_input)
        except ValidationError as e:
            raise SubmissionValidationError(f"invalid update submission: {e}") from e

    def to_record(self, account: str) -> UpdateRecord:
        """Create a new PENDING update record owned by <account>."""
        try:
            return UpdateRecord(
                account=account,
                update_commit=self.update_commit,
                old_commits=MsgPackedCommitList(self.old_commits),
                inventory_hosts=MsgPackedStrList(self.inventory_hosts),
                state=UpdateState.PENDING.value,
            )
        except ValidationError as e:
            raise SubmissionValidationError(f"invalid update record: {e}") from e
