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

from enum import Enum
from typing import Any, List, Optional

from pydantic import (
    BeforeValidator,
    ConfigDict,
    Field,
    PlainSerializer,
    field_validator,
)
from simple_sqlite3_orm import ConstrainRepr, TableSpec, TypeAffinityRepr
from typing_extensions import Annotated, Self

from edge_update_libs.common import (
    AliasEnabledModel,
    MsgPackedStrList,
    PydanticFromBytesSchema,
    is_safe_path_segment,
)
from edge_update_libs.common.msgpack_utils import pack_obj, unpack_dict, unpack_list

ALLOWED_TARBALL_URL_SCHEMES = ("http://", "https://")


class UpdateState(str, Enum):
    PENDING = "PENDING"
    BUILDING = "BUILDING"
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"

    @property
    def is_terminal(self) -> bool:
        return self in (UpdateState.SUCCESS, UpdateState.ERROR)


class BuildStage(str, Enum):
    CLAIM = "claim"
    PREPARE_WORKDIR = "prepare_workdir"
    FETCH_UPDATE_COMMIT = "fetch_update_commit"
    FETCH_OLD_COMMIT = "fetch_old_commit"
    MERGE_AND_DELTA = "merge_and_delta"
    CLEANUP_STAGING = "cleanup_staging"
    UPLOAD = "upload"
    CLEANUP_WORKDIR = "cleanup_workdir"
    FINALIZE = "finalize"


class Commit(AliasEnabledModel):
    """An OSTree commit built by the image builder.

    Field aliases follow the naming of the submission documents.
    """

    model_config = ConfigDict(frozen=True)

    ref: str = Field(alias="OSTreeRef", min_length=1)
    build_hash: str = Field(alias="ImageBuildHash")
    tar_url: str = Field(alias="ImageBuildTarURL")
    build_date: str = Field(alias="BuildDate", min_length=1)
    build_number: int = Field(alias="BuildNumber", ge=0)

    @field_validator("build_hash")
    @classmethod
    def _check_build_hash(cls, v: str) -> str:
        # NOTE: build_hash names the staging folder and the downloaded tarball
        if not is_safe_path_segment(v):
            raise ValueError(f"invalid build hash: {v!r}")
        return v

    @field_validator("tar_url")
    @classmethod
    def _check_tar_url(cls, v: str) -> str:
        if not v.startswith(ALLOWED_TARBALL_URL_SCHEMES):
            raise ValueError(f"tarball must be retrieved via HTTP(S), get {v!r}")
        return v

    @property
    def version_metadata(self) -> str:
        return f"version={self.build_date}.{self.build_number}"


def _unpack_commit(data: Any) -> Any:
    if isinstance(data, bytes):
        try:
            return unpack_dict(data)
        except Exception as e:
            raise ValueError(f"failed to unpack: {e!r}") from e
    return data


def _pack_commit(commit: Commit) -> bytes:
    return pack_obj(commit.model_dump())


MsgPackedCommit = Annotated[
    Commit,
    BeforeValidator(_unpack_commit),
    PlainSerializer(_pack_commit, return_type=bytes),
]


class MsgPackedCommitList(List[Commit], PydanticFromBytesSchema):
    @classmethod
    def bytes_schema_validator(cls, _in: bytes) -> Self:
        try:
            return cls(Commit.model_validate(_raw) for _raw in unpack_list(_in))
        except Exception as e:
            raise ValueError(f"failed to unpack: {e!r}") from e

    def bytes_schema_serializer(self) -> bytes:
        return pack_obj([_commit.model_dump() for _commit in self])


class UpdateRecord(TableSpec):
    """The combination of an OSTree commit and the inventory hosts to deploy it to.

    The commits currently deployed onto those hosts(`old_commits`) are merged
        with the `update_commit` into a new OSTree repo, with static deltas
        generated from each of them to the `update_commit`.
    """

    id: Annotated[
        Optional[int], TypeAffinityRepr(int), ConstrainRepr("PRIMARY KEY")
    ] = None
    account: Annotated[str, ConstrainRepr("NOT NULL")]

    update_commit: Annotated[
        MsgPackedCommit, TypeAffinityRepr(bytes), ConstrainRepr("NOT NULL")
    ]
    old_commits: Annotated[
        MsgPackedCommitList, TypeAffinityRepr(bytes), ConstrainRepr("NOT NULL")
    ] = Field(default_factory=MsgPackedCommitList)
    inventory_hosts: Annotated[
        MsgPackedStrList, TypeAffinityRepr(bytes), ConstrainRepr("NOT NULL")
    ] = Field(default_factory=MsgPackedStrList)

    state: Annotated[str, ConstrainRepr("NOT NULL")] = UpdateState.PENDING.value
    failed_stage: Optional[str] = None
    error_cause: Optional[str] = None
    build_lease: Optional[str] = None

    created_at: Annotated[int, ConstrainRepr("NOT NULL")] = 0
    updated_at: Annotated[int, ConstrainRepr("NOT NULL")] = 0

    @field_validator("account")
    @classmethod
    def _check_account(cls, v: str) -> str:
        # NOTE: account is the top-level folder of the uploaded repo
        if not is_safe_path_segment(v):
            raise ValueError(f"invalid account: {v!r}")
        return v

    @field_validator("state")
    @classmethod
    def _check_state(cls, v: str) -> str:
        return UpdateState(v).value

    @property
    def update_state(self) -> UpdateState:
        return UpdateState(self.state)

    def export_view(self) -> dict[str, Any]:
        """Export this record as a JSON-compatible dict."""
        return {
            "id": self.id,
            "account": self.account,
            "UpdateCommit": self.update_commit.model_dump(by_alias=True),
            "OldCommits": [_c.model_dump(by_alias=True) for _c in self.old_commits],
            "InventoryHosts": list(self.inventory_hosts),
            "State": self.state,
            "FailedStage": self.failed_stage,
            "ErrorCause": self.error_cause,
            "CreatedAt": self.created_at,
            "UpdatedAt": self.updated_at,
        }
