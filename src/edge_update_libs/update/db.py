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
"""Persistence of update records with sqlite3."""

from __future__ import annotations

import logging
import sqlite3
import time
from contextlib import closing
from pathlib import Path
from typing import Optional

from simple_sqlite3_orm import (
    CreateIndexParams,
    CreateTableParams,
    ORMBase,
    gen_sql_stmt,
)
from simple_sqlite3_orm.utils import enable_wal_mode, lookup_table

from edge_update_libs.errors import (
    BuildLeaseError,
    PersistenceError,
    RecordNotFoundError,
)

from . import UPDATE_RECORD_TABLE_NAME
from .schema import UpdateRecord, UpdateState

logger = logging.getLogger(__name__)

DB_TIMEOUT = 16  # seconds


class _UpdateRecordTableConfig:
    orm_bootstrap_table_name = UPDATE_RECORD_TABLE_NAME
    orm_bootstrap_create_table_params = CreateTableParams(without_rowid=False)
    orm_bootstrap_indexes_params = [
        CreateIndexParams(index_name="ur_account_idx", index_cols=("account",)),
        CreateIndexParams(index_name="ur_state_idx", index_cols=("state",)),
    ]


class UpdateRecordORM(ORMBase[UpdateRecord], _UpdateRecordTableConfig):
    orm_bootstrap_table_name = UPDATE_RECORD_TABLE_NAME


class UpdateRecordDBHelper:
    """Account-scoped access to the update records.

    A new connection is opened for each operation, so one helper can be
        shared by all the build worker threads.
    """

    # fmt: off
    CLAIM_BUILD_STMT = gen_sql_stmt(
        "UPDATE", UPDATE_RECORD_TABLE_NAME,
        "SET", "state=:new_state, build_lease=:lease, updated_at=:now",
        "WHERE", "id=:id AND account=:account AND state=:expected_state",
    )
    FINISH_BUILD_STMT = gen_sql_stmt(
        "UPDATE", UPDATE_RECORD_TABLE_NAME,
        "SET", "state=:new_state, failed_stage=:failed_stage, error_cause=:error_cause, updated_at=:now",
        "WHERE", "id=:id AND account=:account AND state=:expected_state AND build_lease=:lease",
    )
    # fmt: on

    def __init__(self, db_f: str | Path) -> None:
        self.db_f = db_f

    def connect_db(self, *, enable_wal: bool = False) -> sqlite3.Connection:
        _conn = sqlite3.connect(self.db_f, check_same_thread=False, timeout=DB_TIMEOUT)
        if enable_wal:
            enable_wal_mode(_conn)
        return _conn

    def bootstrap_db(self) -> None:
        """Create the update records table if it is not yet created."""
        try:
            with closing(self.connect_db(enable_wal=True)) as conn:
                if lookup_table(conn, UPDATE_RECORD_TABLE_NAME):
                    return
                orm = UpdateRecordORM(conn)
                orm.orm_bootstrap_db()
                conn.commit()
        except sqlite3.Error as e:
            raise PersistenceError(f"failed to bootstrap {self.db_f}: {e!r}") from e

    def create_record(self, record: UpdateRecord) -> UpdateRecord:
        """Save <record> as a new PENDING record, return it with the assigned id."""
        _now = int(time.time())
        _new_record = record.model_copy(
            update={
                "id": None,
                "state": UpdateState.PENDING.value,
                "failed_stage": None,
                "error_cause": None,
                "build_lease": None,
                "created_at": _now,
                "updated_at": _now,
            }
        )
        try:
            with closing(self.connect_db()) as conn, conn:
                orm = UpdateRecordORM(conn)
                orm.orm_insert_entry(_new_record)
                (_record_id,) = conn.execute("SELECT last_insert_rowid()").fetchone()
        except sqlite3.Error as e:
            raise PersistenceError(f"failed to create update record: {e!r}") from e

        logger.debug(f"created update record {_record_id} for {record.account=}")
        return _new_record.model_copy(update={"id": _record_id})

    def _select_record(
        self, conn: sqlite3.Connection, record_id: int, account: str
    ) -> Optional[UpdateRecord]:
        orm = UpdateRecordORM(conn)
        return orm.orm_select_entry(id=record_id, account=account)

    def get_record(self, record_id: int, *, account: str) -> UpdateRecord:
        """Read the record with <record_id> owned by <account>.

        Raises:
            RecordNotFoundError if no such record is owned by <account>.
            PersistenceError on any database failure.
        """
        try:
            with closing(self.connect_db()) as conn:
                _record = self._select_record(conn, record_id, account)
        except sqlite3.Error as e:
            raise PersistenceError(f"failed to read record {record_id}: {e!r}") from e

        if _record is None:
            raise RecordNotFoundError(f"record {record_id} not found for {account=}")
        return _record

    def list_records(self, *, account: str) -> list[UpdateRecord]:
        try:
            with closing(self.connect_db()) as conn:
                orm = UpdateRecordORM(conn)
                _records = list(orm.orm_select_entries(account=account))
        except sqlite3.Error as e:
            raise PersistenceError(f"failed to list records: {e!r}") from e
        return sorted(_records, key=lambda _r: _r.id or 0)

    def list_pending(self) -> list[UpdateRecord]:
        """List the PENDING records of all accounts, oldest first."""
        try:
            with closing(self.connect_db()) as conn:
                orm = UpdateRecordORM(conn)
                _records = list(
                    orm.orm_select_entries(state=UpdateState.PENDING.value)
                )
        except sqlite3.Error as e:
            raise PersistenceError(f"failed to list pending records: {e!r}") from e
        return sorted(_records, key=lambda _r: _r.id or 0)

    def claim_build(self, record_id: int, *, account: str, lease: str) -> UpdateRecord:
        """Move the record from PENDING to BUILDING, owned by <lease>.

        The state check and the state update happen in one statement, so at most
            one claimer of a record succeeds.

        Raises:
            BuildLeaseError if the record is not PENDING.
            RecordNotFoundError if no such record is owned by <account>.
            PersistenceError on any database failure.
        """
        try:
            with closing(self.connect_db()) as conn:
                with conn:
                    _cur = conn.execute(
                        self.CLAIM_BUILD_STMT,
                        {
                            "new_state": UpdateState.BUILDING.value,
                            "lease": lease,
                            "now": int(time.time()),
                            "id": record_id,
                            "account": account,
                            "expected_state": UpdateState.PENDING.value,
                        },
                    )
                    _claimed = _cur.rowcount == 1
                _record = self._select_record(conn, record_id, account)
        except sqlite3.Error as e:
            raise PersistenceError(f"failed to claim record {record_id}: {e!r}") from e

        if _record is None:
            raise RecordNotFoundError(f"record {record_id} not found for {account=}")
        if not _claimed:
            raise BuildLeaseError(
                f"record {record_id} is in state {_record.state}, cannot be claimed for building"
            )
        return _record

    def finish_build(
        self,
        record_id: int,
        *,
        account: str,
        lease: str,
        state: UpdateState,
        failed_stage: Optional[str] = None,
        error_cause: Optional[str] = None,
    ) -> None:
        """Write the terminal <state> of a BUILDING record owned by <lease>.

        Raises:
            PersistenceError on any database failure, or if the record is not
                BUILDING under <lease> anymore.
        """
        if not state.is_terminal:
            raise ValueError(f"{state} is not a terminal state")

        try:
            with closing(self.connect_db()) as conn, conn:
                _cur = conn.execute(
                    self.FINISH_BUILD_STMT,
                    {
                        "new_state": state.value,
                        "failed_stage": failed_stage,
                        "error_cause": error_cause,
                        "now": int(time.time()),
                        "id": record_id,
                        "account": account,
                        "expected_state": UpdateState.BUILDING.value,
                        "lease": lease,
                    },
                )
                _updated = _cur.rowcount == 1
        except sqlite3.Error as e:
            raise PersistenceError(
                f"failed to save {state.value} for record {record_id}: {e!r}"
            ) from e

        if not _updated:
            raise PersistenceError(
                f"record {record_id} is not building under lease {lease}"
            )
