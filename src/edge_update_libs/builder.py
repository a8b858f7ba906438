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
"""Build the update repo of an update record.

A build goes through the following stages, any failure aborts the remaining ones:
    1. claim the record, PENDING -> BUILDING, under a build lease.
    2. prepare the working folder `<work_root>/<record id>`.
    3. materialize the update commit into `<workdir>/repo`.
    4. for each old commit, in order, materialize it under `<workdir>/staging/<build hash>`,
        merge it into `<workdir>/repo` and generate the static delta to the update commit.
    5. remove the staging folder.
    6. upload `<workdir>/repo`.
    7. persist the SUCCESS or ERROR state.

The working folder is only removed when the build succeeded, it is kept for
    postmortem otherwise. Failing to remove any folder never fails the build.
"""

from __future__ import annotations

import logging
import shutil
import sys
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Generator, Optional

from edge_update_libs.common import tmp_fname
from edge_update_libs.config import BuilderConfig
from edge_update_libs.errors import (
    BuildError,
    BuildLeaseError,
    CleanupError,
    PersistenceError,
    WorkdirError,
)
from edge_update_libs.repo import STAGING_DIRNAME
from edge_update_libs.repo.fetcher import ArtifactFetcher
from edge_update_libs.repo.merger import DeltaSpec, RepoMerger
from edge_update_libs.repo.ostree import OSTreeCLI
from edge_update_libs.update.db import UpdateRecordDBHelper
from edge_update_libs.update.schema import BuildStage, UpdateRecord, UpdateState
from edge_update_libs.update.submission import UpdateSubmission
from edge_update_libs.upload import Uploader, create_uploader

logger = logging.getLogger(__name__)

UNLIMITED_BUILD_WORKERS = sys.maxsize


@dataclass
class BuildResult:
    record_id: int
    state: UpdateState
    failed_stage: Optional[BuildStage] = None
    error: Optional[BuildError] = None
    cleanup_errors: list[CleanupError] = field(default_factory=list)
    deltas: list[DeltaSpec] = field(default_factory=list)
    uploaded: int = 0


@contextmanager
def _in_stage(stage: BuildStage) -> Generator[None]:
    """Tag any error raised within the block with <stage>."""
    try:
        yield
    except BuildError as e:
        if e.stage is None:
            e.stage = stage
        raise
    except Exception as e:
        raise BuildError(f"unexpected failure: {e!r}", stage=stage) from e


def _format_cause(exc: BaseException) -> str:
    return f"{type(exc).__name__}: {exc}"


class BuildOrchestrator:
    def __init__(
        self,
        *,
        db_helper: UpdateRecordDBHelper,
        fetcher: ArtifactFetcher,
        merger: RepoMerger,
        uploader: Uploader,
        work_root: Path,
    ) -> None:
        self._db_helper = db_helper
        self._fetcher = fetcher
        self._merger = merger
        self._uploader = uploader
        self._work_root = Path(work_root)

    @classmethod
    def from_config(
        cls,
        cfg: BuilderConfig,
        *,
        db_helper: Optional[UpdateRecordDBHelper] = None,
    ) -> BuildOrchestrator:
        repo_tool = OSTreeCLI(cfg.ostree_bin)
        return cls(
            db_helper=db_helper or UpdateRecordDBHelper(cfg.db_path),
            fetcher=ArtifactFetcher(
                repo_tool,
                timeout=cfg.download_timeout,
                chunk_size=cfg.download_chunk_size,
            ),
            merger=RepoMerger(repo_tool),
            uploader=create_uploader(cfg),
            work_root=cfg.work_root,
        )

    @property
    def db_helper(self) -> UpdateRecordDBHelper:
        return self._db_helper

    def _remove_dir(self, _dir: Path, stage: BuildStage, result: BuildResult) -> None:
        try:
            shutil.rmtree(_dir)
        except FileNotFoundError:
            return
        except OSError as e:
            _err = CleanupError(f"failed to remove {_dir}: {e!r}", stage=stage)
            logger.warning(f"record {result.record_id}: {_err}")
            result.cleanup_errors.append(_err)

    def _prepare_workdir(self, record_id: int) -> Path:
        workdir = self._work_root / str(record_id)
        try:
            workdir.mkdir(mode=0o755, parents=True, exist_ok=True)
            _not_empty = any(workdir.iterdir())
        except OSError as e:
            raise WorkdirError(f"failed to prepare {workdir}: {e!r}") from e

        if _not_empty:
            raise WorkdirError(f"{workdir} already exists and is not empty")
        return workdir

    def _run_stages(self, record: UpdateRecord, workdir: Path, result: BuildResult) -> None:
        update_commit = record.update_commit

        with _in_stage(BuildStage.FETCH_UPDATE_COMMIT):
            repo = self._fetcher.materialize(update_commit, workdir)

        if record.old_commits:
            staging = workdir / STAGING_DIRNAME
            for _idx, _old_commit in enumerate(record.old_commits):
                logger.info(
                    f"record {record.id}: merge old commit {_idx} "
                    f"{_old_commit.ref}({_old_commit.build_hash}) ..."
                )
                with _in_stage(BuildStage.FETCH_OLD_COMMIT):
                    _old_repo = self._fetcher.materialize(
                        _old_commit, staging / _old_commit.build_hash
                    )
                with _in_stage(BuildStage.MERGE_AND_DELTA):
                    _delta = self._merger.merge_and_delta(
                        repo, update_commit.ref, _old_repo, _old_commit.ref
                    )
                result.deltas.append(_delta)
            self._remove_dir(staging, BuildStage.CLEANUP_STAGING, result)

        with _in_stage(BuildStage.UPLOAD):
            result.uploaded = self._uploader.upload(repo, record)

    def _finish(self, record: UpdateRecord, lease: str, result: BuildResult) -> None:
        assert record.id is not None
        try:
            self._db_helper.finish_build(
                record.id,
                account=record.account,
                lease=lease,
                state=result.state,
                failed_stage=result.failed_stage.value if result.failed_stage else None,
                error_cause=_format_cause(result.error) if result.error else None,
            )
        except PersistenceError as e:
            e.stage = BuildStage.FINALIZE
            logger.error(
                f"record {record.id}: failed to persist {result.state.value}: {e!r}"
            )
            raise

    def build_repo(self, record: UpdateRecord) -> BuildResult:
        """Build, upload and persist the update repo for <record>.

        Stage failures end the build in the ERROR state and are reported in the
            returned result instead of being raised.

        Raises:
            BuildLeaseError if the record is not PENDING anymore, nothing is done.
            PersistenceError if the claim or the final state cannot be persisted.
            RecordNotFoundError if the record doesn't exist.
        """
        if record.id is None:
            raise ValueError("record must be persisted before building")
        record_id = record.id

        lease = tmp_fname(str(record_id), prefix="build")
        try:
            record = self._db_helper.claim_build(
                record_id, account=record.account, lease=lease
            )
        except (PersistenceError, BuildLeaseError) as e:
            e.stage = BuildStage.CLAIM
            logger.error(f"record {record_id}: failed to claim: {e!r}")
            raise
        logger.info(f"record {record_id}: start building with {lease=}")

        result = BuildResult(record_id=record_id, state=UpdateState.BUILDING)
        workdir: Optional[Path] = None
        try:
            with _in_stage(BuildStage.PREPARE_WORKDIR):
                workdir = self._prepare_workdir(record_id)
            self._run_stages(record, workdir, result)
        except BuildError as e:
            logger.error(
                f"record {record_id}: build failed at {e.stage}: {e!r}, "
                f"workdir is kept at {workdir}",
                exc_info=e,
            )
            result.state = UpdateState.ERROR
            result.failed_stage = e.stage
            result.error = e
        else:
            result.state = UpdateState.SUCCESS
            self._remove_dir(workdir, BuildStage.CLEANUP_WORKDIR, result)
            logger.info(
                f"record {record_id}: build finished, {len(result.deltas)} deltas generated, "
                f"{result.uploaded} files uploaded"
            )

        self._finish(record, lease, result)
        return result


class BuildSupervisor:
    """Run builds in the background, each build is an independent task.

    `submit` returns immediately with a future of the `BuildResult`.

    Builds are not limited in number unless <max_workers> is set: the pool starts
    a new thread for each submission when no idle thread is available.
    """

    def __init__(
        self,
        orchestrator: BuildOrchestrator,
        *,
        max_workers: Optional[int] = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._pool = ThreadPoolExecutor(
            max_workers=max_workers or UNLIMITED_BUILD_WORKERS,
            thread_name_prefix="edge_update_builder",
        )

    def _task_done_cb(self, record_id: int, _fut: Future[BuildResult]) -> None:
        if _exc := _fut.exception():
            logger.error(f"record {record_id}: build task failed: {_exc!r}", exc_info=_exc)
            return
        _res = _fut.result()
        logger.info(f"record {record_id}: build task done with {_res.state.value}")

    def submit(self, record: UpdateRecord) -> Future[BuildResult]:
        if record.id is None:
            raise ValueError("record must be persisted before building")
        record_id = record.id

        _fut = self._pool.submit(self._orchestrator.build_repo, record)
        _fut.add_done_callback(lambda _f: self._task_done_cb(record_id, _f))
        return _fut

    def submit_update(
        self, submission: UpdateSubmission, account: str
    ) -> tuple[UpdateRecord, Future[BuildResult]]:
        """Create a PENDING record for <submission> and start building it.

        The created record is returned right away, the build runs in the background.
        """
        record = self._orchestrator.db_helper.create_record(
            submission.to_record(account)
        )
        return record, self.submit(record)

    def shutdown(self, *, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait)

    def __enter__(self) -> BuildSupervisor:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown(wait=True)
