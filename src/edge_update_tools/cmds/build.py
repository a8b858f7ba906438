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

import logging
from concurrent.futures import wait
from typing import TYPE_CHECKING

from edge_update_libs.builder import BuildOrchestrator, BuildResult, BuildSupervisor
from edge_update_libs.errors import (
    BuildLeaseError,
    PersistenceError,
    RecordNotFoundError,
)
from edge_update_libs.update.schema import UpdateState
from edge_update_tools._utils import (
    exit_with_err_msg,
    get_config,
    get_db_helper,
    measure_timecost,
)

if TYPE_CHECKING:
    from argparse import ArgumentParser, Namespace, _SubParsersAction

logger = logging.getLogger(__name__)


def build_cmd_args(
    sub_arg_parser: _SubParsersAction[ArgumentParser], *parent_parser: ArgumentParser
) -> None:
    build_arg_parser = sub_arg_parser.add_parser(
        name="build",
        help=(_help_txt := "Build and upload the update repo of a PENDING update."),
        description=_help_txt,
        parents=parent_parser,
    )
    build_arg_parser.add_argument("--account", required=True)
    build_arg_parser.add_argument("--id", type=int, required=True, dest="record_id")
    build_arg_parser.set_defaults(handler=measure_timecost(build_cmd))


def build_pending_cmd_args(
    sub_arg_parser: _SubParsersAction[ArgumentParser], *parent_parser: ArgumentParser
) -> None:
    build_pending_arg_parser = sub_arg_parser.add_parser(
        name="build-pending",
        help=(_help_txt := "Build all the PENDING updates of all accounts in parallel."),
        description=_help_txt,
        parents=parent_parser,
    )
    build_pending_arg_parser.set_defaults(handler=measure_timecost(build_pending_cmd))


def _render_result(_res: BuildResult) -> str:
    if _res.error is None:
        return f"record {_res.record_id}: {_res.state.value}, {_res.uploaded} files uploaded"
    _stage = _res.failed_stage.value if _res.failed_stage else "unknown"
    return f"record {_res.record_id}: {_res.state.value} at {_stage}: {_res.error}"


def build_cmd(args: Namespace) -> None:
    logger.debug(f"calling {build_cmd.__name__} with {args}")
    cfg = get_config(args)
    orchestrator = BuildOrchestrator.from_config(cfg, db_helper=get_db_helper(cfg))

    try:
        record = orchestrator.db_helper.get_record(args.record_id, account=args.account)
        res = orchestrator.build_repo(record)
    except (RecordNotFoundError, BuildLeaseError, PersistenceError) as e:
        exit_with_err_msg(f"{e}")

    print(_render_result(res))
    if res.state != UpdateState.SUCCESS:
        exit_with_err_msg("build failed")


def build_pending_cmd(args: Namespace) -> None:
    logger.debug(f"calling {build_pending_cmd.__name__} with {args}")
    cfg = get_config(args)
    orchestrator = BuildOrchestrator.from_config(cfg, db_helper=get_db_helper(cfg))

    try:
        pending = orchestrator.db_helper.list_pending()
    except PersistenceError as e:
        exit_with_err_msg(f"{e}")
    if not pending:
        print("no PENDING update found")
        return

    with BuildSupervisor(orchestrator, max_workers=cfg.max_build_workers) as supervisor:
        _futs = [supervisor.submit(_record) for _record in pending]
        wait(_futs)

    failed = 0
    for _record, _fut in zip(pending, _futs):
        if _exc := _fut.exception():
            print(f"record {_record.id}: {_exc!r}")
            failed += 1
            continue
        _res = _fut.result()
        print(_render_result(_res))
        if _res.state != UpdateState.SUCCESS:
            failed += 1

    if failed:
        exit_with_err_msg(f"{failed} of {len(pending)} builds failed")
