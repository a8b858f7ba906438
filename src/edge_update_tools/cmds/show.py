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
import logging
from typing import TYPE_CHECKING

from edge_update_libs.errors import PersistenceError, RecordNotFoundError
from edge_update_tools._utils import exit_with_err_msg, get_config, get_db_helper

if TYPE_CHECKING:
    from argparse import ArgumentParser, Namespace, _SubParsersAction

logger = logging.getLogger(__name__)


def show_cmd_args(
    sub_arg_parser: _SubParsersAction[ArgumentParser], *parent_parser: ArgumentParser
) -> None:
    show_arg_parser = sub_arg_parser.add_parser(
        name="show",
        help=(_help_txt := "Show one update of the account."),
        description=_help_txt,
        parents=parent_parser,
    )
    show_arg_parser.add_argument("--account", required=True)
    show_arg_parser.add_argument("--id", type=int, required=True, dest="record_id")
    show_arg_parser.set_defaults(handler=show_cmd)


def list_cmd_args(
    sub_arg_parser: _SubParsersAction[ArgumentParser], *parent_parser: ArgumentParser
) -> None:
    list_arg_parser = sub_arg_parser.add_parser(
        name="list",
        help=(_help_txt := "List all the updates of the account."),
        description=_help_txt,
        parents=parent_parser,
    )
    list_arg_parser.add_argument("--account", required=True)
    list_arg_parser.set_defaults(handler=list_cmd)


def show_cmd(args: Namespace) -> None:
    logger.debug(f"calling {show_cmd.__name__} with {args}")
    db_helper = get_db_helper(get_config(args))
    try:
        record = db_helper.get_record(args.record_id, account=args.account)
    except (RecordNotFoundError, PersistenceError) as e:
        exit_with_err_msg(f"{e}")
    print(json.dumps(record.export_view(), indent=2))


def list_cmd(args: Namespace) -> None:
    logger.debug(f"calling {list_cmd.__name__} with {args}")
    db_helper = get_db_helper(get_config(args))
    try:
        records = db_helper.list_records(account=args.account)
    except PersistenceError as e:
        exit_with_err_msg(f"{e}")
    print(json.dumps([_r.export_view() for _r in records], indent=2))
