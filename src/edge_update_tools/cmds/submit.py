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
from pathlib import Path
from typing import TYPE_CHECKING

from edge_update_libs.errors import PersistenceError, SubmissionValidationError
from edge_update_libs.update.submission import UpdateSubmission
from edge_update_tools._utils import exit_with_err_msg, get_config, get_db_helper

if TYPE_CHECKING:
    from argparse import ArgumentParser, Namespace, _SubParsersAction

logger = logging.getLogger(__name__)


def submit_cmd_args(
    sub_arg_parser: _SubParsersAction[ArgumentParser], *parent_parser: ArgumentParser
) -> None:
    submit_arg_parser = sub_arg_parser.add_parser(
        name="submit",
        help=(_help_txt := "Submit a new update, the update is created as PENDING."),
        description=_help_txt,
        parents=parent_parser,
    )
    submit_arg_parser.add_argument(
        "--account",
        required=True,
        help="The account that owns this update.",
    )
    submit_arg_parser.add_argument(
        "--input",
        required=True,
        help="The JSON update submission document.",
    )
    submit_arg_parser.set_defaults(handler=submit_cmd)


def submit_cmd(args: Namespace) -> None:
    logger.debug(f"calling {submit_cmd.__name__} with {args}")
    _input = Path(args.input)
    if not _input.is_file():
        exit_with_err_msg(f"{_input} not found!")

    cfg = get_config(args)
    try:
        submission = UpdateSubmission.parse(_input.read_bytes())
        record = get_db_helper(cfg).create_record(submission.to_record(args.account))
    except (SubmissionValidationError, PersistenceError) as e:
        exit_with_err_msg(f"{e}")

    print(json.dumps(record.export_view(), indent=2))
