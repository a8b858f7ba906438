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
import sys
import time
from functools import wraps
from typing import TYPE_CHECKING, Callable, NoReturn, TypeVar

from typing_extensions import ParamSpec

from edge_update_libs.config import BuilderConfig, load_config
from edge_update_libs.errors import ConfigError, PersistenceError
from edge_update_libs.update.db import UpdateRecordDBHelper

if TYPE_CHECKING:
    from argparse import Namespace

RT = TypeVar("RT")
P = ParamSpec("P")

LOGGING_FORMAT = (
    "[%(asctime)s][%(levelname)s]-%(name)s:%(funcName)s:%(lineno)d,%(message)s"
)

logger = logging.getLogger(__name__)


def configure_logging(log_level):
    logging.basicConfig(level=logging.CRITICAL, format=LOGGING_FORMAT, force=True)
    _tool_logger = logging.getLogger("edge_update_tools")
    _tool_logger.setLevel(log_level)
    _libs_logger = logging.getLogger("edge_update_libs")
    _libs_logger.setLevel(log_level)


def exit_with_err_msg(err_msg: str, exit_code: int = 1) -> NoReturn:
    print(f"ERR: {err_msg}")
    sys.exit(exit_code)


def measure_timecost(_func: Callable[P, RT]) -> Callable[P, RT]:
    @wraps(_func)
    def _wrapped(*args, **kwargs) -> RT:
        _start = time.perf_counter()
        try:
            return _func(*args, **kwargs)
        finally:
            logger.info(
                f"{_func.__name__} finished in {time.perf_counter() - _start:.2f} seconds"
            )

    return _wrapped


def get_config(args: Namespace) -> BuilderConfig:
    """Load the config, and apply the configured log level unless in debug mode."""
    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        exit_with_err_msg(f"{e}")

    if not args.debug:
        configure_logging(cfg.log_level)
    return cfg


def get_db_helper(cfg: BuilderConfig) -> UpdateRecordDBHelper:
    db_helper = UpdateRecordDBHelper(cfg.db_path)
    try:
        db_helper.bootstrap_db()
    except PersistenceError as e:
        exit_with_err_msg(f"{e}")
    return db_helper
