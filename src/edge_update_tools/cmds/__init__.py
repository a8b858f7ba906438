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

from .build import build_cmd_args, build_pending_cmd_args
from .show import list_cmd_args, show_cmd_args
from .submit import submit_cmd_args

__all__ = [
    "build_cmd_args",
    "build_pending_cmd_args",
    "list_cmd_args",
    "show_cmd_args",
    "submit_cmd_args",
]
