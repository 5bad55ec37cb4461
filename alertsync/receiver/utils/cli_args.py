#
# Copyright 2026 ABSA Group Limited
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
#

"""Command-line flags shared by ``alertsync-serve`` and ``alertsync-notify``."""

from __future__ import annotations

import argparse

from alertsync.shared.common import parse_runner_debug, set_verbose_enabled

from .models import DEFAULT_MAX_DESCRIPTION_LENGTH, NotifyOptions


def add_common_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--config",
        default="config/alertsync.yml",
        help="YAML configuration file (default: config/alertsync.yml)",
    )
    p.add_argument(
        "--dry-run",
        action="store_true",
        help="Do not create/edit/comment/transition issues; only search and print intended actions",
    )
    p.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logs (also enabled when RUNNER_DEBUG=1)",
    )
    p.add_argument(
        "--hash-jira-label",
        action="store_true",
        help="Identify groups by a SHA-512 hashed label instead of the plain ALERT{...} label",
    )
    p.add_argument(
        "--no-update-summary",
        dest="update_summary",
        action="store_false",
        help="Leave the summary of existing issues untouched",
    )
    p.add_argument(
        "--no-update-description",
        dest="update_description",
        action="store_false",
        help="Leave the description of existing issues untouched",
    )
    p.add_argument(
        "--no-update-priority",
        dest="update_priority",
        action="store_false",
        help="Leave the priority of existing issues untouched",
    )
    p.add_argument(
        "--no-reopen-tickets",
        dest="reopen_tickets",
        action="store_false",
        help="Never reopen resolved issues; firing groups on resolved issues are left alone",
    )
    p.add_argument(
        "--max-description-length",
        type=int,
        default=DEFAULT_MAX_DESCRIPTION_LENGTH,
        help=f"Truncate rendered descriptions to this many characters (default: {DEFAULT_MAX_DESCRIPTION_LENGTH})",
    )


def apply_verbosity(args: argparse.Namespace) -> None:
    set_verbose_enabled(bool(args.verbose) or parse_runner_debug())


def options_from_args(args: argparse.Namespace) -> NotifyOptions:
    if args.max_description_length <= 0:
        raise SystemExit("ERROR: --max-description-length must be positive")
    return NotifyOptions(
        hash_jira_label=bool(args.hash_jira_label),
        update_summary=bool(args.update_summary),
        update_description=bool(args.update_description),
        update_priority=bool(args.update_priority),
        reopen_tickets=bool(args.reopen_tickets),
        max_description_length=int(args.max_description_length),
        dry_run=bool(args.dry_run),
    )
