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

"""Reconcile a single Alertmanager notification read from a file (or stdin).

Exit codes: ``0`` success, ``75`` retryable failure (EX_TEMPFAIL, rerun
later), ``1`` any other failure.
"""

from __future__ import annotations

import argparse
import sys

from alertsync.shared.common import AlertSyncError, error, vprint
from alertsync.shared.templates import load_template

from .utils.alert_parser import decode_notification_json
from .utils.cli_args import add_common_args, apply_verbosity, options_from_args
from .utils.config import load_config_file
from .utils.issue_sync import issue_service_for, reconcile

EXIT_TEMPFAIL = 75


def read_notification(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    try:
        with open(path, "r", encoding="utf-8") as fh:
            return fh.read()
    except OSError as exc:
        raise SystemExit(f"ERROR: cannot read notification {path}: {exc}") from exc


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Reconcile one Alertmanager notification JSON with Jira")
    p.add_argument(
        "--file",
        "-f",
        default="-",
        help="Notification JSON file as posted by Alertmanager ('-' for stdin, default)",
    )
    p.add_argument(
        "--receiver",
        default=None,
        help="Receiver to use instead of the notification's own 'receiver' field",
    )
    add_common_args(p)
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    apply_verbosity(args)
    options = options_from_args(args)

    try:
        config = load_config_file(args.config)
        tmpl = load_template(config.template)
        data = decode_notification_json(read_notification(args.file))
    except AlertSyncError as exc:
        raise SystemExit(f"ERROR: {exc}") from exc

    receiver = args.receiver or data.receiver
    conf = config.receiver_by_name(receiver)
    if conf is None:
        raise SystemExit(f"ERROR: receiver missing: {receiver}")
    vprint(f"matched receiver {conf.name}")

    try:
        result = reconcile(data, conf, tmpl=tmpl, client=issue_service_for(conf), options=options)
    except AlertSyncError as exc:
        error(str(exc))
        raise SystemExit(EXIT_TEMPFAIL if exc.retryable else 1) from exc

    key = result.issue_key or "-"
    print(f"Result: action={result.action} issue={key} label={result.label}")


if __name__ == "__main__":
    main()
