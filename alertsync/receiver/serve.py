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

"""Alertmanager webhook listener.

Routes:
- ``POST /alert``   reconcile one notification (200 / 400 / 404 / 500 / 503)
- ``GET /healthz``  liveness probe
- ``GET /config``   merged configuration, secrets masked
- ``GET /metrics``  Prometheus exposition
- ``GET /``         index page

Alertmanager redelivers on 5xx; retryable failures are answered with 503.
Deliveries for the same alert group are serialized, different groups run
concurrently.
"""

from __future__ import annotations

import argparse
import os
import threading
from typing import Callable

from flask import Flask, Response, jsonify, render_template_string, request
from prometheus_client import CONTENT_TYPE_LATEST, Counter, generate_latest

from alertsync import __version__
from alertsync.shared.common import AlertSyncError, error, vprint
from alertsync.shared.models import IssueService
from alertsync.shared.templates import Template, load_template

from .utils.alert_parser import AlertDecodeError, decode_notification_json
from .utils.cli_args import add_common_args, apply_verbosity, options_from_args
from .utils.config import Config, ReceiverConfig, load_config_file
from .utils.group_label import to_group_ticket_label
from .utils.issue_sync import issue_service_for, reconcile
from .utils.models import Data, NotifyOptions

UNKNOWN_RECEIVER = "<unknown>"

REQUESTS_TOTAL = Counter(
    "alertsync_requests_total",
    "Requests processed, by receiver and status code.",
    ["receiver", "code"],
)

INDEX_PAGE = """<html>
<head><title>alertsync</title></head>
<body>
  <h1>alertsync {{ version }}</h1>
  <p>Webhook receiver for Prometheus Alertmanager that keeps one Jira issue per alert group.</p>
  <ul>
    <li><a href="/config">Configuration</a></li>
    <li><a href="/metrics">Metrics</a></li>
    <li><a href="/healthz">Health</a></li>
  </ul>
</body>
</html>
"""


class GroupLocks:
    """One lock per alert group, so concurrent deliveries for a group cannot race on lookup + create."""

    def __init__(self) -> None:
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


def _error_response(status: int, exc: Exception, receiver: str, data: Data | None) -> tuple[Response, int]:
    group_labels = dict(data.group_labels) if data is not None else {}
    error(f"error handling request status={status} receiver={receiver} group_labels={group_labels}: {exc}")
    REQUESTS_TOTAL.labels(receiver, str(status)).inc()
    return jsonify({"Error": True, "Status": status, "Message": str(exc)}), status


def create_app(
    config: Config,
    tmpl: Template,
    *,
    options: NotifyOptions | None = None,
    service_factory: Callable[[ReceiverConfig], IssueService] = issue_service_for,
) -> Flask:
    options = options or NotifyOptions()
    locks = GroupLocks()

    app = Flask(__name__)
    app.config["GROUP_LOCKS"] = locks

    @app.route("/alert", methods=["POST"])
    def alert():
        vprint("handling /alert webhook request")
        try:
            data = decode_notification_json(request.get_data())
        except AlertDecodeError as exc:
            return _error_response(400, exc, UNKNOWN_RECEIVER, None)

        conf = config.receiver_by_name(data.receiver)
        if conf is None:
            return _error_response(404, AlertSyncError(f"receiver missing: {data.receiver}"), UNKNOWN_RECEIVER, data)
        vprint(f"matched receiver {conf.name}")

        group_key = f"{conf.name}/{to_group_ticket_label(data.group_labels, options.hash_jira_label)}"
        try:
            client = service_factory(conf)
            with locks.lock_for(group_key):
                result = reconcile(data, conf, tmpl=tmpl, client=client, options=options)
        except AlertSyncError as exc:
            # 503 tells Alertmanager to redeliver.
            return _error_response(503 if exc.retryable else 500, exc, conf.name, data)

        REQUESTS_TOTAL.labels(conf.name, "200").inc()
        return jsonify(
            {
                "action": str(result.action),
                "label": result.label,
                "issue_key": result.issue_key,
                "changed_fields": result.changed_fields,
            }
        ), 200

    @app.route("/healthz", methods=["GET"])
    def healthz():
        return Response("OK", mimetype="text/plain")

    @app.route("/config", methods=["GET"])
    def show_config():
        return Response(config.to_yaml(), mimetype="text/plain")

    @app.route("/metrics", methods=["GET"])
    def metrics():
        return Response(generate_latest(), mimetype=CONTENT_TYPE_LATEST)

    @app.route("/", methods=["GET"])
    def index():
        return render_template_string(INDEX_PAGE, version=__version__)

    return app


def split_listen_address(address: str) -> tuple[str, int]:
    """``":9097"`` -> ``("0.0.0.0", 9097)``; ``"127.0.0.1:8080"`` -> ``("127.0.0.1", 8080)``."""
    host, sep, port = address.rpartition(":")
    if not sep or not port.isdigit():
        raise SystemExit(f"ERROR: invalid listen address {address!r} (expected [host]:port)")
    return host or "0.0.0.0", int(port)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Alertmanager webhook receiver keeping one Jira issue per alert group")
    p.add_argument(
        "--listen-address",
        default=":9097",
        help="The address to listen on for HTTP requests (default: :9097; $PORT overrides the port)",
    )
    add_common_args(p)
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    apply_verbosity(args)
    options = options_from_args(args)

    print(f"Starting alertsync {__version__}")
    try:
        config = load_config_file(args.config)
        tmpl = load_template(config.template)
    except AlertSyncError as exc:
        raise SystemExit(f"ERROR: {exc}") from exc

    listen_address = args.listen_address
    if os.getenv("PORT"):
        listen_address = ":" + os.environ["PORT"]
    host, port = split_listen_address(listen_address)

    app = create_app(config, tmpl, options=options)
    print(f"Listening on {host}:{port}")
    app.run(host=host, port=port, threaded=True)


if __name__ == "__main__":
    main()
