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

"""Notification decoding – turns an Alertmanager webhook payload (parsed
JSON) into the typed :class:`Data` model.
"""

from __future__ import annotations

import json
import re
from datetime import datetime
from typing import Any

from alertsync.shared.common import AlertSyncError

from .models import KV, Alert, Alerts, Data


class AlertDecodeError(AlertSyncError):
    """The webhook payload does not match the notification model."""


_RFC3339_RE = re.compile(
    r"^(\d{4}-\d{2}-\d{2}[Tt ]\d{2}:\d{2}:\d{2})(?:\.(\d+))?([Zz]|[+-]\d{2}:\d{2})$"
)


def parse_rfc3339(raw: Any) -> datetime | None:
    """Parse an RFC 3339 timestamp; empty values and the zero time yield ``None``.

    Fractional seconds beyond microseconds are dropped.
    """
    if raw is None or raw == "":
        return None
    m = _RFC3339_RE.match(str(raw))
    if not m:
        raise AlertDecodeError(f"invalid timestamp: {raw!r}")

    frac = (m.group(2) or "")[:6].ljust(6, "0")
    offset = m.group(3)
    if offset in {"Z", "z"}:
        offset = "+00:00"
    dt = datetime.fromisoformat(f"{m.group(1)[:10]}T{m.group(1)[11:]}.{frac}{offset}")
    if dt.year == 1:
        return None
    return dt


def _kv(raw: Any, what: str) -> KV:
    if raw is None:
        return KV()
    if not isinstance(raw, dict):
        raise AlertDecodeError(f"{what} must be an object, got {type(raw).__name__}")
    return KV({str(k): "" if v is None else str(v) for k, v in raw.items()})


def _str(raw: Any) -> str:
    return "" if raw is None else str(raw)


def decode_alert(raw: Any) -> Alert:
    if not isinstance(raw, dict):
        raise AlertDecodeError(f"alert must be an object, got {type(raw).__name__}")
    return Alert(
        status=_str(raw.get("status")),
        labels=_kv(raw.get("labels"), "alert labels"),
        annotations=_kv(raw.get("annotations"), "alert annotations"),
        starts_at=parse_rfc3339(raw.get("startsAt")),
        ends_at=parse_rfc3339(raw.get("endsAt")),
        generator_url=_str(raw.get("generatorURL")),
        fingerprint=_str(raw.get("fingerprint")),
    )


def decode_notification(payload: Any) -> Data:
    """Build :class:`Data` from a decoded webhook body."""
    if not isinstance(payload, dict):
        raise AlertDecodeError(f"notification must be an object, got {type(payload).__name__}")

    raw_alerts = payload.get("alerts") or []
    if not isinstance(raw_alerts, list):
        raise AlertDecodeError("alerts must be a list")

    try:
        truncated = int(payload.get("truncatedAlerts") or 0)
    except (TypeError, ValueError) as exc:
        raise AlertDecodeError(f"invalid truncatedAlerts: {payload.get('truncatedAlerts')!r}") from exc

    return Data(
        receiver=_str(payload.get("receiver")),
        status=_str(payload.get("status")),
        alerts=Alerts(decode_alert(a) for a in raw_alerts),
        group_labels=_kv(payload.get("groupLabels"), "groupLabels"),
        common_labels=_kv(payload.get("commonLabels"), "commonLabels"),
        common_annotations=_kv(payload.get("commonAnnotations"), "commonAnnotations"),
        external_url=_str(payload.get("externalURL")),
        group_key=_str(payload.get("groupKey")),
        truncated_alerts=truncated,
        version=_str(payload.get("version")),
    )


def decode_notification_json(text: str | bytes) -> Data:
    try:
        payload = json.loads(text)
    except ValueError as exc:
        raise AlertDecodeError(f"invalid notification JSON: {exc}") from exc
    return decode_notification(payload)
