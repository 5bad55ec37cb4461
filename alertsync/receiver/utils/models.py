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

"""Alert-group notification models and reconciliation options / results."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import StrEnum
from typing import Any, NamedTuple

ALERT_FIRING = "firing"
ALERT_RESOLVED = "resolved"

# Jira rejects description fields above this size.
DEFAULT_MAX_DESCRIPTION_LENGTH = 32767


class Pair(NamedTuple):
    name: str
    value: str


class Pairs(list):
    """A list of :class:`Pair` with helpers usable from templates."""

    def names(self) -> list[str]:
        return [p.name for p in self]

    def values(self) -> list[str]:
        return [p.value for p in self]


class KV(dict):
    """Label / annotation set (string -> string)."""

    def sorted_pairs(self) -> Pairs:
        return Pairs(Pair(k, self[k]) for k in sorted(self))

    def sorted_names(self) -> list[str]:
        return sorted(self)

    def sorted_values(self) -> list[str]:
        return self.sorted_pairs().values()

    def remove(self, names: Iterable[str]) -> KV:
        """Return a copy without the given keys."""
        drop = set(names)
        return KV({k: v for k, v in self.items() if k not in drop})


@dataclass(frozen=True)
class Alert:
    status: str
    labels: KV = field(default_factory=KV)
    annotations: KV = field(default_factory=KV)
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    generator_url: str = ""
    fingerprint: str = ""


class Alerts(list):
    def firing(self) -> Alerts:
        return Alerts(a for a in self if a.status == ALERT_FIRING)

    def resolved(self) -> Alerts:
        return Alerts(a for a in self if a.status == ALERT_RESOLVED)


@dataclass(frozen=True)
class Data:
    """One webhook delivery for a single alert group."""
    receiver: str = ""
    status: str = ""
    alerts: Alerts = field(default_factory=Alerts)
    group_labels: KV = field(default_factory=KV)
    common_labels: KV = field(default_factory=KV)
    common_annotations: KV = field(default_factory=KV)
    external_url: str = ""
    group_key: str = ""
    truncated_alerts: int = 0
    version: str = ""

    def template_context(self) -> dict[str, Any]:
        """Top-level template variables: one per field (``status``, ``alerts``, ``group_labels``, ...)."""
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class NotifyOptions:
    """Caller policies applied on top of the receiver configuration."""
    hash_jira_label: bool = False
    update_summary: bool = True
    update_description: bool = True
    update_priority: bool = True
    reopen_tickets: bool = True
    max_description_length: int = DEFAULT_MAX_DESCRIPTION_LENGTH
    dry_run: bool = False


class NotifyAction(StrEnum):
    CREATED = "created"
    UPDATED = "updated"
    REOPENED = "reopened"
    RESOLVED = "resolved"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"


@dataclass
class NotifyResult:
    """Outcome of reconciling one notification."""
    action: NotifyAction
    label: str
    issue_key: str | None = None
    changed_fields: list[str] = field(default_factory=list)
