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

"""Ticket-side data models and the issue service contract."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

STATUS_CATEGORY_DONE = "done"


@dataclass
class Comment:
    id: str
    body: str


@dataclass
class Transition:
    id: str
    name: str


@dataclass
class Issue:
    key: str
    id: str = ""
    project: str = ""
    summary: str = ""
    description: str = ""
    priority: str | None = None
    labels: list[str] = field(default_factory=list)
    status_category: str = ""
    resolution: str | None = None
    resolution_date: datetime | None = None
    comments: list[Comment] = field(default_factory=list)

    @property
    def is_done(self) -> bool:
        # The set of Jira status categories is fixed; only "done" matters here.
        return self.status_category == STATUS_CATEGORY_DONE


class IssueService(Protocol):
    """Operations the reconciliation engine needs from a ticketing backend.

    Implementations raise :class:`alertsync.shared.jira_issues.IssueServiceError`
    (or another ``AlertSyncError``) on failure.
    """

    def search(self, jql: str, fields: list[str], max_results: int) -> list[Issue]:
        ...

    def create(self, fields: dict[str, Any]) -> Issue:
        ...

    def update(self, key: str, fields: dict[str, Any]) -> None:
        ...

    def add_comment(self, key: str, body: str) -> Comment:
        ...

    def get_transitions(self, key: str) -> list[Transition]:
        ...

    def do_transition(self, key: str, transition_id: str) -> None:
        ...
