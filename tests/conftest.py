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

"""alertsync pytest configuration and fixtures."""

from __future__ import annotations

import copy
import json
import re
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from alertsync.receiver.utils.config import AutoResolve, ReceiverConfig
from alertsync.receiver.utils.models import KV, Alert, Alerts, Data
from alertsync.shared.common import set_verbose_enabled
from alertsync.shared.jira_issues import IssueServiceError
from alertsync.shared.models import STATUS_CATEGORY_DONE, Comment, Issue, Transition
from alertsync.shared.templates import Template

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

_JQL_RE = re.compile(r"^project in\((?P<projects>[^)]*)\) and labels=(?P<label>\".*\") order by resolutiondate desc$")


class FakeJira:
    """In-memory :class:`alertsync.shared.models.IssueService`.

    Keeps issues by key, records every call in ``calls`` and applies the
    ``To Do`` / ``Done`` / ``Won't Do`` workflow transitions.
    """

    TRANSITIONS = [
        Transition(id="11", name="To Do"),
        Transition(id="31", name="Done"),
        Transition(id="41", name="Won't Do"),
    ]

    def __init__(self, now: datetime = NOW) -> None:
        self.issues: dict[str, Issue] = {}
        self.calls: list[tuple[Any, ...]] = []
        self.fail: dict[str, Exception] = {}
        self.now = now
        self._seq = 0

    # -- helpers -----------------------------------------------------------

    def add_issue(self, project: str, label: str, **kwargs: Any) -> Issue:
        self._seq += 1
        kwargs.setdefault("status_category", "new")
        labels = kwargs.pop("labels", [label])
        issue = Issue(key=f"{project}-{self._seq}", id=str(10000 + self._seq), project=project, labels=labels, **kwargs)
        self.issues[issue.key] = issue
        return issue

    def mutating_calls(self) -> list[tuple[Any, ...]]:
        return [c for c in self.calls if c[0] not in {"search", "get_transitions"}]

    def _record(self, *call: Any) -> None:
        self.calls.append(call)
        exc = self.fail.get(call[0])
        if exc is not None:
            raise exc

    # -- IssueService --------------------------------------------------------

    def search(self, jql: str, fields: list[str], max_results: int) -> list[Issue]:
        self._record("search", jql)
        m = _JQL_RE.match(jql)
        assert m is not None, jql
        projects = [p.strip().strip("'") for p in m.group("projects").split(",")]
        label = json.loads(m.group("label"))

        found = [i for i in self.issues.values() if i.project in projects and label in i.labels]
        # Unresolved issues first, then most recently resolved.
        found.sort(key=lambda i: i.resolution_date or datetime.max.replace(tzinfo=timezone.utc), reverse=True)
        return [copy.deepcopy(i) for i in found[:max_results]]

    def create(self, fields: dict[str, Any]) -> Issue:
        self._record("create", fields)
        self._seq += 1
        project = fields["project"]["key"]
        issue = Issue(
            key=f"{project}-{self._seq}",
            id=str(10000 + self._seq),
            project=project,
            summary=fields.get("summary", ""),
            description=fields.get("description", ""),
            priority=(fields.get("priority") or {}).get("name"),
            labels=list(fields.get("labels", [])),
            status_category="new",
        )
        self.issues[issue.key] = issue
        return copy.deepcopy(issue)

    def update(self, key: str, fields: dict[str, Any]) -> None:
        self._record("update", key, fields)
        issue = self.issues[key]
        if "summary" in fields:
            issue.summary = fields["summary"]
        if "description" in fields:
            issue.description = fields["description"]
        if "priority" in fields:
            issue.priority = fields["priority"]["name"]

    def add_comment(self, key: str, body: str) -> Comment:
        self._record("add_comment", key, body)
        comment = Comment(id=str(len(self.issues[key].comments) + 1), body=body)
        self.issues[key].comments.append(comment)
        return comment

    def get_transitions(self, key: str) -> list[Transition]:
        self._record("get_transitions", key)
        return list(self.TRANSITIONS)

    def do_transition(self, key: str, transition_id: str) -> None:
        self._record("do_transition", key, transition_id)
        issue = self.issues[key]
        name = next(t.name for t in self.TRANSITIONS if t.id == transition_id)
        if name == "To Do":
            issue.status_category = "new"
            issue.resolution = None
            issue.resolution_date = None
        else:
            issue.status_category = STATUS_CATEGORY_DONE
            issue.resolution = name
            issue.resolution_date = self.now


def make_alert(status: str = "firing", **labels: str) -> Alert:
    return Alert(
        status=status,
        labels=KV(labels),
        annotations=KV({"summary": f"{labels.get('alertname', 'alert')} is {status}"}),
        generator_url="http://prometheus:9090/graph",
    )


def make_data(*alerts: Alert, receiver: str = "jira-ab", group_labels: dict[str, str] | None = None) -> Data:
    group = KV(group_labels if group_labels is not None else {"alertname": "HighLatency"})
    firing = any(a.status == "firing" for a in alerts)
    return Data(
        receiver=receiver,
        status="firing" if firing else "resolved",
        alerts=Alerts(alerts),
        group_labels=group,
        common_labels=KV(group),
        common_annotations=KV(),
        external_url="http://alertmanager:9093",
        group_key='{}:{alertname="HighLatency"}',
        version="4",
    )


# --- Logging state ---

@pytest.fixture(autouse=True)
def reset_verbose():
    """Verbose logging is process-global; every test starts quiet."""
    set_verbose_enabled(False)
    yield
    set_verbose_enabled(False)


# --- Fixtures ---

@pytest.fixture
def fake_jira():
    return FakeJira()


@pytest.fixture
def tmpl():
    return Template(
        "{% block summary %}[{{ status | toUpper }}] {{ join(' ', group_labels.sorted_values()) }}{% endblock %}"
        "{% block description %}{{ alerts.firing() | length }} firing{% endblock %}"
    )


@pytest.fixture
def receiver_conf():
    return ReceiverConfig(
        name="jira-ab",
        api_url="https://jira.example.com",
        user="bot",
        password="secret",
        project="AB",
        issue_type="Bug",
        summary='{{ template("summary") }}',
        description='{{ template("description") }}',
        reopen_state="To Do",
        reopen_duration=0,
        wont_fix_resolution="Won't Do",
        static_labels=["alertsync"],
        add_group_labels=False,
        update_in_comment=False,
        insecure_skip_verify=False,
    )


@pytest.fixture
def auto_resolve_conf(receiver_conf):
    receiver_conf.auto_resolve = AutoResolve(state="Done")
    return receiver_conf


@pytest.fixture
def retryable_error():
    return IssueServiceError("Jira request Issue.Search returned status 503", status_code=503, retryable=True)


def hours_ago(hours: float) -> datetime:
    return NOW - timedelta(hours=hours)
