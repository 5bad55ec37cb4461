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

"""Core reconciliation – finds the issue belonging to an alert group and
creates / updates / reopens / auto-resolves it.

The lifecycle of one group's issue lineage, as seen by :func:`reconcile`:

- no matching issue: create one while any alert is firing;
- open issue: keep summary, description and priority in sync;
- resolved within ``reopen_duration`` (or duration ``0``): reopen on firing,
  unless resolved with ``wont_fix_resolution``;
- resolved longer ago: ignored, a fresh issue is created.

Every mutation is guarded by a "does it already match?" check, so a
redelivered notification is a no-op. Nothing is rolled back when a later
call fails.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from alertsync.shared.common import AlertSyncError, is_verbose, utc_now, vprint, warn
from alertsync.shared.jira_issues import IssueServiceCache, JiraIssueService
from alertsync.shared.models import Issue, IssueService
from alertsync.shared.templates import Template

from .config import ReceiverConfig
from .group_label import to_group_ticket_label
from .issue_builder import (
    SEARCH_FIELDS,
    SEARCH_MAX_RESULTS,
    build_issue_fields,
    build_search_query,
    projects_to_search,
    render,
    truncate_description,
)
from .models import Data, NotifyAction, NotifyOptions, NotifyResult


class TransitionNotFoundError(AlertSyncError):
    """The requested workflow state is not reachable from the issue's current status."""

    def __init__(self, state: str, issue_key: str) -> None:
        super().__init__(f"Jira state {state!r} does not exist or no transition possible for {issue_key}")
        self.state = state
        self.issue_key = issue_key


_SERVICE_CACHE = IssueServiceCache()


def issue_service_for(conf: ReceiverConfig, cache: IssueServiceCache | None = None) -> JiraIssueService:
    """Return the (shared) Jira client for *conf*'s API endpoint and credentials."""
    return (cache or _SERVICE_CACHE).get(conf.api_url, **conf.client_options())


@dataclass
class NotifyContext:
    """Per-notification state passed to the handlers."""
    data: Data
    conf: ReceiverConfig
    tmpl: Template
    client: IssueService
    options: NotifyOptions
    group_label: str
    now: datetime


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------

def resolved_too_long_ago(issue: Issue, reopen_duration_ms: int, now: datetime) -> bool:
    if issue.resolution_date is None or reopen_duration_ms == 0:
        return False
    return issue.resolution_date + timedelta(milliseconds=reopen_duration_ms) < now


def find_issue_to_reuse(ctx: NotifyContext, project: str) -> Issue | None:
    """Return the most recently resolved issue carrying the group label, if it may still be reused."""
    query = build_search_query(projects_to_search(project, ctx.conf.other_projects), ctx.group_label)
    vprint(f"search query={query}")

    issues = ctx.client.search(query, SEARCH_FIELDS, SEARCH_MAX_RESULTS)
    if not issues:
        vprint(f"no results for query={query}")
        return None

    issue = issues[0]
    if len(issues) > 1:
        warn(
            f"more than one issue matched label {ctx.group_label}, picking most recently resolved "
            f"{issue.key} (matched: {', '.join(i.key for i in issues)})"
        )

    if resolved_too_long_ago(issue, ctx.conf.reopen_duration or 0, ctx.now):
        vprint(
            f"existing resolved issue {issue.key} is too old to reopen, skipping "
            f"(resolved={issue.resolution_date.isoformat()}, reopen_duration_ms={ctx.conf.reopen_duration})"
        )
        return None

    vprint(f"found issue {issue.key} for label {ctx.group_label}")
    return issue


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

def _update_fields(ctx: NotifyContext, issue: Issue, what: str, fields: dict) -> None:
    if ctx.options.dry_run:
        print(f"DRY-RUN: would update issue {issue.key} {what}")
        return
    vprint(f"updating issue {issue.key} with new {what}")
    ctx.client.update(issue.key, fields)
    print(f"Updated issue {issue.key} {what}")


def _add_comment(ctx: NotifyContext, issue: Issue, body: str) -> None:
    if ctx.options.dry_run:
        print(f"DRY-RUN: would comment on issue {issue.key}")
        return
    comment = ctx.client.add_comment(issue.key, body)
    vprint(f"added comment {comment.id} to issue {issue.key}")


def do_transition(ctx: NotifyContext, issue_key: str, state: str) -> None:
    """Move the issue into *state* via the transition of the same name."""
    for transition in ctx.client.get_transitions(issue_key):
        if transition.name != state:
            continue
        if ctx.options.dry_run:
            print(f"DRY-RUN: would transition issue {issue_key} to {state!r} (id={transition.id})")
            return
        vprint(f"transition {state!r} issue {issue_key} transition_id={transition.id}")
        ctx.client.do_transition(issue_key, transition.id)
        return
    raise TransitionNotFoundError(state, issue_key)


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

def _sync_fields(
    ctx: NotifyContext,
    issue: Issue,
    *,
    summary: str,
    description: str,
    priority: str,
) -> list[str]:
    changed: list[str] = []

    if ctx.options.update_summary and issue.summary != summary:
        _update_fields(ctx, issue, "summary", {"summary": summary})
        changed.append("summary")

    if ctx.conf.update_in_comment:
        # Repeated deliveries (repeat_interval) would otherwise stack identical comments.
        if issue.comments and issue.comments[-1].body == description:
            vprint(f"not adding new comment identical to last on issue {issue.key}")
        elif not issue.comments and issue.description == description:
            vprint(f"not adding comment identical to description on issue {issue.key}")
        else:
            _add_comment(ctx, issue, description)
            changed.append("comment")

    # Must run after the comment check, which compares against the old description.
    if ctx.options.update_description and issue.description != description:
        _update_fields(ctx, issue, "description", {"description": description})
        changed.append("description")

    if ctx.options.update_priority and issue.priority is not None and priority and issue.priority != priority:
        _update_fields(ctx, issue, f"priority {priority!r}", {"priority": {"name": priority}})
        changed.append("priority")

    return changed


def _handle_existing_issue(
    ctx: NotifyContext,
    issue: Issue,
    *,
    summary: str,
    description: str,
    priority: str,
) -> NotifyResult:
    changed = _sync_fields(ctx, issue, summary=summary, description=description, priority=priority)
    result = NotifyResult(
        action=NotifyAction.UPDATED if changed else NotifyAction.UNCHANGED,
        label=ctx.group_label,
        issue_key=issue.key,
        changed_fields=changed,
    )

    if not ctx.data.alerts.firing():
        if ctx.conf.auto_resolve is None:
            vprint(f"no firing alert; fields checked, nothing else to do for issue {issue.key}")
            return result
        if issue.is_done:
            vprint(f"no firing alert; issue {issue.key} already resolved")
            return result
        vprint(f"no firing alert; resolving issue {issue.key} label={ctx.group_label}")
        do_transition(ctx, issue.key, ctx.conf.auto_resolve.state)
        print(f"Resolved issue {issue.key} ({ctx.conf.auto_resolve.state})")
        result.action = NotifyAction.RESOLVED
        return result

    if not issue.is_done:
        vprint(f"issue {issue.key} is unresolved, all is done")
        return result

    if not ctx.options.reopen_tickets:
        vprint(f"issue {issue.key} is resolved and reopening is disabled")
        return result

    if ctx.conf.wont_fix_resolution and issue.resolution == ctx.conf.wont_fix_resolution:
        print(f"Issue {issue.key} was resolved as {issue.resolution!r}, not reopening")
        return result

    print(f"Issue {issue.key} was recently resolved, reopening ({ctx.conf.reopen_state})")
    do_transition(ctx, issue.key, ctx.conf.reopen_state)
    result.action = NotifyAction.REOPENED
    return result


def _handle_new_issue(
    ctx: NotifyContext,
    *,
    project: str,
    summary: str,
    description: str,
    priority: str,
) -> NotifyResult:
    if not ctx.data.alerts.firing():
        vprint(f"no firing alert; nothing to do for label {ctx.group_label}")
        return NotifyResult(action=NotifyAction.SKIPPED, label=ctx.group_label)

    vprint(f"no recent matching issue found, creating new issue for label {ctx.group_label}")
    fields = build_issue_fields(
        ctx.conf,
        ctx.tmpl,
        ctx.data,
        project=project,
        summary=summary,
        description=description,
        priority=priority,
        group_label=ctx.group_label,
    )

    if ctx.options.dry_run:
        print(f"DRY-RUN: create issue project={project} summary={summary!r} labels={fields['labels']}")
        if is_verbose():
            print("DRY-RUN: fields_preview_begin")
            print(fields)
            print("DRY-RUN: fields_preview_end")
        return NotifyResult(action=NotifyAction.CREATED, label=ctx.group_label)

    created = ctx.client.create(fields)
    print(f"Created issue {created.key} in project {project} for label {ctx.group_label}")
    return NotifyResult(action=NotifyAction.CREATED, label=ctx.group_label, issue_key=created.key)


def reconcile(
    data: Data,
    conf: ReceiverConfig,
    *,
    tmpl: Template,
    client: IssueService,
    options: NotifyOptions | None = None,
    now: Callable[[], datetime] | None = None,
) -> NotifyResult:
    """Bring the Jira issue of *data*'s alert group in line with the notification.

    Raises an :class:`AlertSyncError`; its ``retryable`` attribute tells
    whether the notification should be redelivered.
    """
    options = options or NotifyOptions()

    project = render(tmpl, "project", conf.project, data)
    ctx = NotifyContext(
        data=data,
        conf=conf,
        tmpl=tmpl,
        client=client,
        options=options,
        group_label=to_group_ticket_label(data.group_labels, options.hash_jira_label),
        now=(now or utc_now)(),
    )

    issue = find_issue_to_reuse(ctx, project)

    # Always render so the summary tracks the current group state (e.g. firing count).
    summary = render(tmpl, "summary", conf.summary, data)
    priority = render(tmpl, "priority", conf.priority, data)
    description = truncate_description(
        render(tmpl, "description", conf.description, data),
        options.max_description_length,
    )

    if issue is not None:
        return _handle_existing_issue(ctx, issue, summary=summary, description=description, priority=priority)

    return _handle_new_issue(ctx, project=project, summary=summary, description=description, priority=priority)
