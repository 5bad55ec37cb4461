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

"""Issue payload construction – JQL lookup query, description truncation,
templated custom fields and the field map for a new issue.
"""

from __future__ import annotations

from typing import Any

from alertsync.shared.common import quote, warn
from alertsync.shared.templates import Template, TemplateRenderError

from .config import ReceiverConfig
from .group_label import group_labels_as_issue_labels
from .models import Data

SEARCH_FIELDS = ["summary", "priority", "status", "resolution", "resolutiondate", "description", "comment"]
SEARCH_MAX_RESULTS = 2


def render(tmpl: Template, what: str, text: str, data: Data) -> str:
    """Render one configured template, naming the field in the error."""
    try:
        return tmpl.execute(text, data)
    except TemplateRenderError as exc:
        raise TemplateRenderError(f"render {what}: {exc}") from exc


def projects_to_search(project: str, other_projects: list[str]) -> list[str]:
    """The target project first, then configured projects an issue may have been moved to."""
    projects = [project]
    for other in other_projects:
        if other not in projects:
            projects.append(other)
    return projects


def build_search_query(projects: list[str], label: str) -> str:
    project_list = ", ".join(f"'{p}'" for p in projects)
    return f"project in({project_list}) and labels={quote(label)} order by resolutiondate desc"


def truncate_description(description: str, limit: int) -> str:
    if len(description) <= limit:
        return description
    warn(f"truncating description from {len(description)} to {limit} characters")
    return description[:limit]


def render_field_value(value: Any, tmpl: Template, data: Data) -> Any:
    """Deep-copy *value*, rendering every string leaf and string mapping key.

    Entries with non-string keys are dropped; other scalars pass through.
    """
    if isinstance(value, str):
        return render(tmpl, "field value", value, data)
    if isinstance(value, (list, tuple)):
        return [render_field_value(v, tmpl, data) for v in value]
    if isinstance(value, dict):
        converted: dict[str, Any] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                continue
            converted[render(tmpl, "field key", key, data)] = render_field_value(item, tmpl, data)
        return converted
    return value


def build_issue_fields(
    conf: ReceiverConfig,
    tmpl: Template,
    data: Data,
    *,
    project: str,
    summary: str,
    description: str,
    priority: str,
    group_label: str,
) -> dict[str, Any]:
    """Build the Jira ``fields`` map for a new issue of this alert group."""
    labels = list(conf.static_labels) + [group_label]
    if conf.add_group_labels:
        labels += group_labels_as_issue_labels(data.group_labels)

    fields: dict[str, Any] = {
        "project": {"key": project},
        "issuetype": {"name": render(tmpl, "issue type", conf.issue_type, data)},
        "summary": summary,
        "description": description,
        "labels": labels,
    }
    if conf.priority:
        fields["priority"] = {"name": priority}
    if conf.components:
        fields["components"] = [
            {"name": render(tmpl, "component", component, data)} for component in conf.components
        ]

    for key, value in conf.fields.items():
        fields[key] = render_field_value(value, tmpl, data)

    return fields
