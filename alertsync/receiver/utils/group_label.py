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

"""Group identity – the label that ties an alert group to its Jira issue.

Plain mode yields ``ALERT{k1="v1",k2="v2"}``. Hashed mode yields
``JIRALERT{<sha512 hex>}`` and stays within Jira's 255-character label
limit however many group labels there are. A receiver must keep using the
same mode, otherwise its existing issues can no longer be found.
"""

from __future__ import annotations

from collections.abc import Mapping

from alertsync.shared.common import quote, sha512_hex

# Cap on each group label value copied onto a new issue.
GROUP_LABEL_VALUE_LIMIT = 200


def to_group_ticket_label(group_labels: Mapping[str, str], hashed: bool) -> str:
    pairs = sorted(group_labels.items())

    if hashed:
        digest = sha512_hex("".join(f"{name}={quote(value)}," for name, value in pairs))
        return f"JIRALERT{{{digest}}}"

    body = ",".join(f"{name}={quote(value)}" for name, value in pairs)
    return f"ALERT{{{body}}}".replace(" ", "")


def group_labels_as_issue_labels(group_labels: Mapping[str, str]) -> list[str]:
    """Render every group label as ``name="value"``, values capped at 200 characters."""
    return [
        f"{name}={quote(value[:GROUP_LABEL_VALUE_LIMIT])}"
        for name, value in sorted(group_labels.items())
    ]
