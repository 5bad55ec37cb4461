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

"""Alert-group to Jira issue reconciliation utilities.

Modules
-------
models          Notification dataclasses (Data, Alert, KV) and NotifyOptions / NotifyResult.
alert_parser    Webhook payload decoding into ``Data``.
group_label     Group identity label (plain ``ALERT{...}`` or hashed ``JIRALERT{...}``).
config          YAML configuration, defaults merge, validation, durations.
issue_builder   JQL query, description truncation, templated issue fields.
issue_sync      Core reconciliation (lookup, field sync, reopen / auto-resolve / create).
cli_args        Command-line flags shared by the entry points.
"""
