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

"""alertsync configuration tests."""

import os
import textwrap

import pytest
import yaml

from alertsync.receiver.utils.config import (
    SECRET_MASK,
    ConfigError,
    format_duration,
    load_config,
    load_config_file,
    parse_duration,
    substitute_env_vars,
)

BASE = """
defaults:
  api_url: https://jira.example.com
  user: bot
  password: hunter2
  issue_type: Bug
  priority: Medium
  summary: '{{ template("jira_summary") }}'
  description: '{{ template("jira_description") }}'
  reopen_state: To Do
  reopen_duration: 1d
  wont_fix_resolution: Won't Fix
  static_labels: [default]
  other_projects: [OPS]
  fields:
    customfield_1: default
    customfield_2: default
receivers:
  - name: jira-ab
    project: AB
    static_labels: [own]
    fields:
      customfield_1: own
template: alertsync.tmpl
"""


def load(text):
    return load_config(textwrap.dedent(text))


class TestDurations:

    @pytest.mark.parametrize(
        "raw,expected",
        [("0h", 0), ("30s", 30_000), ("15m", 900_000), ("2h", 7_200_000), ("1d", 86_400_000), ("1w", 604_800_000), ("250ms", 250)],
    )
    def test_parse(self, raw, expected):
        assert parse_duration(raw) == expected

    @pytest.mark.parametrize("raw", ["", "1", "h", "1.5h", "-1h", "1h30m", 5])
    def test_parse_invalid(self, raw):
        with pytest.raises(ConfigError):
            parse_duration(raw)

    def test_format_picks_coarsest_unit(self):
        assert format_duration(0) == "0s"
        assert format_duration(86_400_000) == "1d"
        assert format_duration(90_000) == "90s"
        assert format_duration(1_500) == "1500ms"


class TestDefaultsMerge:

    def test_receiver_inherits_defaults(self):
        cfg = load(BASE)
        rc = cfg.receiver_by_name("jira-ab")

        assert rc.api_url == "https://jira.example.com"
        assert rc.user == "bot"
        assert rc.password == "hunter2"
        assert rc.issue_type == "Bug"
        assert rc.priority == "Medium"
        assert rc.reopen_state == "To Do"
        assert rc.reopen_duration == 86_400_000
        assert rc.wont_fix_resolution == "Won't Fix"
        assert rc.other_projects == ["OPS"]
        assert rc.add_group_labels is False
        assert rc.update_in_comment is False
        assert rc.insecure_skip_verify is False
        assert rc.auto_resolve is None

    def test_static_labels_are_concatenated(self):
        rc = load(BASE).receiver_by_name("jira-ab")
        assert rc.static_labels == ["own", "default"]

    def test_fields_merge_receiver_wins(self):
        rc = load(BASE).receiver_by_name("jira-ab")
        assert rc.fields == {"customfield_1": "own", "customfield_2": "default"}

    def test_receiver_overrides(self):
        text = BASE.replace(
            "    project: AB\n",
            "    project: AB\n    issue_type: Task\n    reopen_duration: 0h\n    update_in_comment: true\n",
        )
        rc = load(text).receiver_by_name("jira-ab")
        assert rc.issue_type == "Task"
        assert rc.reopen_duration == 0
        assert rc.update_in_comment is True

    def test_auto_resolve_from_defaults(self):
        text = BASE.replace("  reopen_state: To Do\n", "  reopen_state: To Do\n  auto_resolve:\n    state: Done\n")
        rc = load(text).receiver_by_name("jira-ab")
        assert rc.auto_resolve.state == "Done"

    def test_token_from_defaults(self):
        text = BASE.replace("  user: bot\n  password: hunter2\n", "  personal_access_token: tok\n")
        rc = load(text).receiver_by_name("jira-ab")
        assert rc.personal_access_token == "tok"
        assert rc.client_options() == {"token": "tok", "verify": True, "cert": None}

    def test_receiver_basic_auth_overrides_default_token(self):
        text = BASE.replace("  user: bot\n  password: hunter2\n", "  personal_access_token: tok\n").replace(
            "    project: AB\n", "    project: AB\n    user: me\n    password: pw\n"
        )
        rc = load(text).receiver_by_name("jira-ab")
        assert rc.personal_access_token == ""
        assert rc.client_options()["user"] == "me"

    def test_tls_options(self):
        text = BASE.replace(
            "    project: AB\n",
            "    project: AB\n    ca_file: /etc/ca.pem\n    cert_file: /etc/c.pem\n    key_file: /etc/k.pem\n",
        )
        opts = load(text).receiver_by_name("jira-ab").client_options()
        assert opts["verify"] == "/etc/ca.pem"
        assert opts["cert"] == ("/etc/c.pem", "/etc/k.pem")


class TestValidation:

    @pytest.mark.parametrize(
        "old,new,message",
        [
            ("  reopen_state: To Do\n", "", "missing reopen_state"),
            ("  reopen_duration: 1d\n", "", "missing reopen_duration"),
            ("  issue_type: Bug\n", "", "missing issue_type"),
            ("    project: AB\n", "", "missing project"),
            ("  api_url: https://jira.example.com\n", "", "missing api_url"),
            ("  api_url: https://jira.example.com\n", "  api_url: jira.example.com\n", "invalid api_url"),
            ("  user: bot\n  password: hunter2\n", "", "missing authentication"),
            ("  password: hunter2\n", "  password: hunter2\n  personal_access_token: tok\n", "mutually exclusive"),
            ("template: alertsync.tmpl\n", "", "missing template"),
            ("  - name: jira-ab\n", "  - project: XX\n    name: ''\n  - name: jira-ab\n", "missing name"),
            ("    project: AB\n", "    project: AB\n    cert_file: /c.pem\n", "without client key file"),
            ("    project: AB\n", "    project: AB\n    auto_resolve:\n      state: ''\n", "empty 'state'"),
            ("    project: AB\n", "    project: AB\n    colour: red\n", "unknown fields"),
            ("template: alertsync.tmpl\n", "template: alertsync.tmpl\nextra: 1\n", "unknown fields in config"),
        ],
    )
    def test_rejected(self, old, new, message):
        assert old in BASE
        with pytest.raises(ConfigError, match=message):
            load(BASE.replace(old, new))

    def test_duplicate_receiver(self):
        text = BASE.replace("template:", "  - name: jira-ab\n    project: XY\ntemplate:")
        with pytest.raises(ConfigError, match="duplicate receiver name"):
            load(text)

    def test_no_receivers(self):
        with pytest.raises(ConfigError, match="no receivers defined"):
            load("template: x.tmpl\nreceivers: []\n")

    def test_invalid_yaml(self):
        with pytest.raises(ConfigError, match="invalid YAML"):
            load("receivers: [\n")


class TestEnvAndFiles:

    def test_substitute_env_vars(self, monkeypatch):
        monkeypatch.setenv("JIRA_PASSWORD", "s3cret")
        assert substitute_env_vars("password: $(JIRA_PASSWORD)") == "password: s3cret"

    def test_missing_env_var(self, monkeypatch):
        monkeypatch.delenv("ALERTSYNC_UNSET_VAR", raising=False)
        with pytest.raises(ConfigError, match="ALERTSYNC_UNSET_VAR"):
            substitute_env_vars("password: $(ALERTSYNC_UNSET_VAR)")

    def test_load_file_resolves_template_path(self, tmp_path, monkeypatch):
        monkeypatch.setenv("JIRA_PASSWORD", "from-env")
        path = tmp_path / "alertsync.yml"
        path.write_text(BASE.replace("hunter2", "$(JIRA_PASSWORD)"), encoding="utf-8")

        cfg = load_config_file(str(path))

        assert cfg.template == os.path.join(str(tmp_path), "alertsync.tmpl")
        assert cfg.receiver_by_name("jira-ab").password == "from-env"

    def test_unreadable_file(self, tmp_path):
        with pytest.raises(ConfigError, match="cannot read configuration"):
            load_config_file(str(tmp_path / "missing.yml"))

    def test_shipped_example_loads(self, monkeypatch):
        monkeypatch.setenv("PASSWORD", "pw")
        here = os.path.dirname(os.path.abspath(__file__))
        cfg = load_config_file(os.path.join(here, "..", "examples", "alertsync.yml"))

        assert [rc.name for rc in cfg.receivers] == ["jira-ab", "jira-xy"]
        assert cfg.receiver_by_name("jira-xy").auto_resolve.state == "Done"
        assert cfg.receiver_by_name("jira-ab").static_labels == ["anotherLabel", "custom"]


class TestDump:

    def test_secrets_are_masked(self):
        dumped = load(BASE).to_yaml()
        assert "hunter2" not in dumped
        doc = yaml.safe_load(dumped)
        assert doc["defaults"]["password"] == SECRET_MASK
        assert doc["receivers"][0]["password"] == SECRET_MASK
        assert doc["receivers"][0]["reopen_duration"] == "1d"
        assert doc["template"] == "alertsync.tmpl"
