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

"""Receiver configuration – YAML loading, ``$(VAR)`` substitution, the
defaults → receiver merge, validation, and the duration format.

Example::

    defaults:
      api_url: https://example.atlassian.net
      user: alertsync
      password: $(JIRA_PASSWORD)
      issue_type: Bug
      summary: '{{ template("jira_summary") }}'
      reopen_state: To Do
      reopen_duration: 0h
    receivers:
      - name: jira-ab
        project: AB
    template: alertsync.tmpl
"""

from __future__ import annotations

import os
import re
from dataclasses import asdict, dataclass, field, fields
from typing import Any
from urllib.parse import urlparse

import yaml

from alertsync.shared.common import AlertSyncError, vprint


class ConfigError(AlertSyncError):
    """The configuration file is unreadable, malformed or incomplete."""


# ---------------------------------------------------------------------------
# Durations
# ---------------------------------------------------------------------------

DURATION_RE = re.compile(r"^([0-9]+)(y|w|d|h|m|s|ms)$")

# Largest unit first so formatting picks the coarsest exact unit.
_UNIT_MS: dict[str, int] = {
    "y": 1000 * 60 * 60 * 24 * 365,
    "w": 1000 * 60 * 60 * 24 * 7,
    "d": 1000 * 60 * 60 * 24,
    "h": 1000 * 60 * 60,
    "m": 1000 * 60,
    "s": 1000,
    "ms": 1,
}


def parse_duration(raw: str) -> int:
    """Parse ``<int><unit>`` (unit in y, w, d, h, m, s, ms) into milliseconds."""
    m = DURATION_RE.match(raw) if isinstance(raw, str) else None
    if not m:
        raise ConfigError(f"not a valid duration string: {raw!r}")
    return int(m.group(1)) * _UNIT_MS[m.group(2)]


def format_duration(ms: int) -> str:
    if ms == 0:
        return "0s"
    for unit, factor in _UNIT_MS.items():
        if ms % factor == 0:
            return f"{ms // factor}{unit}"
    return f"{ms}ms"


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

SECRET_MASK = "<secret>"


@dataclass
class AutoResolve:
    state: str = ""


@dataclass
class ReceiverConfig:
    """Settings for one Alertmanager receiver.

    Fields left as ``None`` / empty are taken from the ``defaults`` section
    when the configuration is loaded.
    """
    name: str = ""

    # API access
    api_url: str = ""
    user: str = ""
    password: str = ""
    personal_access_token: str = ""
    ca_file: str = ""
    cert_file: str = ""
    key_file: str = ""
    insecure_skip_verify: bool | None = None

    # Required issue fields
    project: str = ""
    issue_type: str = ""
    summary: str = ""
    reopen_state: str = ""
    reopen_duration: int | None = None

    # Optional issue fields
    priority: str = ""
    description: str = ""
    wont_fix_resolution: str = ""
    fields: dict[str, Any] = field(default_factory=dict)
    components: list[str] = field(default_factory=list)
    static_labels: list[str] = field(default_factory=list)
    other_projects: list[str] = field(default_factory=list)

    add_group_labels: bool | None = None
    update_in_comment: bool | None = None
    auto_resolve: AutoResolve | None = None

    def client_options(self) -> dict[str, Any]:
        """Keyword arguments for :class:`alertsync.shared.jira_issues.JiraIssueService`."""
        verify: bool | str = True
        if self.insecure_skip_verify:
            verify = False
        elif self.ca_file:
            verify = self.ca_file

        cert: tuple[str, str] | None = None
        if self.cert_file and self.key_file:
            cert = (self.cert_file, self.key_file)

        if self.user and self.password:
            return {"user": self.user, "password": self.password, "verify": verify, "cert": cert}
        return {"token": self.personal_access_token, "verify": verify, "cert": cert}

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for key, value in asdict(self).items():
            if value is None or value == "" or value == [] or value == {}:
                continue
            if key in _SECRET_KEYS:
                value = SECRET_MASK
            elif key == "reopen_duration":
                value = format_duration(value)
            out[key] = value
        return out


@dataclass
class Config:
    defaults: ReceiverConfig = field(default_factory=ReceiverConfig)
    receivers: list[ReceiverConfig] = field(default_factory=list)
    template: str = ""

    def receiver_by_name(self, name: str) -> ReceiverConfig | None:
        for rc in self.receivers:
            if rc.name == name:
                return rc
        return None

    def to_yaml(self) -> str:
        """Dump the merged configuration with secrets masked."""
        doc = {
            "defaults": self.defaults.to_dict(),
            "receivers": [rc.to_dict() for rc in self.receivers],
            "template": self.template,
        }
        return yaml.safe_dump(doc, sort_keys=False, allow_unicode=True)


_SECRET_KEYS = frozenset({"password", "personal_access_token"})
_STRING_KEYS = frozenset(
    {
        "name", "api_url", "user", "password", "personal_access_token", "ca_file", "cert_file",
        "key_file", "project", "issue_type", "summary", "reopen_state", "priority", "description",
        "wont_fix_resolution",
    }
)
_LIST_KEYS = frozenset({"components", "static_labels", "other_projects"})
_BOOL_KEYS = frozenset({"insecure_skip_verify", "add_group_labels", "update_in_comment"})
_RECEIVER_KEYS = frozenset(f.name for f in fields(ReceiverConfig))
_CONFIG_KEYS = frozenset({"defaults", "receivers", "template"})


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def _check_overflow(raw: dict[Any, Any], allowed: frozenset[str], ctx: str) -> None:
    unknown = [str(k) for k in raw if k not in allowed]
    if unknown:
        raise ConfigError(f"unknown fields in {ctx}: {', '.join(unknown)}")


def string_keyed(value: Any) -> Any:
    """Recursively copy *value*, dropping every mapping entry whose key is not a string."""
    if isinstance(value, dict):
        return {k: string_keyed(v) for k, v in value.items() if isinstance(k, str)}
    if isinstance(value, list):
        return [string_keyed(v) for v in value]
    return value


def _scalar_str(value: Any, key: str, ctx: str) -> str:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        raise ConfigError(f"{key} in {ctx} must be a string")
    return str(value)


def parse_receiver(raw: Any, ctx: str) -> ReceiverConfig:
    if raw is None:
        return ReceiverConfig()
    if not isinstance(raw, dict):
        raise ConfigError(f"{ctx} must be a mapping")
    _check_overflow(raw, _RECEIVER_KEYS, ctx)

    rc = ReceiverConfig()
    for key, value in raw.items():
        if key in _STRING_KEYS:
            setattr(rc, key, _scalar_str(value, key, ctx))
        elif key in _LIST_KEYS:
            if value is None:
                continue
            if not isinstance(value, list):
                raise ConfigError(f"{key} in {ctx} must be a list")
            setattr(rc, key, [_scalar_str(v, key, ctx) for v in value])
        elif key in _BOOL_KEYS:
            if value is not None and not isinstance(value, bool):
                raise ConfigError(f"{key} in {ctx} must be a boolean")
            setattr(rc, key, value)
        elif key == "reopen_duration":
            rc.reopen_duration = None if value is None else parse_duration(value)
        elif key == "fields":
            if value is None:
                continue
            if not isinstance(value, dict):
                raise ConfigError(f"fields in {ctx} must be a mapping")
            rc.fields = string_keyed(value)
        elif key == "auto_resolve":
            if value is None:
                continue
            if not isinstance(value, dict):
                raise ConfigError(f"auto_resolve in {ctx} must be a mapping")
            _check_overflow(value, frozenset({"state"}), f"auto_resolve of {ctx}")
            rc.auto_resolve = AutoResolve(state=_scalar_str(value.get("state"), "state", ctx))
    return rc


# ---------------------------------------------------------------------------
# Defaults merge / validation
# ---------------------------------------------------------------------------

def _check_auth_exclusive(rc: ReceiverConfig, ctx: str) -> None:
    if (rc.user or rc.password) and rc.personal_access_token:
        raise ConfigError(f"bad auth config in {ctx}: user/password and PAT authentication are mutually exclusive")


def _check_tls(rc: ReceiverConfig, ctx: str) -> None:
    if rc.cert_file and not rc.key_file:
        raise ConfigError(f"client certificate file {rc.cert_file!r} specified without client key file in {ctx}")
    if rc.key_file and not rc.cert_file:
        raise ConfigError(f"client key file {rc.key_file!r} specified without client certificate file in {ctx}")


def apply_defaults(rc: ReceiverConfig, defaults: ReceiverConfig) -> None:
    """Fill *rc* in place from *defaults* and reject it when mandatory fields stay empty."""
    ctx = f"receiver {rc.name!r}"

    if not rc.api_url:
        if not defaults.api_url:
            raise ConfigError(f"missing api_url in {ctx}")
        rc.api_url = defaults.api_url
    parsed = urlparse(rc.api_url)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ConfigError(f"invalid api_url {rc.api_url!r} in {ctx}")

    _check_auth_exclusive(rc, ctx)
    if not (rc.user and rc.password) and not rc.personal_access_token:
        rc.user = rc.user or defaults.user
        rc.password = rc.password or defaults.password
        if not (rc.user and rc.password):
            if not defaults.personal_access_token:
                raise ConfigError(f"missing authentication in {ctx}")
            rc.personal_access_token = defaults.personal_access_token

    for key in ("ca_file", "cert_file", "key_file"):
        if not getattr(rc, key):
            setattr(rc, key, getattr(defaults, key))
    if rc.insecure_skip_verify is None:
        rc.insecure_skip_verify = bool(defaults.insecure_skip_verify)
    _check_tls(rc, ctx)

    for key in ("project", "issue_type", "summary", "reopen_state"):
        if not getattr(rc, key):
            if not getattr(defaults, key):
                raise ConfigError(f"missing {key} in {ctx}")
            setattr(rc, key, getattr(defaults, key))
    if rc.reopen_duration is None:
        if defaults.reopen_duration is None:
            raise ConfigError(f"missing reopen_duration in {ctx}")
        rc.reopen_duration = defaults.reopen_duration

    for key in ("priority", "description", "wont_fix_resolution"):
        if not getattr(rc, key):
            setattr(rc, key, getattr(defaults, key))
    for key in ("components", "other_projects"):
        if not getattr(rc, key):
            setattr(rc, key, list(getattr(defaults, key)))

    if rc.auto_resolve is not None and not rc.auto_resolve.state:
        raise ConfigError(f"bad config in {ctx}, 'auto_resolve' was defined with empty 'state' field")
    if rc.auto_resolve is None and defaults.auto_resolve is not None:
        rc.auto_resolve = defaults.auto_resolve

    # Receiver keys win; defaults only fill the gaps.
    for key, value in defaults.fields.items():
        rc.fields.setdefault(key, value)
    rc.static_labels = rc.static_labels + defaults.static_labels

    if rc.add_group_labels is None:
        rc.add_group_labels = bool(defaults.add_group_labels)
    if rc.update_in_comment is None:
        rc.update_in_comment = bool(defaults.update_in_comment)


def load_config(text: str) -> Config:
    """Parse YAML *text* into a validated :class:`Config` with defaults merged into every receiver."""
    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid YAML: {exc}") from exc
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError("configuration must be a mapping")
    _check_overflow(raw, _CONFIG_KEYS, "config")

    defaults = parse_receiver(raw.get("defaults"), "defaults")
    _check_auth_exclusive(defaults, "defaults section")
    if defaults.auto_resolve is not None and not defaults.auto_resolve.state:
        raise ConfigError("bad config in defaults section: state cannot be empty")

    raw_receivers = raw.get("receivers") or []
    if not isinstance(raw_receivers, list):
        raise ConfigError("receivers must be a list")

    receivers: list[ReceiverConfig] = []
    seen: set[str] = set()
    for i, raw_rc in enumerate(raw_receivers):
        rc = parse_receiver(raw_rc, f"receiver #{i}")
        if not rc.name:
            raise ConfigError(f"missing name for receiver #{i}")
        if rc.name in seen:
            raise ConfigError(f"duplicate receiver name {rc.name!r}")
        seen.add(rc.name)
        apply_defaults(rc, defaults)
        receivers.append(rc)

    if not receivers:
        raise ConfigError("no receivers defined")

    template = _scalar_str(raw.get("template"), "template", "config")
    if not template:
        raise ConfigError("missing template file")

    return Config(defaults=defaults, receivers=receivers, template=template)


ENV_VAR_RE = re.compile(r"\$\(([a-zA-Z_0-9]+)\)")


def substitute_env_vars(text: str) -> str:
    """Expand ``$(VAR)`` references from the environment; a missing variable is an error."""

    def repl(m: re.Match[str]) -> str:
        name = m.group(1)
        if name not in os.environ:
            raise ConfigError(f"missing env variable: {name!r}")
        return os.environ[name]

    return ENV_VAR_RE.sub(repl, text)


def load_config_file(path: str) -> Config:
    print(f"Loading configuration from {path}")
    try:
        with open(path, "r", encoding="utf-8") as fh:
            content = fh.read()
    except OSError as exc:
        raise ConfigError(f"cannot read configuration {path}: {exc}") from exc

    cfg = load_config(substitute_env_vars(content))

    if not os.path.isabs(cfg.template):
        resolved = os.path.join(os.path.dirname(os.path.abspath(path)), cfg.template)
        vprint(f"resolved relative template path {cfg.template} -> {resolved}")
        cfg.template = resolved
    return cfg
