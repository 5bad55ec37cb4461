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

"""Jira REST (v2) issue operations via ``requests`` – search by JQL, create,
field update, comment, transition listing and transition, plus a small
per-credential client cache.
"""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Any

import requests

from .common import AlertSyncError, vprint
from .models import Comment, Issue, Transition

# Jira answers these when overloaded or rate limiting; the caller may redeliver.
RETRYABLE_STATUS_CODES = frozenset({429, 500, 503})

SEARCH_PATH = "rest/api/2/search/jql"
ISSUE_PATH = "rest/api/2/issue"

DEFAULT_TIMEOUT = 30.0

_JIRA_TIME_FORMATS = ("%Y-%m-%dT%H:%M:%S.%f%z", "%Y-%m-%dT%H:%M:%S%z")


class IssueServiceError(AlertSyncError):
    """A ticketing backend call failed."""

    def __init__(self, message: str, *, status_code: int | None = None, retryable: bool = False) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


def parse_jira_time(raw: str | None) -> datetime | None:
    if not raw:
        return None
    for fmt in _JIRA_TIME_FORMATS:
        try:
            return datetime.strptime(raw, fmt)
        except ValueError:
            continue
    raise IssueServiceError(f"malformed Jira timestamp: {raw!r}")


def _name_of(obj: Any) -> str | None:
    if isinstance(obj, dict):
        name = obj.get("name")
        return str(name) if name is not None else None
    return None


def issue_from_json(obj: dict[str, Any]) -> Issue:
    """Build an :class:`Issue` from a Jira REST issue representation."""
    fields = obj.get("fields") or {}
    status = fields.get("status") or {}
    comments = (fields.get("comment") or {}).get("comments") or []

    return Issue(
        key=str(obj.get("key") or ""),
        id=str(obj.get("id") or ""),
        project=str((fields.get("project") or {}).get("key") or ""),
        summary=str(fields.get("summary") or ""),
        description=str(fields.get("description") or ""),
        priority=_name_of(fields.get("priority")),
        labels=[str(label) for label in fields.get("labels") or []],
        status_category=str((status.get("statusCategory") or {}).get("key") or ""),
        resolution=_name_of(fields.get("resolution")),
        resolution_date=parse_jira_time(fields.get("resolutiondate")),
        comments=[Comment(id=str(c.get("id") or ""), body=str(c.get("body") or "")) for c in comments],
    )


class JiraIssueService:
    """:class:`alertsync.shared.models.IssueService` backed by the Jira REST API.

    Authenticates with basic auth when *user* and *password* are given, else
    with a bearer personal access token. Timeouts and connection failures are
    reported as retryable.
    """

    def __init__(
        self,
        api_url: str,
        *,
        user: str = "",
        password: str = "",
        token: str = "",
        timeout: float = DEFAULT_TIMEOUT,
        verify: bool | str = True,
        cert: str | tuple[str, str] | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.api_url = api_url.rstrip("/") + "/"
        self.timeout = timeout
        self._session = session if session is not None else requests.Session()
        self._session.headers.update({"Accept": "application/json"})
        if user and password:
            self._session.auth = (user, password)
        elif token:
            self._session.headers["Authorization"] = f"Bearer {token}"
        self._session.verify = verify
        if cert:
            self._session.cert = cert

    def _request(self, api: str, method: str, path: str, **kwargs: Any) -> requests.Response:
        url = self.api_url + path
        vprint(f"Jira {api}: {method} {url}")
        try:
            resp = self._session.request(method, url, timeout=self.timeout, **kwargs)
        except (requests.Timeout, requests.ConnectionError) as exc:
            raise IssueServiceError(f"Jira request {api} failed: {exc}", retryable=True) from exc
        except requests.RequestException as exc:
            raise IssueServiceError(f"Jira request {api} failed: {exc}") from exc

        if resp.status_code // 100 != 2:
            raise IssueServiceError(
                f"Jira request {api} to {url} returned status {resp.status_code} {resp.reason}, body {resp.text!r}",
                status_code=resp.status_code,
                retryable=resp.status_code in RETRYABLE_STATUS_CODES,
            )
        return resp

    @staticmethod
    def _json(api: str, resp: requests.Response) -> dict[str, Any]:
        try:
            data = resp.json()
        except ValueError as exc:
            raise IssueServiceError(f"Jira request {api} returned invalid JSON: {resp.text!r}") from exc
        if not isinstance(data, dict):
            raise IssueServiceError(f"Jira request {api} returned unexpected payload: {data!r}")
        return data

    def search(self, jql: str, fields: list[str], max_results: int) -> list[Issue]:
        resp = self._request(
            "Issue.Search",
            "GET",
            SEARCH_PATH,
            params={"jql": jql, "fields": ",".join(fields), "maxResults": max_results},
        )
        return [issue_from_json(obj) for obj in self._json("Issue.Search", resp).get("issues") or []]

    def create(self, fields: dict[str, Any]) -> Issue:
        resp = self._request("Issue.Create", "POST", ISSUE_PATH, json={"fields": fields})
        data = self._json("Issue.Create", resp)
        return issue_from_json({"key": data.get("key"), "id": data.get("id"), "fields": fields})

    def update(self, key: str, fields: dict[str, Any]) -> None:
        self._request("Issue.Update", "PUT", f"{ISSUE_PATH}/{key}", json={"fields": fields})

    def add_comment(self, key: str, body: str) -> Comment:
        resp = self._request("Issue.AddComment", "POST", f"{ISSUE_PATH}/{key}/comment", json={"body": body})
        data = self._json("Issue.AddComment", resp)
        return Comment(id=str(data.get("id") or ""), body=str(data.get("body") or body))

    def get_transitions(self, key: str) -> list[Transition]:
        resp = self._request("Issue.GetTransitions", "GET", f"{ISSUE_PATH}/{key}/transitions")
        return [
            Transition(id=str(t.get("id") or ""), name=str(t.get("name") or ""))
            for t in self._json("Issue.GetTransitions", resp).get("transitions") or []
        ]

    def do_transition(self, key: str, transition_id: str) -> None:
        self._request(
            "Issue.DoTransition",
            "POST",
            f"{ISSUE_PATH}/{key}/transitions",
            json={"transition": {"id": transition_id}},
        )


class IssueServiceCache:
    """Reuses one :class:`JiraIssueService` (and its connection pool) per distinct set of client options."""

    def __init__(self) -> None:
        self._services: dict[tuple[Any, ...], JiraIssueService] = {}
        self._lock = threading.Lock()

    def get(self, api_url: str, **options: Any) -> JiraIssueService:
        cache_key = (api_url, *sorted(options.items()))
        with self._lock:
            service = self._services.get(cache_key)
            if service is None:
                service = JiraIssueService(api_url, **options)
                self._services[cache_key] = service
            return service
