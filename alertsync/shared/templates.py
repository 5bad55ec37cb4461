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

"""Jinja2 template rendering engine for ticket field values.

A :class:`Template` owns one ``jinja2.Environment`` and an optional library
of named sub-templates. Named sub-templates are the ``{% block name %}``
sections of the library file and are invoked from field templates with
``{{ template("name") }}``; they see the same data as the caller.

Missing keys render as empty values, while syntax errors and failures raised
during rendering surface as :class:`TemplateRenderError`.
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any, Callable

from jinja2 import ChainableUndefined, Environment, TemplateSyntaxError, pass_context
from jinja2.exceptions import TemplateRuntimeError

from .common import AlertSyncError, vprint


class TemplateRenderError(AlertSyncError):
    """Template text is malformed or failed to execute against the data."""


# ---------------------------------------------------------------------------
# Built-in functions
# ---------------------------------------------------------------------------

_GROUP_REF_RE = re.compile(r"\$(?:(\$)|\{(\w+)\}|(\w+))")


def _expand(repl: str, found: re.Match[str]) -> str:
    """Expand ``$1`` / ``$name`` / ``${name}`` references in *repl* against *found*.

    ``$name`` takes the longest run of word characters, so ``$1x`` names a
    group ``1x``. Unknown or unmatched groups expand to ``""``. Backslashes
    are literal; ``$$`` is a literal dollar sign.
    """

    def sub(ref: re.Match[str]) -> str:
        if ref.group(1):
            return "$"
        name = ref.group(2) or ref.group(3)
        try:
            value = found.group(int(name) if name.isdecimal() else name)
        except IndexError:
            return ""
        return value or ""

    return _GROUP_REF_RE.sub(sub, repl)


def to_upper(text: Any) -> str:
    return str(text).upper()


def to_lower(text: Any) -> str:
    return str(text).lower()


def title(text: Any) -> str:
    return str(text).title()


def join(sep: str, items: Any) -> str:
    """Join *items* with *sep*; separator first so it reads like a pipeline."""
    return str(sep).join(str(item) for item in items)


def match(pattern: str, text: Any) -> bool:
    return re.search(pattern, str(text)) is not None


def re_replace_all(pattern: str, repl: str, text: Any) -> str:
    return re.sub(pattern, lambda found: _expand(repl, found), str(text))


def string_slice(*items: Any) -> list[Any]:
    return list(items)


def get_env(name: str) -> str:
    return os.environ.get(name, "")


FUNCS: Mapping[str, Callable[..., Any]] = MappingProxyType(
    {
        "toUpper": to_upper,
        "toLower": to_lower,
        "title": title,
        "join": join,
        "match": match,
        "reReplaceAll": re_replace_all,
        "stringSlice": string_slice,
        "getEnv": get_env,
    }
)

# Filters receive the piped value first.
FILTERS: Mapping[str, Callable[..., Any]] = MappingProxyType(
    {
        "toUpper": to_upper,
        "toLower": to_lower,
        "title": title,
        "reReplaceAll": lambda text, pattern, repl: re_replace_all(pattern, repl, text),
    }
)


class _LabelEnvironment(Environment):
    """Dot access on a mapping reads its keys first, so ``labels.values`` is the
    ``values`` label rather than ``dict.values``.
    """

    def getattr(self, obj: Any, attribute: str) -> Any:
        if isinstance(obj, Mapping) and attribute in obj:
            return obj[attribute]
        return super().getattr(obj, attribute)


def _template_context(data: Any) -> dict[str, Any]:
    if data is None:
        return {}
    if isinstance(data, Mapping):
        return dict(data)
    context = getattr(data, "template_context", None)
    if callable(context):
        return dict(context())
    raise TypeError(f"unsupported template data type: {type(data).__name__}")


class Template:
    """Renders field templates against alert data.

    Safe to share between threads: every :meth:`execute` call compiles its
    own top-level template and renders it in a fresh context, while the
    library is compiled once and never modified.
    """

    def __init__(
        self,
        library_source: str | None = None,
        *,
        name: str = "<library>",
        funcs: Mapping[str, Callable[..., Any]] = FUNCS,
        filters: Mapping[str, Callable[..., Any]] = FILTERS,
    ) -> None:
        env = _LabelEnvironment(
            undefined=ChainableUndefined,
            keep_trailing_newline=True,
            autoescape=False,
        )
        env.globals.update(funcs)
        env.filters.update(filters)

        @pass_context
        def render_named(ctx: Any, block_name: str) -> str:
            return self._render_block(ctx, block_name)

        env.globals["template"] = render_named
        self._env = env
        self._markers = (env.variable_start_string, env.block_start_string, env.comment_start_string)
        self._library = None
        if library_source:
            try:
                self._library = env.from_string(library_source)
            except TemplateSyntaxError as exc:
                raise TemplateRenderError(f"parse template library {name}: {exc}") from exc

    @property
    def names(self) -> list[str]:
        """Names of the sub-templates defined in the library."""
        if self._library is None:
            return []
        return sorted(self._library.blocks)

    def _render_block(self, ctx: Any, block_name: str) -> str:
        if self._library is None or block_name not in self._library.blocks:
            raise TemplateRuntimeError(f"no such template {block_name!r}")
        block_ctx = self._library.new_context(ctx.get_all(), shared=True)
        return "".join(self._library.blocks[block_name](block_ctx))

    def execute(self, text: str, data: Any) -> str:
        """Render *text* against *data*, returning it unchanged when it holds no template markup."""
        vprint(f"executing template {text!r}")
        if not text or not any(marker in text for marker in self._markers):
            return text or ""

        try:
            tmpl = self._env.from_string(text)
        except TemplateSyntaxError as exc:
            raise TemplateRenderError(f"parse template {text}: {exc}") from exc

        try:
            out = tmpl.render(_template_context(data))
        except Exception as exc:
            raise TemplateRenderError(f"execute template {text}: {exc}") from exc

        vprint(f"template output {out!r}")
        return out


def load_template(path: str | None) -> Template:
    """Read the sub-template library at *path*; an empty path yields a bare :class:`Template`."""
    if not path:
        return Template()

    vprint(f"loading templates from {path}")
    try:
        with open(path, "r", encoding="utf-8") as fh:
            source = fh.read()
    except OSError as exc:
        raise TemplateRenderError(f"read template library {path}: {exc}") from exc

    return Template(source, name=path)
