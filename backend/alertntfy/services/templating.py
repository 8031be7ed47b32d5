"""Sandboxed Jinja2 templates for titles, bodies, headers and action URLs."""

from dataclasses import dataclass
from typing import Any

from jinja2 import TemplateError, TemplateSyntaxError
from jinja2 import Template as JinjaTemplate
from jinja2.sandbox import ImmutableSandboxedEnvironment

from alertntfy.domain.errors import ConfigError, FieldResolutionError


class TemplateCompileError(ConfigError):
    """Raised when a template source cannot be parsed."""


class TemplateRenderError(FieldResolutionError):
    """Raised when a compiled template fails for a given alert."""


def split(value: str, sep: str) -> list[str]:
    return str(value).split(sep)


def join(items, sep: str = "") -> str:
    return sep.join(str(item) for item in items)


def trim(value: str) -> str:
    return str(value).strip()


def lower(value: str) -> str:
    return str(value).lower()


def upper(value: str) -> str:
    return str(value).upper()


def capitalize(value: str) -> str:
    """Upper-case the first letter only, leaving the rest untouched."""

    text = str(value)
    return text[:1].upper() + text[1:]


def contains(value: str, substr: str) -> bool:
    return substr in str(value)


def has_prefix(value: str, prefix: str) -> bool:
    return str(value).startswith(prefix)


def has_suffix(value: str, suffix: str) -> bool:
    return str(value).endswith(suffix)


def replace(value: str, old: str, new: str) -> str:
    return str(value).replace(old, new)


def printf(fmt: str, *args: Any) -> str:
    """printf-style formatting; `%v` is accepted as an alias of `%s`."""

    return fmt.replace("%v", "%s") % args


TEMPLATE_FUNCS = {
    "split": split,
    "join": join,
    "trim": trim,
    "lower": lower,
    "upper": upper,
    "capitalize": capitalize,
    "contains": contains,
    "has_prefix": has_prefix,
    "has_suffix": has_suffix,
    "replace": replace,
    "printf": printf,
}


def _environment() -> ImmutableSandboxedEnvironment:
    env = ImmutableSandboxedEnvironment(autoescape=False)
    # Only the helper library is reachable from a template.
    env.globals.clear()
    env.globals.update(TEMPLATE_FUNCS)
    env.filters.update(TEMPLATE_FUNCS)
    return env


_ENV = _environment()


@dataclass(frozen=True)
class Template:
    source: str
    compiled: JinjaTemplate

    def render(self, context: dict[str, Any]) -> str:
        """Render against `context`; the output is whitespace-trimmed."""

        try:
            return self.compiled.render(**context).strip()
        except (TemplateError, TypeError, ValueError, KeyError, IndexError, ArithmeticError, RecursionError) as exc:
            raise TemplateRenderError(str(exc)) from exc


def compile_template(source: str) -> Template:
    try:
        compiled = _ENV.from_string(source)
    except TemplateSyntaxError as exc:
        raise TemplateCompileError(f"bad template {source!r}: {exc}") from exc
    return Template(source=source, compiled=compiled)
