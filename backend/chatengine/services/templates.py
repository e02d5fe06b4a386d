"""Minimal email template rendering.

Grammar:
    {{name}}                 value, HTML-escaped
    {{{name}}}               value, raw
    {{#name}}...{{/name}}    block kept when the value is truthy, dropped otherwise

Variables are substituted before conditionals are resolved. Substituted values have
their braces neutralised so they cannot form new template tags.
"""
import html
import re

_RAW_VAR = re.compile(r"\{\{\{\s*(\w+)\s*\}\}\}")
_VAR = re.compile(r"\{\{(?![#/{])\s*(\w+)\s*\}\}")
_SECTION = re.compile(r"\{\{#(\w+)\}\}(.*?)\{\{/\1\}\}", re.DOTALL)


def _to_text(value) -> str:
    if value is None or value is False:
        return ""
    return str(value)


def _neutralise(text: str) -> str:
    return text.replace("{", "&#123;").replace("}", "&#125;")


def render_template(template: str, variables: dict, escape: bool = True) -> str:
    def raw(match: re.Match) -> str:
        return _neutralise(_to_text(variables.get(match.group(1))))

    def var(match: re.Match) -> str:
        text = _to_text(variables.get(match.group(1)))
        if escape:
            text = html.escape(text, quote=True)
        return _neutralise(text)

    def section(match: re.Match) -> str:
        return match.group(2) if variables.get(match.group(1)) else ""

    out = _RAW_VAR.sub(raw, template or "")
    out = _VAR.sub(var, out)
    return _SECTION.sub(section, out)
