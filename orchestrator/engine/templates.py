# ============================================================================
# TEMPLATE RENDERING ENGINE
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# STATUS: Core - Sandboxed message rendering with Jinja2
# PURPOSE: Render email/SMS subjects and bodies against instance context
# CREATED: 14 SEP 2026
# ============================================================================
"""
Template Rendering Engine

Renders message templates against an instance's context data.

Supported syntax:
- {{ patient_name }} / {{patient_name}}       - variable substitution
- {% if has_insurance %}...{% else %}...{% endif %}
- {{#if has_insurance}}...{{else}}...{{/if}}  - editor (Handlebars) sections
- {{#unless confirmed}}...{{/unless}}
- {{{booking_link}}}                          - raw output (autoescape is off)

Rendering runs in a Jinja2 SandboxedEnvironment: template content cannot
reach Python attributes or call unsafe methods.

Missing variables render as empty strings and are reported with a warning.
Strict mode raises TemplateRenderError instead. Templates that fail to parse
are returned unrendered so a typo in a template never blocks a send.
"""

import re
import logging
from typing import Any, Dict, List, Optional, Set

from jinja2 import TemplateSyntaxError, UndefinedError, meta
from jinja2.exceptions import SecurityError
from jinja2.sandbox import SandboxedEnvironment
from jinja2 import ChainableUndefined, StrictUndefined

from core.errors import TemplateRenderError

logger = logging.getLogger(__name__)


# Handlebars tags -> Jinja2. Triple-stash goes first so its inner braces
# are not read as a plain placeholder.
_SECTION_PATTERNS = [
    (re.compile(r"\{\{\{\s*([\w.]+)\s*\}\}\}"), r"{{ \1 }}"),
    (re.compile(r"\{\{\s*#if\s+([\w.]+)\s*\}\}"), r"{% if \1 %}"),
    (re.compile(r"\{\{\s*#unless\s+([\w.]+)\s*\}\}"), r"{% if not \1 %}"),
    (re.compile(r"\{\{\s*else\s*\}\}"), "{% else %}"),
    (re.compile(r"\{\{\s*/if\s*\}\}"), "{% endif %}"),
    (re.compile(r"\{\{\s*/unless\s*\}\}"), "{% endif %}"),
]


def _finalize(value: Any) -> Any:
    """None renders as empty text, matching editor previews."""
    return "" if value is None else value


class TemplateRenderer:
    """
    Jinja2-based renderer for message templates.

    Thread-safe, can be reused across renders.
    """

    def __init__(self, strict: bool = False):
        """
        Args:
            strict: Raise TemplateRenderError on undefined variables
        """
        self.strict = strict
        self._env = SandboxedEnvironment(
            autoescape=False,
            undefined=StrictUndefined if strict else ChainableUndefined,
            finalize=_finalize,
            keep_trailing_newline=True,
        )

    @staticmethod
    def translate_sections(template: str) -> str:
        """Rewrite Handlebars section tags into Jinja2 statements."""
        for pattern, replacement in _SECTION_PATTERNS:
            template = pattern.sub(replacement, template)
        return template

    def missing_variables(self, template: str, context: Dict[str, Any]) -> List[str]:
        """Top-level variables referenced by the template but absent from context."""
        try:
            ast = self._env.parse(self.translate_sections(template))
        except TemplateSyntaxError:
            return []
        referenced: Set[str] = meta.find_undeclared_variables(ast)
        return sorted(name for name in referenced if name not in context)

    def render(self, template: Optional[str], context: Dict[str, Any]) -> str:
        """
        Render a template string.

        Args:
            template: Template text (Jinja2 or Handlebars-style sections)
            context: Instance context data

        Returns:
            Rendered text; the raw template if it cannot be parsed

        Raises:
            TemplateRenderError: Strict mode and an undefined variable
        """
        if not template:
            return ""
        if "{{" not in template and "{%" not in template:
            return template

        source = self.translate_sections(template)
        try:
            compiled = self._env.from_string(source)
        except TemplateSyntaxError as e:
            logger.error(f"Template syntax error at line {e.lineno}: {e.message}; sending raw template")
            return template

        missing = self.missing_variables(template, context)
        if missing:
            if self.strict:
                raise TemplateRenderError(f"Undefined template variables: {', '.join(missing)}")
            logger.warning(f"Template references undefined variables: {', '.join(missing)}")

        try:
            return compiled.render(context)
        except UndefinedError as e:
            if self.strict:
                raise TemplateRenderError(str(e)) from e
            logger.warning(f"Template render hit undefined value: {e}")
            return template
        except SecurityError as e:
            logger.error(f"Template rejected by sandbox: {e}")
            return template

    def render_many(self, templates: Dict[str, Optional[str]], context: Dict[str, Any]) -> Dict[str, str]:
        """Render several named templates (subject, body) against one context."""
        return {name: self.render(text, context) for name, text in templates.items()}


# ============================================================================
# CONVENIENCE FUNCTIONS
# ============================================================================

_renderer: Optional[TemplateRenderer] = None


def get_renderer() -> TemplateRenderer:
    """Get shared lenient renderer instance."""
    global _renderer
    if _renderer is None:
        _renderer = TemplateRenderer()
    return _renderer


def render_template(template: Optional[str], context: Dict[str, Any]) -> str:
    """Render with the shared renderer."""
    return get_renderer().render(template, context)


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "TemplateRenderer",
    "get_renderer",
    "render_template",
]
