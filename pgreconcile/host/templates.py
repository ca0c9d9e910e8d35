"""Jinja2 template rendering for unit overrides."""

from typing import Any, Mapping

from jinja2 import Environment, FileSystemLoader, PackageLoader, StrictUndefined, TemplateError

from pgreconcile.core.errors import ConfigurationError, ExecutionError
from pgreconcile.host.base import TemplateRenderer

BUILTIN_SOURCE = "builtin"

UNIT_OVERRIDE_TEMPLATE = "postgresql.service.j2"


class Jinja2TemplateRenderer(TemplateRenderer):
    """
    Renders templates shipped with pgreconcile (``source="builtin"``) or found
    in a user supplied directory.
    """

    def __init__(self, source: str = BUILTIN_SOURCE):
        self.source = source
        if source == BUILTIN_SOURCE:
            loader = PackageLoader("pgreconcile", "templates")
        else:
            loader = FileSystemLoader(source)
        self.env = Environment(
            loader=loader,
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            autoescape=False,
        )

    def render(self, template_id: str, variables: Mapping[str, Any]) -> bytes:
        try:
            template = self.env.get_template(template_id)
        except TemplateError as e:
            raise ConfigurationError(f"Template {template_id!r} not found in {self.source!r}: {e}") from e
        try:
            return template.render(**variables).encode("utf-8")
        except TemplateError as e:
            raise ExecutionError(f"Failed to render {template_id!r}: {e}") from e
