"""Message rendering using Jinja2.

Outgoing messages (the coupon email) are Jinja2 templates stored under
``app/templates``. Templates are rendered with StrictUndefined so a missing
variable fails loudly instead of sending a broken message.
"""

from pathlib import Path
from typing import Optional
from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateError

from app.logging_config import get_logger

logger = get_logger(__name__)

TEMPLATES_DIR = Path(__file__).parent.parent / "templates"


class TemplateRenderError(Exception):
    """Raised when template rendering fails."""
    pass


class TemplateRenderer:
    """Service for rendering message templates."""

    def __init__(self, templates_dir: Optional[Path] = None):
        """Initialize Jinja2 environment with strict settings.

        Args:
            templates_dir: Directory holding the templates
        """
        self.env = Environment(
            loader=FileSystemLoader(str(templates_dir or TEMPLATES_DIR)),
            autoescape=False,  # plain-text messages
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def render(self, template_name: str, context: dict) -> str:
        """Render a named template.

        Args:
            template_name: File name under the templates directory
            context: Template variables

        Returns:
            Rendered text

        Raises:
            TemplateRenderError: If the template is missing or invalid, or a
                variable is undefined

        Example:
            >>> renderer.render("coupon_email.txt", {"coupon_code": "ABC123", ...})
        """
        try:
            rendered = self.env.get_template(template_name).render(context)
            logger.debug(f"Rendered template {template_name}")
            return rendered
        except TemplateError as e:
            logger.error(f"Template rendering error in {template_name}: {e}")
            raise TemplateRenderError(f"Failed to render {template_name}: {e}")

    def render_string(self, template_text: str, context: dict) -> str:
        """Render an inline template (used for the email subject line)."""
        try:
            return self.env.from_string(template_text).render(context)
        except TemplateError as e:
            logger.error(f"Template rendering error: {e}")
            raise TemplateRenderError(f"Failed to render template: {e}")


# Global singleton instance
_renderer_instance: Optional[TemplateRenderer] = None


def get_template_renderer() -> TemplateRenderer:
    """Get global TemplateRenderer instance."""
    global _renderer_instance
    if _renderer_instance is None:
        _renderer_instance = TemplateRenderer()
    return _renderer_instance
