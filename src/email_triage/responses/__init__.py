"""Reply generation and outbound templating."""

from email_triage.responses.generator import ResponseGenerator
from email_triage.responses.template_engine import TemplateEngine, select_template

__all__ = ["ResponseGenerator", "TemplateEngine", "select_template"]
