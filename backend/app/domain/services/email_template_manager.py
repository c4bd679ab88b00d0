"""
Email Template Manager
Manages campaign report email templates with Jinja2 rendering.
"""
from typing import Dict, List, Optional
from pydantic import BaseModel, Field
from jinja2 import Environment, BaseLoader
import logging

logger = logging.getLogger(__name__)


CAMPAIGN_REPORT = "campaign_report"


class EmailTemplate(BaseModel):
    """Single email template definition."""
    name: str = Field(..., description="Template identifier")
    subject_template: str = Field(..., description="Jinja2 subject template")
    body_template: str = Field(..., description="Jinja2 plain text body template")
    body_html_template: Optional[str] = Field(None, description="Jinja2 HTML body template")
    variables: List[str] = Field(default_factory=list, description="Expected variables")
    description: str = Field("", description="Template purpose description")


class RenderedEmail(BaseModel):
    """Rendered email ready for sending."""
    subject: str
    body: str
    body_html: Optional[str] = None
    template_name: str


class EmailTemplateManager:
    """Manages email templates and rendering."""

    def __init__(self):
        self.templates: Dict[str, EmailTemplate] = {}
        self.env = Environment(loader=BaseLoader())
        self._load_default_templates()

    def _load_default_templates(self):
        """Load default email templates."""

        self.templates[CAMPAIGN_REPORT] = EmailTemplate(
            name=CAMPAIGN_REPORT,
            description="Sent once per job when every lead has a result",
            subject_template=(
                "{{ agent_name }} campaign report{{ ' - ' + business_name if business_name else '' }}: "
                "{{ counts.get('hot', 0) }} hot, {{ counts.get('warm', 0) }} warm of {{ total }}"
            ),
            body_template="""Campaign {{ job_id[:8] }} ({{ mode }}) finished with {{ total }} leads.

Outcomes:
{% for outcome, count in counts.items() %}- {{ outcome }}: {{ count }}
{% endfor %}
{% if highlights %}Leads to follow up:
{% for lead in highlights %}
[{{ lead.outcome | upper }}] {{ lead.name or 'Unknown' }} - {{ lead.phone }}{% if lead.duration %} ({{ lead.duration }}){% endif %}
{{ lead.summary or 'No summary' }}
{% endfor %}{% else %}No hot or warm leads this time.
{% endif %}
Generated {{ generated_at }}""",
            body_html_template="""<!DOCTYPE html>
<html>
<head><meta charset="UTF-8"></head>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
<p>Campaign <strong>{{ job_id[:8] }}</strong> ({{ mode }}) finished with {{ total }} leads.</p>

<table style="border-collapse: collapse; margin: 20px 0;">
{% for outcome, count in counts.items() %}<tr><td style="padding: 4px 0;"><strong>{{ outcome }}</strong></td><td style="padding: 4px 16px;">{{ count }}</td></tr>
{% endfor %}</table>

{% if highlights %}<h3>Leads to follow up</h3>
{% for lead in highlights %}<p><strong>[{{ lead.outcome | upper }}] {{ (lead.name or 'Unknown') | e }}</strong> {{ lead.phone | e }}{% if lead.duration %} ({{ lead.duration }}){% endif %}<br>
{{ (lead.summary or 'No summary') | e }}</p>
{% endfor %}{% else %}<p>No hot or warm leads this time.</p>{% endif %}

<p style="color: #888; font-size: 12px;">Generated {{ generated_at }}</p>
</body>
</html>""",
            variables=["job_id", "mode", "total", "counts", "highlights", "agent_name", "business_name", "generated_at"]
        )

        logger.info(f"Loaded {len(self.templates)} default email templates")

    def render_email(
        self,
        template_name: str,
        **context
    ) -> RenderedEmail:
        """
        Render an email template with provided context.

        Raises:
            KeyError: If template not found
        """
        if template_name not in self.templates:
            available = ", ".join(self.templates.keys())
            raise KeyError(f"Template '{template_name}' not found. Available: {available}")

        template = self.templates[template_name]

        subject = self.env.from_string(template.subject_template).render(**context)
        body = self.env.from_string(template.body_template).render(**context)

        body_html = None
        if template.body_html_template:
            body_html = self.env.from_string(template.body_html_template).render(**context)

        logger.debug(f"Rendered email template '{template_name}' with {len(context)} variables")

        return RenderedEmail(
            subject=subject,
            body=body,
            body_html=body_html,
            template_name=template_name,
        )


# Singleton instance
_template_manager: Optional[EmailTemplateManager] = None


def get_email_template_manager() -> EmailTemplateManager:
    """Get or create EmailTemplateManager singleton."""
    global _template_manager
    if _template_manager is None:
        _template_manager = EmailTemplateManager()
    return _template_manager
