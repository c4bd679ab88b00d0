"""
SMS Template Manager
Templates for campaign SMS: lead outreach, number probes and operator alerts.
"""
import logging
import re
from typing import Dict, List, Optional
from dataclasses import dataclass
from enum import Enum

from app.domain.models.campaign_job import Lead

logger = logging.getLogger(__name__)


# {name} and {first_name} in user-supplied outreach copy, any case
_LEAD_PLACEHOLDER = re.compile(r"\{\s*(name|first_name)\s*\}", re.IGNORECASE)

SUMMARY_PREVIEW_CHARS = 300


class SMSTemplateType(str, Enum):
    """Types of SMS templates available."""
    OUTREACH = "outreach"
    NUMBER_PROBE = "number_probe"
    HOT_LEAD_ALERT = "hot_lead_alert"
    REPLY_ALERT = "reply_alert"
    CAMPAIGN_COMPLETE = "campaign_complete"


@dataclass
class SMSTemplate:
    """SMS template with content and metadata."""
    name: str
    template_type: SMSTemplateType
    content: str
    description: str
    required_vars: List[str]
    max_length: int = 160  # Single SMS limit

    def render(self, **kwargs) -> str:
        """
        Render the template with provided variables.

        Raises:
            ValueError: If required variables are missing
        """
        missing = [var for var in self.required_vars if var not in kwargs]
        if missing:
            raise ValueError(f"Missing required template variables: {missing}")

        try:
            rendered = self.content.format(**kwargs)
        except KeyError as e:
            raise ValueError(f"Template variable not provided: {e}")

        if len(rendered) > self.max_length:
            logger.debug(
                f"SMS template '{self.name}' rendered to {len(rendered)} chars "
                f"(exceeds {self.max_length})"
            )
        return rendered


SMS_TEMPLATES: Dict[str, SMSTemplate] = {
    SMSTemplateType.OUTREACH.value: SMSTemplate(
        name="Lead Outreach",
        template_type=SMSTemplateType.OUTREACH,
        content=(
            "Hi {name}, this is {agent_name}{business_part}. Are you still thinking about "
            "selling your property this year? Reply YES and I'll send over a quick value estimate."
        ),
        description="Default first message of an SMS campaign",
        required_vars=["name", "agent_name", "business_part"],
        max_length=320
    ),

    SMSTemplateType.NUMBER_PROBE.value: SMSTemplate(
        name="Number Probe",
        template_type=SMSTemplateType.NUMBER_PROBE,
        content="Hi {name}, {agent_name}{business_part} here. I'll give you a quick call shortly.",
        description="Short message sent before a call campaign to validate numbers",
        required_vars=["name", "agent_name", "business_part"],
    ),

    SMSTemplateType.HOT_LEAD_ALERT.value: SMSTemplate(
        name="Hot Lead Alert",
        template_type=SMSTemplateType.HOT_LEAD_ALERT,
        content=(
            "🔥 HOT LEAD{duration_part}\n\n"
            "👤 {name}\n"
            "📞 {phone}\n\n"
            "{agent_name}'s summary:\n"
            "{summary}\n\n"
            "Call them back ASAP, they're ready to talk!"
        ),
        description="Sent to the operator when a call is classified hot",
        required_vars=["duration_part", "name", "phone", "agent_name", "summary"],
        max_length=640
    ),

    SMSTemplateType.REPLY_ALERT.value: SMSTemplate(
        name="Reply Alert",
        template_type=SMSTemplateType.REPLY_ALERT,
        content="💬 SMS REPLY ({outcome})\n\n👤 {sender}\n\n\"{body}\"",
        description="Sent to the operator for every inbound SMS",
        required_vars=["outcome", "sender", "body"],
        max_length=640
    ),

    SMSTemplateType.CAMPAIGN_COMPLETE.value: SMSTemplate(
        name="Campaign Complete",
        template_type=SMSTemplateType.CAMPAIGN_COMPLETE,
        content=(
            "✅ {agent_name} finished {activity} {total} leads{business_part}.\n"
            "{succeeded} {succeeded_label}, {errors} errors.\n"
            "Check your dashboard for hot leads!"
        ),
        description="Sent to the operator when dispatch finishes",
        required_vars=["agent_name", "activity", "total", "business_part",
                       "succeeded", "succeeded_label", "errors"],
    ),
}


def render_lead_placeholders(template: str, lead: Lead) -> str:
    """
    Substitute {name} and {first_name} in free-form copy, case-insensitively.

    Other braces are left untouched so user copy never fails to render.
    """
    first_name = lead.first_name or lead.name or "there"
    full_name = lead.name or lead.first_name or "there"

    def replace(match: re.Match) -> str:
        return first_name if match.group(1).lower() == "first_name" else full_name

    return _LEAD_PLACEHOLDER.sub(replace, template)


class SMSTemplateManager:
    """
    Manages SMS templates for campaigns.

    Provides:
    - Template lookup and rendering
    - Convenience renderers carrying the agent and business branding
    """

    def __init__(
        self,
        agent_name: str = "Sarah",
        business_name: str = "",
        custom_templates: Optional[Dict[str, SMSTemplate]] = None
    ):
        self.agent_name = agent_name
        self.business_name = business_name
        self._templates = {**SMS_TEMPLATES}

        if custom_templates:
            self._templates.update(custom_templates)

    def get_template(self, template_name: str) -> SMSTemplate:
        """
        Get a template by name.

        Raises:
            ValueError: If template not found
        """
        if template_name not in self._templates:
            available = ", ".join(self._templates.keys())
            raise ValueError(f"Unknown SMS template: {template_name}. Available: {available}")

        return self._templates[template_name]

    def render_template(self, template_name: str, **kwargs) -> str:
        template = self.get_template(template_name)
        return template.render(**kwargs)

    def _business_part(self, joiner: str) -> str:
        return f"{joiner}{self.business_name}" if self.business_name else ""

    def render_outreach(self, lead: Lead, template: Optional[str] = None) -> str:
        """
        Render the first SMS to a lead.

        A caller-supplied template only has its name placeholders filled;
        the default copy goes through the regular template.
        """
        if template and template.strip():
            return render_lead_placeholders(template, lead)
        return self.render_template(
            SMSTemplateType.OUTREACH.value,
            name=lead.first_name or lead.name or "there",
            agent_name=self.agent_name,
            business_part=self._business_part(" with "),
        )

    def render_probe(self, lead: Lead) -> str:
        return self.render_template(
            SMSTemplateType.NUMBER_PROBE.value,
            name=lead.first_name or lead.name or "there",
            agent_name=self.agent_name,
            business_part=self._business_part(" with "),
        )

    def render_hot_lead_alert(self, lead: Lead, summary: str, duration: Optional[str] = None) -> str:
        return self.render_template(
            SMSTemplateType.HOT_LEAD_ALERT.value,
            duration_part=f" ({duration} call)" if duration else "",
            name=lead.name or "Unknown",
            phone=lead.phone,
            agent_name=self.agent_name,
            summary=(summary or "")[:SUMMARY_PREVIEW_CHARS],
        )

    def render_reply_alert(
        self,
        from_number: str,
        body: str,
        outcome: str,
        lead_name: Optional[str] = None
    ) -> str:
        sender = f"{lead_name} ({from_number})" if lead_name else f"{from_number} (no matching campaign)"
        return self.render_template(
            SMSTemplateType.REPLY_ALERT.value,
            outcome=outcome.upper(),
            sender=sender,
            body=body[:SUMMARY_PREVIEW_CHARS],
        )

    def render_completion(self, total: int, succeeded: int, errors: int, sms_mode: bool = False) -> str:
        return self.render_template(
            SMSTemplateType.CAMPAIGN_COMPLETE.value,
            agent_name=self.agent_name,
            activity="texting" if sms_mode else "calling",
            total=total,
            business_part=self._business_part(" for "),
            succeeded=succeeded,
            succeeded_label="sent" if sms_mode else "calls initiated",
            errors=errors,
        )
