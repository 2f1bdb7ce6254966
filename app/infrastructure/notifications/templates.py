"""Notification templates and placeholder binding.

Templates are registered once at startup in an immutable registry and
shared read-only across threads.
"""

import re
from functools import lru_cache
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional

from infrastructure.notifications.errors import TemplateNotFoundError
from infrastructure.notifications.models import (
    BoundContent,
    NotificationChannel,
    NotificationTemplate,
    NotificationType,
)

PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")

IN_APP = NotificationChannel.IN_APP
EMAIL = NotificationChannel.EMAIL
PUSH = NotificationChannel.PUSH
SMS = NotificationChannel.SMS

DEFAULT_TEMPLATES = (
    NotificationTemplate(
        id="inspection_assignment",
        name="Inspection Assignment",
        title="New Inspection Assigned: {{inspection_name}}",
        message=(
            "You have been assigned inspection {{inspection_name}} ({{inspection_id}}) "
            "by {{assigned_by}}. Due date: {{due_date}}."
        ),
        type=NotificationType.INSPECTION_ASSIGNED,
        channels=[EMAIL, PUSH, IN_APP],
        variables=["inspection_name", "inspection_id", "assigned_by", "due_date"],
    ),
    NotificationTemplate(
        id="inspection_reassignment",
        name="Inspection Reassignment",
        title="Inspection Reassigned: {{inspection_name}}",
        message=(
            "Inspection {{inspection_name}} ({{inspection_id}}) has been reassigned "
            "to you by {{reassigned_by}}."
        ),
        type=NotificationType.INSPECTION_REASSIGNED,
        channels=[EMAIL, PUSH, IN_APP],
        variables=["inspection_name", "inspection_id", "reassigned_by"],
    ),
    NotificationTemplate(
        id="inspection_completed",
        name="Inspection Completed",
        title="Inspection Completed: {{inspection_name}}",
        message=(
            "Inspection {{inspection_name}} ({{inspection_id}}) has been completed "
            "by {{completed_by}}. Score: {{score}}%."
        ),
        type=NotificationType.INSPECTION_COMPLETED,
        channels=[EMAIL, IN_APP],
        variables=["inspection_name", "inspection_id", "completed_by", "score"],
    ),
    NotificationTemplate(
        id="inspection_cancelled",
        name="Inspection Cancelled",
        title="Inspection Cancelled: {{inspection_name}}",
        message=(
            "Inspection {{inspection_name}} ({{inspection_id}}) has been cancelled "
            "by {{cancelled_by}}. Reason: {{reason}}."
        ),
        type=NotificationType.INSPECTION_CANCELLED,
        channels=[EMAIL, IN_APP],
        variables=["inspection_name", "inspection_id", "cancelled_by", "reason"],
    ),
    NotificationTemplate(
        id="inspection_due_reminder",
        name="Inspection Due Reminder",
        title="Reminder: {{inspection_name}} Due Soon",
        message=(
            "Inspection {{inspection_name}} ({{inspection_id}}) is due in "
            "{{days_until_due}} days ({{due_date}})."
        ),
        type=NotificationType.INSPECTION_DUE_REMINDER,
        channels=[PUSH, IN_APP],
        variables=["inspection_name", "inspection_id", "days_until_due", "due_date"],
    ),
    NotificationTemplate(
        id="inspection_overdue",
        name="Inspection Overdue",
        title="OVERDUE: {{inspection_name}}",
        message=(
            "Inspection {{inspection_name}} ({{inspection_id}}) is {{days_overdue}} "
            "days overdue. Original due date: {{due_date}}."
        ),
        type=NotificationType.INSPECTION_OVERDUE,
        channels=[EMAIL, SMS, PUSH, IN_APP],
        variables=["inspection_name", "inspection_id", "days_overdue", "due_date"],
    ),
    NotificationTemplate(
        id="asset_maintenance_reminder",
        name="Asset Maintenance Reminder",
        title="Maintenance Due: {{asset_name}}",
        message=(
            "Asset {{asset_name}} ({{asset_id}}) is due for maintenance on "
            "{{next_maintenance}}."
        ),
        type=NotificationType.ASSET_MAINTENANCE_DUE,
        channels=[EMAIL, IN_APP],
        variables=["asset_name", "asset_id", "next_maintenance"],
    ),
    NotificationTemplate(
        id="system_maintenance",
        name="System Maintenance",
        title="Scheduled System Maintenance",
        message=(
            "The system will be unavailable from {{start_time}} to {{end_time}}. "
            "{{details}}"
        ),
        type=NotificationType.SYSTEM_MAINTENANCE,
        channels=[EMAIL, IN_APP],
        variables=["start_time", "end_time", "details"],
    ),
)


class TemplateRegistry:
    """Read-only mapping of template id to template.

    Example:
        registry = TemplateRegistry(DEFAULT_TEMPLATES)
        template = registry.get("inspection_overdue")
    """

    def __init__(self, templates: Iterable[NotificationTemplate]):
        entries = {}
        for template in templates:
            if template.id in entries:
                raise ValueError(f"Duplicate template id: {template.id}")
            entries[template.id] = template
        self._templates: Mapping[str, NotificationTemplate] = MappingProxyType(entries)

    def get(self, template_id: str) -> NotificationTemplate:
        """Return a template by id.

        Raises:
            TemplateNotFoundError: The id is not registered.
        """
        template: Optional[NotificationTemplate] = self._templates.get(template_id)
        if template is None:
            raise TemplateNotFoundError(template_id)
        return template

    def __contains__(self, template_id: object) -> bool:
        return template_id in self._templates

    def __len__(self) -> int:
        return len(self._templates)

    def ids(self) -> list[str]:
        return sorted(self._templates)


def substitute(text: str, variables: Mapping[str, Any]) -> str:
    """Replace ``{{key}}`` placeholders in a single pass.

    Placeholders without a matching key are left as-is, and substituted
    values are never scanned again.
    """

    def _replace(match: re.Match) -> str:
        key = match.group(1)
        if key in variables:
            return str(variables[key])
        return match.group(0)

    return PLACEHOLDER.sub(_replace, text)


class TemplateBinder:
    """Binds variables into registered templates.

    Args:
        registry: Template registry to look templates up in
    """

    def __init__(self, registry: TemplateRegistry):
        self.registry = registry

    def bind(self, template_id: str, variables: Mapping[str, Any]) -> BoundContent:
        """Produce the title and message for a template.

        Args:
            template_id: Registered template id
            variables: Placeholder values

        Returns:
            BoundContent with substituted title and message.

        Raises:
            TemplateNotFoundError: The id is not registered.
        """
        template = self.registry.get(template_id)
        return BoundContent(
            title=substitute(template.title, variables),
            message=substitute(template.message, variables),
        )


def build_default_registry() -> TemplateRegistry:
    return TemplateRegistry(DEFAULT_TEMPLATES)


@lru_cache
def get_template_registry() -> TemplateRegistry:
    """Get the process-wide registry of built-in templates."""
    return build_default_registry()
