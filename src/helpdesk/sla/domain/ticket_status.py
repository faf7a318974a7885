"""Keyword classification of free-form ticket status names."""

from enum import Enum
from typing import Optional

from helpdesk.config import (
    IN_PROGRESS_STATUS_KEYWORDS,
    PENDING_STATUS_KEYWORDS,
    RESOLVED_STATUS_KEYWORDS,
)


class StatusCategory(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    OTHER = "other"


def classify_status(name: Optional[str]) -> StatusCategory:
    """
    Map a status name such as "Awaiting Customer Response" onto the
    category that drives pause, resume and resolution.
    """
    if not name:
        return StatusCategory.OTHER
    lowered = name.lower()
    if any(keyword in lowered for keyword in RESOLVED_STATUS_KEYWORDS):
        return StatusCategory.RESOLVED
    if any(keyword in lowered for keyword in PENDING_STATUS_KEYWORDS):
        return StatusCategory.PENDING
    if any(keyword in lowered for keyword in IN_PROGRESS_STATUS_KEYWORDS):
        return StatusCategory.IN_PROGRESS
    return StatusCategory.OTHER
