"""Notification/audit sink for reconciliation events.

Events are delivered fire-and-forget: a sink that raises is logged and
ignored so that auditing can never block or undo the operation it describes.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from openpyxl.workbook import Workbook

from . import data_manager, log

if TYPE_CHECKING:
    from .runtime import RuntimeContext
    from .subjects import SubjectRef


ACTION_TRANSITION = "transition"
ACTION_CORRECTION = "correction"


@dataclass(frozen=True)
class AuditEvent:
    """One terminal transition or correction of a subject."""

    subject: SubjectRef
    action: str
    from_status: Optional[str]
    to_status: Optional[str]
    actor: Optional[str]
    timestamp: datetime
    detail: Optional[str] = None


class WorkbookAuditSink:
    """Append audit events to the workbook's ``AuditLog`` sheet."""

    def __init__(self, workbook: Workbook) -> None:
        self._workbook = workbook

    def __call__(self, event: AuditEvent) -> None:
        data_manager.append_audit(
            self._workbook,
            data_manager.AuditRow(
                timestamp_iso=event.timestamp.isoformat(),
                subject_kind=event.subject.kind.value,
                subject_key=event.subject.key,
                action=event.action,
                from_status=event.from_status,
                to_status=event.to_status,
                actor=event.actor,
                detail=event.detail,
            ),
        )


def emit(context: RuntimeContext, event: AuditEvent) -> None:
    """Deliver ``event`` to the context's sink, if any, without raising."""

    sink = context.audit_sink
    if sink is None:
        return
    try:
        sink(event)
    except Exception:
        log.warning(
            "Audit sink failed for %s '%s' (%s)",
            event.subject.kind.value,
            event.subject.key,
            event.action,
            exc_info=True,
        )
        return
    log.debug("Audit event emitted for %s '%s'", event.subject.kind.value, event.subject.key)
