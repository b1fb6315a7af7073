# Services module
from app.services.audit_planning_service import AuditPlanningService, AuditCreationResult
from app.services.audit_counting_service import AuditCountingService, CountSubmissionResult
from app.services.audit_report_service import AuditReportService
from app.services.audit_sequence_service import AuditSequenceService
from app.services.zone_membership_service import ZoneMembershipService, ZoneMembershipIndex

__all__ = [
    "AuditPlanningService",
    "AuditCreationResult",
    "AuditCountingService",
    "CountSubmissionResult",
    "AuditReportService",
    "AuditSequenceService",
    "ZoneMembershipService",
    "ZoneMembershipIndex",
]
