from app.services.test_catalog import TestCatalogService
from app.services.assignment_directory import AssignmentDirectoryService
from app.services.attempt_ledger import AttemptLedgerService
from app.services.result_projector import ResultProjectorService
from app.services.notification_service import NotificationService, NotificationIntent

__all__ = [
    # Engine services
    "TestCatalogService",
    "AssignmentDirectoryService",
    "AttemptLedgerService",
    "ResultProjectorService",
    # Collaborators
    "NotificationService",
    "NotificationIntent",
]
