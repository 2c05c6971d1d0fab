"""
Custom Exceptions for the CollegeSync assessment engine
=======================================================

Every error the engine raises carries a stable ``code`` and a human readable
``message``. The API layer turns them into JSON responses in the exception
handlers registered by ``app.main``.

Usage:
    from app.core.exceptions import TestNotFoundError, WindowError

    if not test:
        raise TestNotFoundError(test_id)
"""

from typing import Optional, Any, Dict, List


class CollegeSyncError(Exception):
    """Base exception for all CollegeSync errors"""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }


# ============================================
# Authorization Errors (403-type)
# ============================================

class AuthorizationError(CollegeSyncError):
    """Actor has no standing for the target resource"""

    status_code = 403

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message, code="NOT_AUTHORIZED")


class NotAssignedError(AuthorizationError):
    """Test is not assigned to the student"""

    def __init__(self, test_id: str):
        super().__init__("Test not assigned to you")
        self.code = "NOT_ASSIGNED"
        self.details = {"test_id": test_id}


# ============================================
# Resource Errors (404-type)
# ============================================

class ResourceNotFoundError(CollegeSyncError):
    """Base class for not found errors"""

    status_code = 404

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} with ID '{resource_id}' not found",
            code=f"{resource_type.upper().replace(' ', '_')}_NOT_FOUND",
            details={"resource_type": resource_type, "resource_id": resource_id}
        )


class TestNotFoundError(ResourceNotFoundError):
    __test__ = False  # keep pytest from collecting this class

    def __init__(self, test_id: str):
        super().__init__("Test", test_id)


class AssignmentNotFoundError(ResourceNotFoundError):
    def __init__(self, assignment_id: str):
        super().__init__("Assignment", assignment_id)


class AttemptNotFoundError(ResourceNotFoundError):
    def __init__(self, test_id: str):
        super().__init__("Test attempt", test_id)
        self.message = "Test attempt not found"


# ============================================
# Validation Errors (400-type)
# ============================================

class ValidationError(CollegeSyncError):
    """Input validation failed"""

    status_code = 400

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        errors: Optional[List[Dict[str, Any]]] = None
    ):
        details: Dict[str, Any] = {}
        if field:
            details["field"] = field
        if errors:
            details["errors"] = errors
        elif field:
            details["errors"] = [{"field": field, "message": message}]
        super().__init__(message, code="VALIDATION_ERROR", details=details)


class UnknownQuestionError(ValidationError):
    """Answer references a question the test does not contain"""

    def __init__(self, question_id: str):
        super().__init__(f"Invalid question ID: {question_id}", field="answers")
        self.code = "UNKNOWN_QUESTION"
        self.details["question_id"] = question_id


class WindowError(ValidationError):
    """Test is not open at this instant"""

    NOT_STARTED = "not_started"
    ENDED = "ended"

    def __init__(self, reason: str):
        message = "Test has not started yet" if reason == self.NOT_STARTED else "Test has ended"
        super().__init__(message)
        self.code = "TEST_WINDOW_CLOSED"
        self.reason = reason
        self.details = {"reason": reason}


class NoMatchError(ValidationError):
    """Student targeting resolved to nobody"""

    def __init__(self, message: str = "No students found matching the criteria"):
        super().__init__(message)
        self.code = "NO_STUDENTS_MATCHED"


class AssignmentNotAcceptedError(ValidationError):
    """Student targeting attempted on a college assignment that is not accepted"""

    def __init__(self, assignment_id: str, current_status: str):
        super().__init__("Test assignment must be accepted before assigning students", field="status")
        self.code = "ASSIGNMENT_NOT_ACCEPTED"
        self.details.update({"assignment_id": assignment_id, "status": current_status})


class ExtractionError(ValidationError):
    """Questions could not be produced from an uploaded document"""

    def __init__(self, message: str, source: Optional[str] = None):
        super().__init__(message)
        self.code = "EXTRACTION_FAILED"
        if source:
            self.details["source"] = source


# ============================================
# Conflict Errors (409-type)
# ============================================

class AlreadyAttemptedError(CollegeSyncError):
    """An attempt already exists for this (test, student) pair"""

    status_code = 409

    def __init__(self, test_id: str, message: str = "Test already attempted"):
        super().__init__(message, code="ALREADY_ATTEMPTED", details={"test_id": test_id})


class AssignmentStateError(CollegeSyncError):
    """College assignment was already accepted or rejected"""

    status_code = 409

    def __init__(self, assignment_id: str, current_status: str):
        super().__init__(
            f"Assignment has already been {current_status}",
            code="ASSIGNMENT_ALREADY_DECIDED",
            details={"assignment_id": assignment_id, "status": current_status}
        )


# ============================================
# Collaborator Errors (503-type)
# ============================================

class DependencyFailure(CollegeSyncError):
    """Storage or another collaborator failed"""

    status_code = 503

    def __init__(self, dependency: str, message: str = "Dependency unavailable"):
        super().__init__(message, code="DEPENDENCY_FAILURE", details={"dependency": dependency})


# ============================================
# Helper function for API responses
# ============================================

def error_response(error: CollegeSyncError) -> Dict[str, Any]:
    """Convert exception to API error response format"""
    return {
        "success": False,
        "error": error.to_dict()
    }
