"""Error taxonomy for the dashboard core.

Every error here is recoverable: the operation that raised it leaves the
draft, the uploaded file and the intake state where they were, so the user
can correct the input and try again.
"""
from typing import List, Optional

from models import FieldError


class DashboardError(Exception):
    """Base class for user-facing dashboard errors"""
    error_type = "dashboard_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class DraftValidationError(DashboardError):
    """Draft is not submittable; raised before any network call"""
    error_type = "validation_error"

    def __init__(self, errors: List[FieldError]):
        super().__init__("; ".join(e.message for e in errors) or "Invalid draft")
        self.errors = errors


class NetworkError(DashboardError):
    """Backend unreachable or answered with a non-2xx status"""
    error_type = "network_error"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(DashboardError):
    """No valid bearer credential in the session"""
    error_type = "authentication_error"


class UnsupportedFileType(DashboardError):
    """Selected file is not a PDF"""
    error_type = "unsupported_file_type"


class InvalidUpload(DashboardError):
    """Selected PDF is empty or too large"""
    error_type = "invalid_upload"


class CannotRemoveLastLine(DashboardError):
    error_type = "cannot_remove_last_line"


class LineNotFound(DashboardError):
    error_type = "line_not_found"


class ProductNotFound(DashboardError):
    error_type = "product_not_found"


class InvalidLineValue(DashboardError):
    """Rejected line edit (negative price, zero quantity, unknown rate...)"""
    error_type = "invalid_line_value"


class SubmissionInProgress(DashboardError):
    """A submission for this draft or file is already in flight"""
    error_type = "submission_in_progress"
