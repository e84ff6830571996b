"""Document intake workflow.

Both intake paths run the same machine per submission attempt::

    Idle -> Validating -> Submitting -> Succeeded | Failed

A draft or file that fails validation goes straight back to Idle without any
network call. While Submitting, a second submit or any edit raises
``SubmissionInProgress``; that is the only guard against double submission,
since the backend does not deduplicate. Nothing is retried automatically:
resubmitting after a failure starts again from Validating. A cancelled
submission returns to Idle; an unexpected error ends in Failed and is re-raised.
"""
import asyncio
import logging
from enum import Enum
from typing import Any, Callable, List, Optional

from pydantic import BaseModel, ConfigDict

import line_set
from config import config
from errors import (
    AuthenticationError, DraftValidationError, InvalidUpload, NetworkError,
    SubmissionInProgress, UnsupportedFileType,
)
from models import FieldError, InvoiceDraft, InvoiceTotals, SubmissionResult, UploadedDocument
from tax_calculator import compute_totals

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"


class IntakeState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    SUBMITTING = "submitting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class IntakeSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    state: IntakeState = IntakeState.IDLE
    error: Optional[str] = None
    error_type: Optional[str] = None
    field_errors: List[FieldError] = []
    result: Optional[SubmissionResult] = None

    @property
    def can_submit(self) -> bool:
        return self.state is not IntakeState.SUBMITTING


class IntakeWorkflow:
    """State handling shared by the compose and upload paths"""
    name = "intake"

    def __init__(self, backend):
        self.backend = backend
        self.snapshot = IntakeSnapshot()
        self.listeners: List[Callable[[IntakeSnapshot], None]] = []

    def subscribe(self, listener: Callable[[IntakeSnapshot], None]) -> None:
        self.listeners.append(listener)

    def _transition(self, state: IntakeState, **fields) -> IntakeSnapshot:
        self.snapshot = IntakeSnapshot(state=state, **fields)
        logger.info(f"{self.name} intake -> {state.value}", extra={'state': state.value})
        for listener in self.listeners:
            listener(self.snapshot)
        return self.snapshot

    def _ensure_not_submitting(self) -> None:
        if self.snapshot.state is IntakeState.SUBMITTING:
            raise SubmissionInProgress("A submission is already in progress. Please wait for it to finish.")

    def _validate(self) -> List[FieldError]:
        raise NotImplementedError

    def _payload(self) -> Any:
        raise NotImplementedError

    async def _send(self, payload) -> SubmissionResult:
        raise NotImplementedError

    def _on_success(self, result: SubmissionResult) -> None:
        raise NotImplementedError

    async def submit(self) -> IntakeSnapshot:
        self._ensure_not_submitting()
        self._transition(IntakeState.VALIDATING)

        errors = self._validate()
        if errors:
            error = DraftValidationError(errors)
            logger.warning(f"{self.name} submission blocked: {error.message}",
                           extra={'error_type': error.error_type})
            return self._transition(
                IntakeState.IDLE,
                error=error.message,
                error_type=error.error_type,
                field_errors=errors,
            )

        # Snapshot taken before awaiting, so later state cannot leak into the request
        payload = self._payload()
        self._transition(IntakeState.SUBMITTING)
        try:
            result = await self._send(payload)
        except (NetworkError, AuthenticationError) as e:
            logger.error(f"{self.name} submission failed: {e.message}", extra={'error_type': e.error_type})
            return self._transition(IntakeState.FAILED, error=e.message, error_type=e.error_type)
        except asyncio.CancelledError:
            logger.warning(f"{self.name} submission cancelled")
            self._transition(IntakeState.IDLE)
            raise
        except Exception as e:
            logger.exception(f"{self.name} submission crashed: {e}")
            self._transition(IntakeState.FAILED, error="Unexpected error while submitting. Please try again.",
                             error_type="submission_failed")
            raise

        self._on_success(result)
        logger.info(f"{self.name} submission sealed as {result.document_id} ({result.status})")
        return self._transition(IntakeState.SUCCEEDED, result=result)


class ComposeIntake(IntakeWorkflow):
    """Owns the active draft of the composition view"""
    name = "compose"

    def __init__(self, backend, catalog):
        super().__init__(backend)
        self.catalog = catalog
        self.draft: InvoiceDraft = line_set.new_draft()

    def totals(self) -> InvoiceTotals:
        return compute_totals(self.draft.lines)

    def add_line(self) -> str:
        self._ensure_not_submitting()
        self.draft, line_id = line_set.add_line(self.draft)
        return line_id

    def remove_line(self, line_id: str) -> InvoiceDraft:
        self._ensure_not_submitting()
        self.draft = line_set.remove_line(self.draft, line_id)
        return self.draft

    def update_line(self, line_id: str, field: str, value) -> InvoiceDraft:
        self._ensure_not_submitting()
        self.draft = line_set.update_line(self.draft, line_id, field, value)
        return self.draft

    async def select_product(self, line_id: str, product_ref: str) -> InvoiceDraft:
        self._ensure_not_submitting()
        self.draft = await line_set.select_product(self.draft, line_id, product_ref, self.catalog)
        return self.draft

    def set_client(self, client_ref: Optional[str]) -> InvoiceDraft:
        self._ensure_not_submitting()
        self.draft = line_set.set_client(self.draft, client_ref)
        return self.draft

    def set_notes(self, notes: Optional[str]) -> InvoiceDraft:
        self._ensure_not_submitting()
        self.draft = line_set.set_notes(self.draft, notes)
        return self.draft

    def discard(self) -> InvoiceDraft:
        """Throw the draft away and start a blank one"""
        self._ensure_not_submitting()
        self.draft = line_set.new_draft()
        self.snapshot = IntakeSnapshot()
        return self.draft

    def _validate(self) -> List[FieldError]:
        return line_set.validate_draft(self.draft)

    def _payload(self) -> InvoiceDraft:
        return self.draft

    async def _send(self, payload: InvoiceDraft) -> SubmissionResult:
        return await self.backend.issue_invoice(payload)

    def _on_success(self, result: SubmissionResult) -> None:
        self.draft = line_set.new_draft()


class UploadIntake(IntakeWorkflow):
    """Holds the selected PDF until it is sealed or changed"""
    name = "upload"

    def __init__(self, backend, max_size_bytes: int = None):
        super().__init__(backend)
        self.max_size_bytes = max_size_bytes or config.max_file_size_bytes
        self.file: Optional[UploadedDocument] = None

    def select_file(self, filename: str, content_type: Optional[str], payload: bytes) -> UploadedDocument:
        """Accept a PDF for upload; anything else is rejected without a state change"""
        self._ensure_not_submitting()

        media_type = (content_type or "").split(";")[0].strip().lower()
        if media_type != PDF_CONTENT_TYPE:
            logger.warning(f"Rejected upload {filename!r} with type {content_type!r}",
                           extra={'error_type': UnsupportedFileType.error_type})
            raise UnsupportedFileType("Only PDF files are allowed.")

        if not payload:
            raise InvalidUpload("The selected file is empty.")
        if len(payload) > self.max_size_bytes:
            raise InvalidUpload(
                f"File too large. Maximum size is {self.max_size_bytes // (1024 * 1024)}MB"
            )

        self.file = UploadedDocument(filename=filename or "document.pdf",
                                     content_type=PDF_CONTENT_TYPE, payload=payload)
        logger.info(f"Selected {self.file.filename} ({self.file.size_bytes} bytes) for upload")
        return self.file

    def change_file(self) -> None:
        self._ensure_not_submitting()
        self.file = None

    def _validate(self) -> List[FieldError]:
        if self.file is None:
            return [FieldError(field="file", message="Select a PDF file to upload.")]
        return []

    def _payload(self) -> UploadedDocument:
        return self.file

    async def _send(self, payload: UploadedDocument) -> SubmissionResult:
        return await self.backend.upload_pdf(payload)

    def _on_success(self, result: SubmissionResult) -> None:
        self.file = None
