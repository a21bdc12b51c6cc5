"""Capture operations and their response models."""

from clerkbook.capture.errors import CaptureValidationError, InsufficientCreditsError
from clerkbook.capture.models import (
    HTTP_CREATED,
    HTTP_OK,
    CaptureResponse,
    CaptureResult,
    CreditsInfo,
)
from clerkbook.capture.service import (
    CaptureService,
    resolve_file_type,
    validate_capture_url,
)


__all__ = [
    "HTTP_CREATED",
    "HTTP_OK",
    "CaptureResponse",
    "CaptureResult",
    "CaptureService",
    "CaptureValidationError",
    "CreditsInfo",
    "InsufficientCreditsError",
    "resolve_file_type",
    "validate_capture_url",
]
