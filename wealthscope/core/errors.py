from __future__ import annotations

from enum import Enum
from typing import List, Optional

from wealthscope.core.schemas import ErrorEnvelope


class ErrorKind(str, Enum):
    MISSING_CREDENTIAL = "MissingCredential"
    INVALID_CONFIGURATION = "InvalidConfiguration"
    PROVIDER_HTTP_ERROR = "ProviderHttpError"
    NETWORK_ERROR = "NetworkError"
    EMPTY_RESPONSE = "EmptyResponse"
    MALFORMED_OUTPUT = "MalformedOutput"
    READ_ERROR = "ReadError"
    UNKNOWN = "Unknown"


class AnalysisError(Exception):
    kind: ErrorKind = ErrorKind.UNKNOWN


class MissingCredential(AnalysisError):
    kind = ErrorKind.MISSING_CREDENTIAL


class InvalidConfiguration(AnalysisError):
    kind = ErrorKind.INVALID_CONFIGURATION

    def __init__(self, message: str, *, field: str) -> None:
        super().__init__(message)
        self.field = field


class ProviderHttpError(AnalysisError):
    kind = ErrorKind.PROVIDER_HTTP_ERROR

    def __init__(self, status_code: int, body: str, *, provider: str = "", detail: Optional[str] = None) -> None:
        label = provider or "Provider"
        super().__init__(f"{label} API Error ({status_code}): {detail or body[:300]}")
        self.status_code = int(status_code)
        self.body = body
        self.provider = provider


class NetworkError(AnalysisError):
    kind = ErrorKind.NETWORK_ERROR


class EmptyResponse(AnalysisError):
    kind = ErrorKind.EMPTY_RESPONSE


class MalformedOutput(AnalysisError):
    kind = ErrorKind.MALFORMED_OUTPUT

    def __init__(self, message: str, *, raw_text: str = "", issues: Optional[List[str]] = None) -> None:
        super().__init__(message)
        self.raw_text = raw_text
        self.issues = list(issues or [])


class ReadError(AnalysisError):
    kind = ErrorKind.READ_ERROR

    def __init__(self, message: str, *, image_name: str) -> None:
        super().__init__(message)
        self.image_name = image_name


class ImageStageError(AnalysisError):
    """One per-image OCR call failed; raised `from` the underlying error."""

    def __init__(self, cause: BaseException, *, image_index: int, image_name: str, model: str) -> None:
        super().__init__(
            f"Vision model call failed on image {image_index} ({image_name}, model: {model}): {cause}"
        )
        self.image_index = image_index
        self.image_name = image_name
        self.model = model
        self.kind = cause.kind if isinstance(cause, AnalysisError) else ErrorKind.UNKNOWN


class AnalysisFailed(AnalysisError):
    """The single user-facing error raised at the orchestrator boundary."""

    def __init__(self, envelope: ErrorEnvelope, *, kind: ErrorKind) -> None:
        super().__init__(envelope.message)
        self.envelope = envelope
        self.kind = kind

    @property
    def code(self) -> str:
        return self.envelope.code
