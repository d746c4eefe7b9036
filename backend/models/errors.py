from __future__ import annotations


class GenerationError(RuntimeError):
    reason = "GenerationFailed"
    retryable = False


class InvalidRequestError(GenerationError):
    reason = "InvalidRequest"


class UpstreamUnavailableError(GenerationError):
    reason = "UpstreamUnavailable"
    retryable = True


class GenerationTimeoutError(GenerationError):
    reason = "Timeout"
    retryable = True


class VendorReportedFailureError(GenerationError):
    reason = "VendorReportedFailure"


class DownloadFailedError(GenerationError):
    reason = "DownloadFailed"
    retryable = True


class PersistFailedError(GenerationError):
    reason = "PersistFailed"
    retryable = True


class RecordFailedError(GenerationError):
    reason = "RecordFailed"
    retryable = True


class BusyError(GenerationError):
    reason = "Busy"


class CancelledGenerationError(GenerationError):
    reason = "Cancelled"


class BlobStorageError(RuntimeError):
    pass


class ConfigurationError(RuntimeError):
    pass


class TaskNotFoundError(RuntimeError):
    pass


class AIGatewayError(RuntimeError):
    def __init__(self, message: str, status_code: int = 500) -> None:
        super().__init__(message)
        self.status_code = status_code
