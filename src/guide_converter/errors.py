from __future__ import annotations

import re

SUPPORT_MESSAGE = "Something went wrong please contact support or retry"

_RATE_LIMIT_RE = re.compile(r"\b429\b|rate\s*limit|quota|too\s+many\s+requests", re.IGNORECASE)
_AUTH_OR_BAD_REQUEST_RE = re.compile(r"\b(400|401|403|404)\b|invalid|not\s+found", re.IGNORECASE)


class ConversionError(RuntimeError):
    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


class ProviderNotConfigured(ConversionError):
    def __init__(self, provider: str) -> None:
        super().__init__("NOT_CONFIGURED", f"{provider} is not configured")
        self.provider = provider


class ProviderError(ConversionError):
    """A single failed call to an external capability."""

    def __init__(self, provider: str, message: str, *, status: int | None = None) -> None:
        super().__init__("PROVIDER_ERROR", message)
        self.provider = provider
        self.status = status


class CandidateExhausted(ConversionError):
    def __init__(self, name: str, attempts: int, last_error: BaseException, *, abandoned: bool = False) -> None:
        verb = "abandoned" if abandoned else "exhausted"
        super().__init__("CANDIDATE_EXHAUSTED", f"{name} {verb} after {attempts} attempt(s): {last_error}")
        self.name = name
        self.attempts = attempts
        self.last_error = last_error
        self.abandoned = abandoned


class ChainExhausted(ConversionError):
    def __init__(self, failures: list[CandidateExhausted]) -> None:
        names = ", ".join(failure.name for failure in failures) or "<none>"
        super().__init__("CHAIN_EXHAUSTED", f"All candidates failed: {names}")
        self.failures = failures


class CriticalConversionError(ConversionError):
    """Every configured rewrite provider failed for one file; the run must fail."""

    def __init__(self, source: str, message: str = SUPPORT_MESSAGE) -> None:
        super().__init__("REWRITE_EXHAUSTED", message)
        self.source = source


class NoInputFilesError(ConversionError):
    def __init__(self, upload_id: str) -> None:
        super().__init__("NO_INPUT_FILES", f"No uploaded files found for upload {upload_id}")
        self.upload_id = upload_id


class UploadNotFoundError(ConversionError):
    def __init__(self, upload_id: str) -> None:
        super().__init__("UPLOAD_NOT_FOUND", f"Upload not found: {upload_id}")
        self.upload_id = upload_id


class RunNotFoundError(ConversionError):
    def __init__(self, run_id: str) -> None:
        super().__init__("RUN_NOT_FOUND", f"Run not found: {run_id}")
        self.run_id = run_id


def _describe(error: BaseException) -> str:
    status = getattr(error, "status", None)
    return f"{status or ''} {error}"


def is_rate_limit_error(error: BaseException) -> bool:
    return bool(_RATE_LIMIT_RE.search(_describe(error)))


def is_auth_or_bad_request(error: BaseException) -> bool:
    return bool(_AUTH_OR_BAD_REQUEST_RE.search(_describe(error)))


def is_non_retryable(error: BaseException) -> bool:
    """Failures that will not succeed on retry within the same run."""

    return is_rate_limit_error(error) or is_auth_or_bad_request(error)


__all__ = [
    "SUPPORT_MESSAGE",
    "CandidateExhausted",
    "ChainExhausted",
    "ConversionError",
    "CriticalConversionError",
    "NoInputFilesError",
    "ProviderError",
    "ProviderNotConfigured",
    "RunNotFoundError",
    "UploadNotFoundError",
    "is_auth_or_bad_request",
    "is_non_retryable",
    "is_rate_limit_error",
]
