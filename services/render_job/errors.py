"""
Render Job Errors
=================
Error taxonomy for the render pipeline.

Every stage raises a subclass of RenderJobError. The orchestrator converts
whatever escapes a stage into one failure response carrying the error kind
and a human-readable message.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Kinds of job failure surfaced to callers."""
    UNAUTHORIZED = "Unauthorized"
    INVALID_REQUEST = "InvalidRequest"
    WORKSPACE = "WorkspaceError"
    RENDER = "RenderError"
    ENCODE = "EncodeError"
    UPLOAD = "UploadError"
    INTERNAL = "InternalError"
    SERVICE_BUSY = "ServiceBusy"
    CANCELLED = "Cancelled"


class RenderJobError(Exception):
    """Base class for all render pipeline failures."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class UnauthorizedError(RenderJobError):
    kind = ErrorKind.UNAUTHORIZED


class InvalidRequestError(RenderJobError):
    kind = ErrorKind.INVALID_REQUEST

    def __init__(self, message: str, errors: list = None):
        self.errors = errors or []
        super().__init__(message)


class WorkspaceError(RenderJobError):
    kind = ErrorKind.WORKSPACE


class RenderError(RenderJobError):
    kind = ErrorKind.RENDER


class EncodeError(RenderJobError):
    kind = ErrorKind.ENCODE


class UploadError(RenderJobError):
    kind = ErrorKind.UPLOAD


class InternalError(RenderJobError):
    kind = ErrorKind.INTERNAL


class ServiceBusyError(RenderJobError):
    kind = ErrorKind.SERVICE_BUSY


class JobCancelledError(RenderJobError):
    kind = ErrorKind.CANCELLED
