from __future__ import annotations


class BrandGuardError(Exception):
    pass


class MediaFetchError(BrandGuardError):
    """The base image of a submission could not be fetched or decoded."""


class FrameCaptureError(BrandGuardError):
    """The decode surface could not produce a readable frame."""

    def __init__(self, message: str, *, forbidden: bool = False, timed_out: bool = False):
        super().__init__(message)
        self.forbidden = forbidden
        self.timed_out = timed_out


class UnsupportedSourceError(BrandGuardError):
    """External URL with no pixel capture capability."""

    def __init__(self, message: str, *, host: str | None = None, video_host: bool = False):
        super().__init__(message)
        self.host = host
        self.video_host = video_host


class AnalysisFailure(BrandGuardError):
    pass


class SerializationError(BrandGuardError):
    pass


class InvalidTransition(BrandGuardError):
    pass


class SubmissionNotFound(BrandGuardError):
    pass


class RenderNotAllowed(BrandGuardError):
    pass
