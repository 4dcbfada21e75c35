"""Exceptions raised while resolving requirements."""

from typing import Optional


class ResolutionError(Exception):
    """Base class for failures that abort a resolution run."""


class IndexFetchError(ResolutionError):
    """A listing or metadata document could not be fetched or parsed."""

    def __init__(self, message: str, url: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status = status


class DispatchError(ResolutionError):
    """The request/response channel of the fetch dispatcher is unusable."""


class ResolutionTimeout(ResolutionError):
    """The caller-imposed wall-clock limit elapsed before resolution finished."""


class RequirementParseError(ValueError):
    """A root requirement could not be parsed."""
