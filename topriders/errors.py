"""Error kinds raised by pipeline stages and the Outcome value the widget consumes."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

from .constants import ERROR_MESSAGES


class ErrorKind(str, Enum):
    TIMEOUT = "Timeout"
    TRANSPORT = "Transport"
    NO_DATA = "NoData"
    INVALID_STRUCTURE = "InvalidStructure"
    RENDER_FAILURE = "RenderFailure"


class PipelineError(Exception):
    """Base class for failures the widget turns into a fallback or message."""

    kind: ErrorKind = ErrorKind.TRANSPORT

    def __init__(self, message: str = "", kind: Optional[ErrorKind] = None):
        super().__init__(message)
        if kind is not None:
            self.kind = kind


class FetchTimeoutError(PipelineError):
    kind = ErrorKind.TIMEOUT


class TransportError(PipelineError):
    kind = ErrorKind.TRANSPORT


class NoDataError(PipelineError):
    kind = ErrorKind.NO_DATA


class InvalidStructureError(PipelineError):
    kind = ErrorKind.INVALID_STRUCTURE


class InvalidSourceError(InvalidStructureError):
    """The configured spreadsheet URL matches no supported shape."""


class RenderError(PipelineError):
    kind = ErrorKind.RENDER_FAILURE


class ConfigurationError(RuntimeError):
    """Fatal misconfiguration, e.g. a missing display target."""


def user_message(kind: Optional[ErrorKind]) -> str:
    """Plain-language text shown to visitors for an error kind."""
    if kind in (ErrorKind.TIMEOUT, ErrorKind.TRANSPORT):
        return ERROR_MESSAGES["network"]
    if kind is ErrorKind.INVALID_STRUCTURE:
        return ERROR_MESSAGES["parse"]
    if kind is ErrorKind.NO_DATA:
        return ERROR_MESSAGES["no_data"]
    return ERROR_MESSAGES["generic"]


T = TypeVar("T")


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Either a value or the PipelineError that prevented one."""

    value: Optional[T] = None
    error: Optional[PipelineError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def kind(self) -> Optional[ErrorKind]:
        return self.error.kind if self.error is not None else None

    @classmethod
    def success(cls, value: Any) -> "Outcome":
        return cls(value=value)

    @classmethod
    def failure(cls, error: PipelineError) -> "Outcome":
        return cls(error=error)


__all__ = [
    "ConfigurationError",
    "ErrorKind",
    "FetchTimeoutError",
    "InvalidSourceError",
    "InvalidStructureError",
    "NoDataError",
    "Outcome",
    "PipelineError",
    "RenderError",
    "TransportError",
    "user_message",
]
