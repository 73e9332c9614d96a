from __future__ import annotations


class FolioError(RuntimeError):
    """Base class for failures reported to whoever asked to open or manage a book."""


class MalformedBookError(FolioError):
    pass


class ZipSlipError(FolioError):
    pass


class BookNotFoundError(FolioError):
    pass


class RenditionError(FolioError):
    pass


class InternalError(FolioError):
    """Raised when an invariant the code itself maintains turns out not to hold."""

    def __init__(self, message: str) -> None:
        if not message.startswith("Internal error"):
            message = f"Internal error: {message}"
        super().__init__(message)
