"""Exception types shared across the deletemyex package."""

from __future__ import annotations


class AdapterFailure(RuntimeError):
    """A detection, embedding or image-loading adapter call failed."""

    def __init__(self, stage: str, image_ref: object, cause: BaseException) -> None:
        super().__init__(f"{stage} failed for {image_ref}: {cause}")
        self.stage = stage
        self.image_ref = image_ref
        self.cause = cause


class LibraryError(RuntimeError):
    """Photo library rejected an operation (transport or permission error)."""


class WorkflowBusyError(RuntimeError):
    """Raised when a library action is requested while another is in flight."""
