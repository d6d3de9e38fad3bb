"""
Exception hierarchy for dataset split and export operations.
"""


class DatasetExportError(Exception):
    """Base class for all errors raised by the split and export subsystem."""
    pass


class NotFoundError(DatasetExportError):
    """Raised when a dataset, project, image or class does not exist."""
    pass


class InvalidRequestError(DatasetExportError):
    """Raised when a request is structurally valid but cannot be honoured."""
    pass


class InvalidStatusTransitionError(InvalidRequestError):
    """Raised when a dataset status change is not allowed by the state machine."""
    pass


class ForbiddenError(DatasetExportError):
    """Raised by ownership checks performed before this subsystem runs."""
    pass
