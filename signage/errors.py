"""Error taxonomy shared by the detection loop, identity stores and server."""

from __future__ import annotations


class SignageError(Exception):
    """Base class for recoverable kiosk errors."""


class InvalidPayload(SignageError):
    """A registration/save request is missing its id or descriptor."""


class StoreUnavailable(SignageError):
    """Identities could not be read from or written to the backing store."""


class InferenceFailure(SignageError):
    """The face inference call rejected or raised."""


class SourceUnavailable(SignageError):
    """The video source (camera or file) cannot be opened."""
