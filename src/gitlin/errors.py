from __future__ import annotations


class TransportError(RuntimeError):
    """A collaborator call failed at the network, auth, or process level."""


class ExtractionValidationError(ValueError):
    """Extraction output did not match the candidate item shape."""


class ItemCreationError(RuntimeError):
    """The tracker rejected a single issue creation."""
