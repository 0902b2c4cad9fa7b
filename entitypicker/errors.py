"""
Error taxonomy for entity selection and reference resolution.

Controller-local failures (fetch, render) are turned into UI-visible state.
Decode-action failures propagate to the caller.
"""


class EntityPickerError(Exception):
    """Base class for all entitypicker errors."""
    pass


class FetchFailed(EntityPickerError):
    """Raised when the catalog capability fails to return records."""

    def __init__(self, message: str, query=None):
        super().__init__(message)
        self.query = query


class NotFound(EntityPickerError):
    """Raised when a decode or lookup matches zero records."""

    def __init__(self, message: str, identifier=None):
        super().__init__(message)
        self.identifier = identifier


class AmbiguousMatch(EntityPickerError):
    """Raised for multiple candidates when the ambiguity policy is 'fail'."""

    def __init__(self, message: str, candidates=()):
        super().__init__(message)
        self.candidates = list(candidates)


class MalformedFilter(EntityPickerError):
    """Caller configuration error, e.g. a decode filter without a kind."""
    pass


class TemplateRenderError(EntityPickerError):
    """Reserved name. Rendering degrades to partial output and never raises this."""
    pass
