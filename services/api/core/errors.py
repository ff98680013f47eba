"""
Error taxonomy for the back office core.

Every error carries the HTTP status it maps to and a short machine code,
so main.py can translate them with a single exception handler.
"""


class BackOfficeError(Exception):
    status_code = 500
    code = "backoffice_error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class StorageUnavailable(BackOfficeError):
    """Durable I/O failed (disk full, permission denied, unreadable file)."""
    status_code = 500
    code = "storage_unavailable"


class TemplateNotFound(BackOfficeError):
    """Named template (or requested version) does not exist. Configuration error."""
    status_code = 500
    code = "template_not_found"


class InvalidAttachment(BackOfficeError):
    """Caller supplied bytes that are not a usable PDF."""
    status_code = 400
    code = "invalid_attachment"


class RenderTimeout(BackOfficeError):
    """Rendering/conversion did not finish in bounded time. Safe to retry."""
    status_code = 504
    code = "render_timeout"


class RenderFailed(BackOfficeError):
    status_code = 500
    code = "render_failed"


class RecordNotFound(BackOfficeError):
    status_code = 404
    code = "record_not_found"


class SequenceConflict(BackOfficeError):
    """A reserved number was taken by someone else before commit."""
    status_code = 409
    code = "sequence_conflict"


class MergeDegraded(BackOfficeError):
    """
    Non-fatal. Never raised: ArtifactResult.degradation describes why the
    artifact is the unmerged base, and the API reports it as a warning.
    """
    status_code = 200
    code = "merge_degraded"
