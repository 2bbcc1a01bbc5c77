"""Failure taxonomy for the audit matrix.

Each class maps to one user-visible failure kind. The service layer turns
all of them into an ``error`` narration entry; none is fatal.
"""


class AuditMatrixError(Exception):
    """Base class for every recoverable audit-matrix failure."""


class InputRejectedError(AuditMatrixError):
    """A document failed intake validation and never reached the pipeline."""


class ExtractionServiceError(AuditMatrixError):
    """The extraction backend failed or answered with unparsable text."""


class MalformedResponseError(AuditMatrixError):
    """The extraction answer parsed but does not match the module schema."""


class SynthesisError(AuditMatrixError):
    """Workbook construction failed; no partial artifact is returned."""
