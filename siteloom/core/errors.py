"""Error taxonomy for SiteLoom.

Every domain error carries a human message, the HTTP status the API layer
maps it to, and a details dict merged into the JSON error body:
- ValidationError: malformed input, rejected before any state change
- NotFoundError: project / element / edit / job missing
- ConflictError: job already running, edit already bound, publish race loser
- RateLimitError: too many analysis jobs in the trailing hour
- DiffSafetyError: SourceUnresolved / AmbiguousMatch (batch-wide abort)
- UpstreamError: version-control or browser-automation failure

AnalysisCancelled is an internal crawl signal, never surfaced over HTTP.
"""

from typing import Any, Dict, List, Optional


class SiteloomError(Exception):
    """Base class for all SiteLoom domain errors."""

    status_code = 500

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, **self.details}


class ValidationError(SiteloomError):
    status_code = 400


class NotFoundError(SiteloomError):
    status_code = 404


class ConflictError(SiteloomError):
    status_code = 409


class AlreadyRunningError(ConflictError):
    """A non-terminal analysis job already exists for the project."""

    def __init__(self, project_id: str, job_id: Optional[str] = None):
        super().__init__(
            "Analysis already in progress",
            project_id=str(project_id),
            job_id=str(job_id) if job_id else None,
        )
        self.job_id = str(job_id) if job_id else None


class RateLimitError(SiteloomError):
    status_code = 429


class UpstreamError(SiteloomError):
    """Version-control host or browser automation failed."""

    status_code = 502


class DiffSafetyError(SiteloomError):
    """A publish batch could not be mapped safely onto source files.

    ``failures`` lists every offending element in the batch, not just the
    first, so the editor can fix them all at once.
    """

    status_code = 422

    def __init__(self, message: str, failures: List[Dict[str, Any]]):
        super().__init__(message, failures=failures)
        self.failures = failures

    @property
    def element_ids(self) -> List[str]:
        return [f["element_id"] for f in self.failures]


class SourceUnresolved(DiffSafetyError):
    """Element has no recorded source file."""

    def __init__(self, element_id: str, failures: Optional[List[Dict[str, Any]]] = None):
        failure = {"element_id": str(element_id), "reason": "source_unresolved"}
        super().__init__(
            f"No source location for element {element_id}",
            failures or [failure],
        )
        self.element_id = str(element_id)


class AmbiguousMatch(DiffSafetyError):
    """Old value occurs zero or several times in the source file."""

    def __init__(
        self,
        element_id: str,
        match_count: int,
        failures: Optional[List[Dict[str, Any]]] = None,
    ):
        failure = {
            "element_id": str(element_id),
            "reason": "ambiguous_match",
            "match_count": match_count,
        }
        super().__init__(
            f"Expected exactly one match for element {element_id}, found {match_count}",
            failures or [failure],
        )
        self.element_id = str(element_id)
        self.match_count = match_count


class AnalysisCancelled(Exception):
    """Raised inside a crawl once a cancel request has been observed."""
