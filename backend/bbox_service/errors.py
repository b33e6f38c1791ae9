"""
Exception taxonomy for the bounding-box service.

Per-row and per-element failures (navigation, selector, snapshot) are
recovered where they happen and never abort a batch. Only structural
failures (bad input, upstream fetch, unknown session) reach the caller.
"""


class BBoxServiceError(Exception):
    """Base class for all service errors."""


class NavigationError(BBoxServiceError):
    """A page failed to load or timed out."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to load {url}: {reason}")


class SelectorError(BBoxServiceError):
    """A CSS selector could not be parsed."""

    def __init__(self, selector: str):
        self.selector = selector
        super().__init__(f"Invalid selector: {selector!r}")


class SnapshotError(BBoxServiceError):
    """Capturing the image of a single box failed."""


class UpstreamDataError(BBoxServiceError):
    """The row source could not be fetched or decoded."""


class SessionNotFoundError(BBoxServiceError):
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}")


class SessionExistsError(BBoxServiceError):
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session already stored: {session_id}")
