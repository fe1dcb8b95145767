class PipelineError(Exception):
    """Base class for audit pipeline errors."""


class AuditNotFoundError(PipelineError):
    pass


class PhaseTransitionError(PipelineError):
    def __init__(self, current: str, requested: str):
        super().__init__(f"Cannot move audit from {current} to {requested}")
        self.current = current
        self.requested = requested


class PageNotReadyError(PipelineError):
    def __init__(self, page_id: str, collection_status: str):
        super().__init__(
            f"Page {page_id} cannot be tested while data collection is {collection_status}"
        )
        self.page_id = page_id
        self.collection_status = collection_status


class AIResponseParseError(PipelineError):
    def __init__(self, message: str, raw_response: str):
        super().__init__(message)
        self.raw_response = raw_response
