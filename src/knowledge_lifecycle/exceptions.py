"""Error taxonomy for the knowledge lifecycle engine."""


class KnowledgeLifecycleError(Exception):
    """Base exception for lifecycle operations."""

    pass


class StoreUnavailable(KnowledgeLifecycleError):
    """Transport failure talking to a physical store."""

    def __init__(self, message: str, store: str = "unknown"):
        self.store = store
        super().__init__(f"[{store}] {message}")


class ClassificationFailure(KnowledgeLifecycleError):
    """The feature classifier or the personal-data classifier errored."""

    def __init__(self, message: str, component: str = "unknown"):
        self.component = component
        super().__init__(f"[{component}] {message}")


class CandidateValidationError(KnowledgeLifecycleError):
    """Malformed learning candidate (missing question or answer, bad source)."""

    pass


class OperationTimeout(KnowledgeLifecycleError, TimeoutError):
    """An external call exceeded its operation timeout."""

    def __init__(self, operation: str, timeout: float):
        self.operation = operation
        self.timeout = timeout
        super().__init__(f"{operation} timed out after {timeout:.1f}s")
