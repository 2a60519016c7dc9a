"""Error taxonomy of the dispatch / monitor / record lifecycle."""


class WorkflowDispatcherError(Exception):
    """Base exception for workflow lifecycle failures."""


class DispatchError(WorkflowDispatcherError):
    """The workflow dispatch endpoint rejected the request."""

    def __init__(
        self,
        workflow_name: str,
        status_code: int | None = None,
        message: str | None = None,
    ):
        detail = message or "unknown error"
        if status_code is not None:
            text = f"Error dispatching {workflow_name}! Status: {status_code}. Message: {detail}"
        else:
            text = f"Error dispatching {workflow_name}: {detail}"
        super().__init__(text)
        self.workflow_name = workflow_name
        self.status_code = status_code
        self.message = message


class FetchError(WorkflowDispatcherError):
    """Transient failure while polling run status. Always retried."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        retry_after: float | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.retry_after = retry_after


class StorageError(WorkflowDispatcherError):
    """A persistence operation failed (connectivity, constraint violation)."""
