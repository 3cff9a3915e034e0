"""
Error taxonomy for the workflow engine.

Each error carries a ``kind`` that is surfaced to callers as ``error_kind``
so recoverable conditions (a missing page) can be told apart from browser
failures.
"""

from __future__ import annotations


class EngineError(Exception):
    kind = "EngineError"


class InvalidWorkflowError(EngineError):
    """Workflow rejected before a run is created (empty graph, no start node)."""

    kind = "InvalidWorkflow"


class PageNotFoundError(EngineError):
    kind = "PageNotFound"

    def __init__(self, page_index: int):
        self.page_index = page_index
        super().__init__(f"Page at index {page_index} not found")


class ActionFailedError(EngineError):
    """
    A node's action did not succeed.

    ``error_kind`` keeps the dispatcher's classification (PageNotFound,
    MissingInput...); it defaults to ActionFailed for browser failures.
    """

    kind = "ActionFailed"

    def __init__(self, message: str, error_kind: str | None = None):
        self.error_kind = error_kind or self.kind
        super().__init__(message)


class UnknownActionError(EngineError):
    kind = "UnknownAction"

    def __init__(self, action_type: str):
        self.action_type = action_type
        super().__init__(f"Unknown action type: {action_type}")


class MissingInputError(EngineError):
    kind = "MissingInput"


class RunNotFoundError(EngineError):
    kind = "NotFound"

    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(f"Execution not found: {run_id}")


class RunCancelledError(EngineError):
    kind = "Cancelled"

    def __init__(self, message: str = "Run cancelled"):
        super().__init__(message)
