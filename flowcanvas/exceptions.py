"""
FlowCanvas Exception Hierarchy.

Errors raised by the graph-editing core. Persistence failures on
user-initiated mutations surface as ``ApiError``; local validation
problems are raised before any remote call is made.

Deletion conflicts are deliberately absent: a node that still holds
documents is reported through ``DeletionConflict`` (a value), not an
exception.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class FlowCanvasError(Exception):
    """Base exception for all FlowCanvas errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"{self.error_code}: {self.message}"


# ============================================================================
# Remote API
# ============================================================================


class ApiError(FlowCanvasError):
    """Raised when the remote API rejects a call or cannot be reached.

    ``status_code`` is ``None`` for transport-level failures.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        payload: Any = None,
    ):
        super().__init__(
            message,
            error_code="API_ERROR",
            details={"status_code": status_code, "payload": payload},
        )
        self.status_code = status_code
        self.payload = payload


class RunTriggerError(FlowCanvasError):
    """Raised when document upload or run creation fails."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message, error_code="RUN_TRIGGER_FAILED")
        self.cause = cause


# ============================================================================
# Local graph validation
# ============================================================================


class WorkflowNotLoadedError(FlowCanvasError):
    """Raised when a graph mutation or inspector call comes before a workflow is loaded."""

    def __init__(self):
        super().__init__("No workflow is loaded", error_code="WORKFLOW_NOT_LOADED")


class NodeNotFoundError(FlowCanvasError):
    """Raised when a node id is not part of the current graph."""

    def __init__(self, node_id: str):
        super().__init__(
            f"Node '{node_id}' is not in the current graph",
            error_code="NODE_NOT_FOUND",
            details={"node_id": node_id},
        )
        self.node_id = node_id


class EdgeNotFoundError(FlowCanvasError):
    """Raised when an edge id is not part of the current graph."""

    def __init__(self, edge_id: str):
        super().__init__(
            f"Edge '{edge_id}' is not in the current graph",
            error_code="EDGE_NOT_FOUND",
            details={"edge_id": edge_id},
        )
        self.edge_id = edge_id


class InvalidConnectionError(FlowCanvasError):
    """Raised when a connect request references unknown nodes or ports."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code="INVALID_CONNECTION", details=details)


class DraftStateError(FlowCanvasError):
    """Raised on an illegal connection-draft transition."""

    def __init__(self, message: str, state: Optional[str] = None):
        super().__init__(
            message,
            error_code="DRAFT_STATE",
            details={"state": state},
        )
        self.state = state
