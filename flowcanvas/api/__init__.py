from flowcanvas.api.client import CanvasApiClient, DeletionConflict

__all__ = ["CanvasApiClient", "DeletionConflict"]
