from flowcanvas.config.canvas_config import CanvasConfig, get_canvas_config

__all__ = ["CanvasConfig", "get_canvas_config"]
