"""Remote capture controller for a single V4L2 camera."""

__version__ = "1.0.0"
