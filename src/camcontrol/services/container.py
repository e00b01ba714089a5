"""Service container for the process-wide singletons.

main.py creates the services during the lifespan startup and stores them
here; the health API reads them. Keeping them in a neutral module avoids
an import cycle between main.py and the API routers.

There is exactly one LifecycleController per process: the device state
and the active recording live on it.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..transport.mqtt import MqttTransport
    from .commands import CommandDispatcher
    from .lifecycle import LifecycleController
    from .relay import CapturePipeline

logger = logging.getLogger(__name__)

# ============================================================================
# Global Singleton Instances
# ============================================================================

controller: LifecycleController | None = None
relay: CapturePipeline | None = None
dispatcher: CommandDispatcher | None = None
transport: MqttTransport | None = None


def get_controller() -> LifecycleController:
    """Dependency for API routes needing the controller.

    Raises:
        RuntimeError: called before application startup
    """
    if controller is None:
        logger.error("LifecycleController requested before initialization")
        raise RuntimeError("LifecycleController not initialized. Application startup may have failed.")
    return controller
