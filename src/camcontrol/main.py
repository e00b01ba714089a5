"""FastAPI application entry point for camcontrol.

camcontrol: remote still capture and recording for one V4L2 camera,
driven over MQTT.

Architecture:
    - FFmpeg relay publishes the device to an RTSP endpoint
    - LifecycleController arbitrates picture/record/stop commands
    - paho-mqtt transport for commands and status
    - FastAPI for health and Prometheus metrics

Logging Strategy:
    INFO  - Application lifecycle, configuration summary
    WARN  - Degraded startup (relay down)
    ERROR - Startup/shutdown failures with stack traces
"""
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Final
import asyncio
import logging
import os

from fastapi import FastAPI
import uvicorn

from . import __version__
from .api import health
from .config_io import load_settings
from .errors import SubprocessFailure
from .logging_config import configure_logging
from .services import container
from .services.commands import CommandDispatcher
from .services.device_control import DeviceControl
from .services.lifecycle import LifecycleController
from .services.process_runner import ProcessRunner
from .services.relay import CapturePipeline
from .transport.mqtt import MqttTransport
from .utils.strings import mask_rtsp_credentials

logger = logging.getLogger(__name__)

# Setup logging before anything else
configure_logging()

DEVICE_RESET_SETTLE: Final[float] = 0.5
"""Pause after the device reset probe before opening the device."""

# ============================================================================
# Application Lifespan Management
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: startup, running, shutdown.

    Startup Phase:
        1. Load settings, create captures dir
        2. Reset the camera device
        3. Connect the MQTT transport
        4. Start the relay, mark the device streaming

    Shutdown Phase:
        1. Drain in-flight commands
        2. Stop and finalize any active recording
        3. Stop the relay
        4. Disconnect the transport

    Configuration and TLS failures propagate and abort startup.
    """
    logger.info("=" * 80)
    logger.info(f"camcontrol {__version__} starting...")
    logger.info("=" * 80)

    settings = load_settings()
    settings.captures_dir.mkdir(parents=True, exist_ok=True)

    runner = ProcessRunner()
    transport = MqttTransport(settings.mqtt)
    controller = LifecycleController(runner, settings, transport)
    device_control = DeviceControl(runner, settings)
    dispatcher = CommandDispatcher(controller, device_control, transport)
    relay = CapturePipeline(runner, settings)
    transport.bind(dispatcher)

    container.controller = controller
    container.dispatcher = dispatcher
    container.transport = transport
    container.relay = relay

    logger.info(f"Device: {settings.device}")
    logger.info(f"Stream: {mask_rtsp_credentials(settings.stream_url)}")
    logger.info(f"Captures: {settings.captures_dir.resolve()}")

    await device_control.reset_device()
    await asyncio.sleep(DEVICE_RESET_SETTLE)
    await transport.connect()

    try:
        await relay.start()
        await controller.mark_streaming()
    except SubprocessFailure as e:
        logger.error(f"Relay failed to start: {e}", exc_info=True)
        logger.warning("Running without live relay; captures will fail")

    logger.info("=" * 80)
    logger.info("camcontrol ready")
    logger.info("=" * 80)

    yield

    logger.info("=" * 80)
    logger.info("camcontrol shutting down...")
    logger.info("=" * 80)

    try:
        await dispatcher.drain(settings.stop_timeout)
        await controller.shutdown(settings.stop_timeout)
        await relay.stop(settings.stop_timeout)
    except Exception as e:
        logger.error(f"Shutdown error: {e}", exc_info=True)
    finally:
        await transport.disconnect()
        container.controller = None
        container.dispatcher = None
        container.transport = None
        container.relay = None

    logger.info("camcontrol shutdown complete")


# ============================================================================
# FastAPI Application
# ============================================================================

app = FastAPI(
    title="camcontrol",
    description="Camera capture lifecycle controller: health and metrics.",
    version=__version__,
    lifespan=lifespan,
    docs_url=None,
    redoc_url=None,
)

app.include_router(health.router)


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    host = os.getenv("APP_HOST", "0.0.0.0")
    port = int(os.getenv("APP_PORT", "8000"))
    uvicorn.run(app, host=host, port=port, log_config=None)
