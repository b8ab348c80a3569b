"""Desktop sidecar: a loopback API gateway with cloud fallback."""

from wm_sidecar.dispatcher import Dispatcher
from wm_sidecar.models import GatewayRequest, endpoint_from_path
from wm_sidecar.server import create_app, run_server

__all__ = [
    "Dispatcher",
    "GatewayRequest",
    "create_app",
    "endpoint_from_path",
    "run_server",
]
