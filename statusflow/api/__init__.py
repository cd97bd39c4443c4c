"""HTTP surface: request gateway, FastAPI routers and application factory."""

from .gateway import GatewayResponse, RequestGateway

__all__ = ["GatewayResponse", "RequestGateway"]
