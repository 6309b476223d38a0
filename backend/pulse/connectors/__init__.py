"""Upstream source connectors package."""
from pulse.connectors.factory import get_connector, CONNECTOR_REGISTRY

__all__ = ["get_connector", "CONNECTOR_REGISTRY"]
