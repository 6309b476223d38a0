"""
Connector factory: maps upstream source names to connector classes.
"""

import logging
from typing import Dict, Type

from pulse.connectors.base import BaseConnector
from pulse.connectors.calendar_connector import CalendarConnector
from pulse.connectors.sheets_connector import SheetsSalesConnector
from pulse.connectors.telegram_connector import TelegramConnector
from pulse.connectors.youtube_connector import YouTubeConnector

logger = logging.getLogger(__name__)

CONNECTOR_REGISTRY: Dict[str, Type[BaseConnector]] = {
    "sales": SheetsSalesConnector,
    "telegram": TelegramConnector,
    "youtube": YouTubeConnector,
    "calendar": CalendarConnector,
}


def get_connector(name: str, settings, transport=None) -> BaseConnector:
    """
    Instantiate a connector by source name.

    Raises ValueError if the name is unknown.
    """
    cls = CONNECTOR_REGISTRY.get(name)
    if not cls:
        raise ValueError(
            f"Unknown connector '{name}'. "
            f"Available: {sorted(CONNECTOR_REGISTRY.keys())}"
        )
    return cls(settings, transport=transport)
