# sources/__init__.py
from typing import Dict, Optional, Type

import requests

from inventory.config import Settings

from .base import CatalogSource
from .sheet import SheetCatalogSource
from .square import SquareCatalogSource

SOURCES: Dict[str, Type[CatalogSource]] = {
    "square": SquareCatalogSource,
    "sheet": SheetCatalogSource,
}


def build_source(settings: Settings, session: Optional[requests.Session] = None) -> CatalogSource:
    return SOURCES[settings.source_name](settings, session)
