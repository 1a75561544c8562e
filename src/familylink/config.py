"""Runtime configuration and logging setup."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from familylink.core.layout import LayoutConfig


@dataclass
class FamilyLinkConfig:
    """Configuration for the store, layout grid and logging."""

    database_path: str = "./familylink.db"

    # Layout grid
    generation_height: float = 200.0
    node_spacing: float = 150.0
    connector_offset: float = 30.0

    log_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> FamilyLinkConfig:
        """Build a config from FAMILYLINK_* environment variables."""
        defaults = cls()
        return cls(
            database_path=os.getenv("FAMILYLINK_DB", defaults.database_path),
            generation_height=float(os.getenv("FAMILYLINK_GENERATION_HEIGHT", defaults.generation_height)),
            node_spacing=float(os.getenv("FAMILYLINK_NODE_SPACING", defaults.node_spacing)),
            connector_offset=float(os.getenv("FAMILYLINK_CONNECTOR_OFFSET", defaults.connector_offset)),
            log_level=os.getenv("FAMILYLINK_LOG_LEVEL", defaults.log_level).upper(),
        )

    def layout_config(self) -> LayoutConfig:
        return LayoutConfig(
            generation_height=self.generation_height,
            node_spacing=self.node_spacing,
            connector_offset=self.connector_offset,
        )


def configure_logging(level: str = "WARNING") -> None:
    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        level=getattr(logging, level.upper(), logging.WARNING),
    )
