# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_chains

import os
import sys

from loguru import logger

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{function} | {message}"


def configure_logging(level: str) -> None:
    """Replaces every handler with one structured stderr sink at ``level``."""
    logger.remove()
    logger.add(sys.stderr, format=LOG_FORMAT, level=level.upper())


configure_logging(os.getenv("CHAINS_LOG_LEVEL", "INFO"))

__all__ = ["configure_logging", "logger"]
