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
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field


class EngineSettings(BaseModel):
    """Runtime settings, sourced from the environment."""

    model_config = ConfigDict(extra="forbid")

    max_parallel: int = Field(default=10, ge=1)
    store_dir: Optional[str] = None
    recipe_runner_url: Optional[str] = None
    redis_url: str = "redis://localhost:6379"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "EngineSettings":
        env = os.environ if environ is None else environ
        return cls(
            max_parallel=int(env.get("CHAINS_MAX_PARALLEL", "10")),
            store_dir=env.get("CHAINS_STORE_DIR") or None,
            recipe_runner_url=env.get("RECIPE_RUNNER_URL") or None,
            redis_url=env.get("REDIS_URL", "redis://localhost:6379"),
            log_level=env.get("CHAINS_LOG_LEVEL", "INFO").upper(),
        )
