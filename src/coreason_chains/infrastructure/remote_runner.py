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

import httpx
from loguru import logger

from coreason_chains.core.exceptions import RecipeRunError
from coreason_chains.core.models import RecipeRunResult, RecipeTarget


class RemoteRecipeRunner:
    """
    Recipe runner that calls a remote transformation service.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float = 300.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url or os.getenv("RECIPE_RUNNER_URL")
        self.timeout = timeout
        self.transport = transport
        if not self.base_url:
            logger.warning("RECIPE_RUNNER_URL not set for RemoteRecipeRunner")

    async def run(self, recipe_ref: str, target: RecipeTarget) -> RecipeRunResult:
        """Applies a recipe via HTTP."""
        if not self.base_url:
            raise RecipeRunError(recipe_ref, "RECIPE_RUNNER_URL is required")

        async with httpx.AsyncClient(transport=self.transport) as client:
            try:
                resp = await client.post(
                    f"{self.base_url.rstrip('/')}/recipes/run",
                    json={"recipe": recipe_ref, "target": target.model_dump(mode="json")},
                    timeout=self.timeout,
                )
                resp.raise_for_status()
                data = resp.json()
            except httpx.HTTPError as e:
                logger.error(f"Failed to run recipe {recipe_ref}: {e}")
                raise RecipeRunError(recipe_ref, str(e)) from e

        if isinstance(data, dict) and data.get("success") is False:
            raise RecipeRunError(recipe_ref, data.get("error") or "recipe run reported failure")
        return RecipeRunResult.model_validate(data)
