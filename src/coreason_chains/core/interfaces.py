# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_chains

from typing import List, Optional, Protocol

from coreason_chains.core.models import DetectedIssue, RecipeRunResult, RecipeTarget


class RecipeRunner(Protocol):
    """
    Interface for the external transformation engine.
    """

    async def run(self, recipe_ref: str, target: RecipeTarget) -> RecipeRunResult:
        """Applies one recipe to the target. Raises on failure."""
        ...


class WorkspaceInspector(Protocol):
    """
    Interface for workspace-level manifest inspection.

    Both methods return None when the workspace offers no evidence either way.
    """

    async def has_framework(self, expression: str, workspace_root: str) -> Optional[bool]:
        """Checks whether a framework is in use."""
        ...

    async def has_dependency(self, expression: str, workspace_root: str) -> Optional[bool]:
        """Checks whether a dependency expression holds."""
        ...


class IssueDetector(Protocol):
    """
    Interface for the pattern/issue detector.
    """

    async def detect(self, workspace_root: str) -> List[DetectedIssue]:
        """Returns the issues detected in the workspace."""
        ...
