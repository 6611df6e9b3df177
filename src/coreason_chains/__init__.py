# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_chains

"""
Composable recipe chains: build, validate and execute trees of code transformations.
"""

from coreason_chains.core.exceptions import (
    ChainError,
    ChainNotFound,
    ExecutionCancelled,
    InvalidChainDefinition,
    NodeExecutionFailed,
    PreconditionFailed,
    VariableValidationError,
)
from coreason_chains.core.models import (
    ChainExecutionContext,
    ChainExecutionResult,
    Condition,
    DetectedIssue,
    RecipeChain,
)
from coreason_chains.core.registry import ChainRegistry
from coreason_chains.engine.builder import ChainBuilder
from coreason_chains.engine.engine import ChainEngine
from coreason_chains.events.protocol import ChainEvent
from coreason_chains.storage.chain_store import ChainStore

__version__ = "0.1.0"

__all__ = [
    "ChainBuilder",
    "ChainEngine",
    "ChainError",
    "ChainEvent",
    "ChainExecutionContext",
    "ChainExecutionResult",
    "ChainNotFound",
    "ChainRegistry",
    "ChainStore",
    "Condition",
    "DetectedIssue",
    "ExecutionCancelled",
    "InvalidChainDefinition",
    "NodeExecutionFailed",
    "PreconditionFailed",
    "RecipeChain",
    "VariableValidationError",
]
