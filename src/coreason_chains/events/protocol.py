# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_chains

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from coreason_chains.core.models import Complexity, ExecutionSummary, RunStatus


class ChainEvent(BaseModel):
    """
    The atomic unit of communication between the engine and progress consumers.
    """

    model_config = ConfigDict(extra="forbid")

    event_type: Literal[
        "CHAIN_CREATED",
        "EXECUTION_START",
        "STEP_DONE",
        "EXECUTION_END",
    ]
    chain_id: str
    execution_id: Optional[str] = None
    timestamp: float

    payload: Dict[str, Any] = Field(..., description="Event-specific data")


# Payload models
class ChainCreated(BaseModel):
    model_config = ConfigDict(extra="forbid")
    name: str
    category: str
    complexity: Complexity
    estimated_duration_ms: int


class ExecutionStarted(BaseModel):
    model_config = ConfigDict(extra="forbid")
    chain_name: str
    workspace_root: str
    dry_run: bool
    target_files: int


class ExecutionFinished(BaseModel):
    model_config = ConfigDict(extra="forbid")
    status: RunStatus
    summary: ExecutionSummary
    execution: Dict[str, Any]


ChainCreatedPayload = ChainCreated
ExecutionStartedPayload = ExecutionStarted
ExecutionFinishedPayload = ExecutionFinished
