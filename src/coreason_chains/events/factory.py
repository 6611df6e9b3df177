# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_chains

import time

from coreason_chains.core.models import (
    ChainExecutionContext,
    ChainExecutionResult,
    ChainExecutionStep,
    RecipeChain,
)
from coreason_chains.events.protocol import (
    ChainCreatedPayload,
    ChainEvent,
    ExecutionFinishedPayload,
    ExecutionStartedPayload,
)


class EventFactory:
    """
    Factory for creating standardized ChainEvents.
    Reduces boilerplate in the engine.
    """

    @staticmethod
    def create_chain_created(chain: RecipeChain) -> ChainEvent:
        payload = ChainCreatedPayload(
            name=chain.name,
            category=chain.metadata.category,
            complexity=chain.metadata.complexity,
            estimated_duration_ms=chain.metadata.estimated_duration_ms,
        )
        return ChainEvent(
            event_type="CHAIN_CREATED",
            chain_id=chain.id,
            timestamp=time.time(),
            payload=payload.model_dump(),
        )

    @staticmethod
    def create_execution_start(
        chain: RecipeChain, execution_id: str, context: ChainExecutionContext
    ) -> ChainEvent:
        payload = ExecutionStartedPayload(
            chain_name=chain.name,
            workspace_root=context.workspace_root,
            dry_run=context.dry_run,
            target_files=len(context.target_files),
        )
        return ChainEvent(
            event_type="EXECUTION_START",
            chain_id=chain.id,
            execution_id=execution_id,
            timestamp=time.time(),
            payload=payload.model_dump(),
        )

    @staticmethod
    def create_step_done(chain_id: str, execution_id: str, step: ChainExecutionStep) -> ChainEvent:
        return ChainEvent(
            event_type="STEP_DONE",
            chain_id=chain_id,
            execution_id=execution_id,
            timestamp=time.time(),
            payload={"step": step.model_dump(mode="json", by_alias=True)},
        )

    @staticmethod
    def create_execution_end(result: ChainExecutionResult) -> ChainEvent:
        payload = ExecutionFinishedPayload(
            status=result.status,
            summary=result.summary,
            execution=result.model_dump(mode="json", by_alias=True),
        )
        return ChainEvent(
            event_type="EXECUTION_END",
            chain_id=result.chain_id,
            execution_id=result.execution_id,
            timestamp=time.time(),
            payload=payload.model_dump(mode="json", by_alias=True),
        )
