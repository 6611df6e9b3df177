# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_chains

import asyncio
import os
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from coreason_chains.core.exceptions import (
    ExecutionCancelled,
    InvalidChainDefinition,
    NodeExecutionFailed,
    PreconditionFailed,
)
from coreason_chains.core.interfaces import RecipeRunner, WorkspaceInspector
from coreason_chains.core.models import (
    ChainExecutionContext,
    ChainExecutionResult,
    ExecutionSummary,
    RecipeChain,
    RunStatus,
    utcnow,
)
from coreason_chains.core.registry import ChainRegistry
from coreason_chains.engine.conditions import ConditionEvaluator, ExpressionEvaluator
from coreason_chains.engine.handlers import ExecutionScope
from coreason_chains.engine.resolver import VariableBinder
from coreason_chains.engine.topology import TopologyEngine
from coreason_chains.engine.walker import ChainWalker
from coreason_chains.events.factory import EventFactory
from coreason_chains.events.sink import EventDispatcher
from coreason_chains.utils.logger import logger


def _elapsed_ms(start: datetime, end: datetime) -> int:
    return int((end - start).total_seconds() * 1000)


class ChainEngine:
    """
    Top-level API: runs registered chains and records their outcome.
    """

    def __init__(
        self,
        registry: ChainRegistry,
        runner: RecipeRunner,
        inspector: WorkspaceInspector | None = None,
        dispatcher: EventDispatcher | None = None,
        max_parallel: int = 10,
        topology: TopologyEngine | None = None,
    ) -> None:
        self.registry = registry
        self.dispatcher = dispatcher or EventDispatcher()
        self.topology = topology or TopologyEngine()
        expressions = ExpressionEvaluator()
        self.evaluator = ConditionEvaluator(inspector, expressions)
        self.binder = VariableBinder(expressions)
        self.walker = ChainWalker(runner, self.evaluator, max_parallel=max_parallel)

    async def execute_chain(
        self,
        chain_id: str,
        context: ChainExecutionContext | Dict[str, Any] | None = None,
        cancel_event: asyncio.Event | None = None,
        execution_id: str | None = None,
    ) -> ChainExecutionResult:
        """
        Executes a registered chain against a workspace.

        Node-level failures never escape: they are reflected in the returned
        result's status and summary.

        Args:
            chain_id: The id of a registered chain.
            context: Partial execution context (variables, workspace root,
                target files, dry-run flag, pattern hits).
            cancel_event: Set it to stop the run before the next node starts.
            execution_id: Optional caller-chosen id for this run.

        Returns:
            ChainExecutionResult: The terminal record of the run.

        Raises:
            ChainNotFound: If no chain is registered under ``chain_id``.
            InvalidChainDefinition: If the chain's tree or the partial context is malformed.
        """
        chain = self.registry.require(chain_id)
        self.topology.validate(chain.root_node)  # type: ignore[arg-type]

        execution_context = self._build_context(context)
        execution_id = execution_id or f"exec-{uuid.uuid4().hex}"
        start_time = utcnow()
        scope = ExecutionScope(
            chain_id=chain.id,
            execution_id=execution_id,
            context=execution_context,
            cancel_event=cancel_event,
            dispatcher=self.dispatcher,
        )

        logger.info(f"Starting chain execution: {chain.name} ({execution_id})")
        await self.dispatcher.emit(EventFactory.create_execution_start(chain, execution_id, execution_context))

        warnings: List[str] = []
        run_error: Optional[str] = None
        aborted = False

        try:
            execution_context.variables = self.binder.bind(chain.variables, execution_context.variables)
            await self._check_preconditions(chain, execution_context)
            history = execution_context.execution_history
            await self.walker.walk(chain.root_node, scope, history)  # type: ignore[arg-type]
            warnings.extend(await self._check_postconditions(chain, execution_context))
        except (PreconditionFailed, NodeExecutionFailed, ExecutionCancelled) as e:
            aborted = True
            run_error = str(e)
            logger.error(f"Chain execution failed: {execution_id} - {e}")

        end_time = utcnow()
        execution_context.current_node = None
        summary = self._summarise(execution_context, start_time, end_time, warnings, run_error)

        status: RunStatus
        if aborted:
            status = "failed"
        elif summary.failed_nodes:
            status = "partial"
        else:
            status = "completed"

        result = ChainExecutionResult(
            chain_id=chain.id,
            execution_id=execution_id,
            status=status,
            start_time=start_time,
            end_time=end_time,
            context=execution_context.model_copy(deep=True),
            summary=summary,
        )

        updated = self.registry.record_execution(result)
        logger.info(
            f"Chain execution {status}: {execution_id} "
            f"(usage={updated.metadata.usage_count}, success_rate={updated.metadata.success_rate:.1f}%)"
        )

        await self.dispatcher.emit(EventFactory.create_execution_end(result))
        return result

    def _build_context(self, context: ChainExecutionContext | Dict[str, Any] | None) -> ChainExecutionContext:
        if isinstance(context, ChainExecutionContext):
            data = context.model_dump()
        else:
            data = dict(context or {})
        try:
            built = ChainExecutionContext.model_validate(data)
        except ValidationError as e:
            raise InvalidChainDefinition("Malformed execution context", [err["msg"] for err in e.errors()]) from e

        if not built.workspace_root or built.workspace_root == ".":
            built.workspace_root = os.getcwd()
        # History and the in-flight node belong to this run only.
        built.execution_history = []
        built.current_node = None
        return built

    async def _check_preconditions(self, chain: RecipeChain, context: ChainExecutionContext) -> None:
        for condition in chain.preconditions:
            if not await self.evaluator.evaluate(condition, context):
                raise PreconditionFailed(condition.expression)

    async def _check_postconditions(self, chain: RecipeChain, context: ChainExecutionContext) -> List[str]:
        warnings = []
        for condition in chain.postconditions:
            if not await self.evaluator.evaluate(condition, context):
                warnings.append(f"Postcondition not met: {condition.expression}")
        return warnings

    def _summarise(
        self,
        context: ChainExecutionContext,
        start_time: datetime,
        end_time: datetime,
        warnings: List[str],
        run_error: Optional[str],
    ) -> ExecutionSummary:
        history = context.execution_history
        files = {f for step in history for f in step.files_modified}
        errors = [step.error for step in history if step.error]
        if run_error and run_error not in errors:
            errors.append(run_error)

        return ExecutionSummary(
            total_nodes=len(history),
            executed_nodes=sum(1 for step in history if step.status != "pending"),
            successful_nodes=sum(1 for step in history if step.status == "completed"),
            failed_nodes=sum(1 for step in history if step.status == "failed"),
            skipped_nodes=sum(1 for step in history if step.status == "skipped"),
            total_duration_ms=_elapsed_ms(start_time, end_time),
            files_modified=len(files),
            warnings=warnings,
            errors=errors,
        )
