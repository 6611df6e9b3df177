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
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, List, Protocol

from coreason_chains.core.exceptions import ExecutionCancelled, NodeExecutionFailed, RecipeRunError
from coreason_chains.core.interfaces import RecipeRunner
from coreason_chains.core.models import (
    BaseNode,
    ChainExecutionContext,
    ChainExecutionStep,
    ConditionNode,
    LeafNode,
    RecipeRunResult,
    RecipeTarget,
    StepStatus,
    node_children,
)
from coreason_chains.engine.conditions import ConditionEvaluator
from coreason_chains.engine.resolver import VariableResolver
from coreason_chains.events.factory import EventFactory
from coreason_chains.events.sink import EventDispatcher
from coreason_chains.utils.logger import logger

if TYPE_CHECKING:
    from coreason_chains.engine.walker import ChainWalker


@dataclass
class ExecutionScope:
    """Everything a node needs to know about the run it belongs to."""

    chain_id: str
    execution_id: str
    context: ChainExecutionContext
    cancel_event: asyncio.Event | None = None
    dispatcher: EventDispatcher | None = None

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    async def publish(self, step: ChainExecutionStep) -> None:
        if self.dispatcher is not None:
            await self.dispatcher.emit(EventFactory.create_step_done(self.chain_id, self.execution_id, step))


class NodeHandler(Protocol):
    """
    Interface for handling execution of a specific node kind.
    """

    async def execute(
        self,
        node: Any,
        step: ChainExecutionStep,
        scope: ExecutionScope,
        walker: "ChainWalker",
        history: List[ChainExecutionStep],
    ) -> StepStatus:
        """
        Executes the node logic.

        Args:
            node: The node to execute.
            step: The node's step record, already appended in ``running`` state.
            scope: The run the node belongs to.
            walker: The walker, used to descend into children.
            history: The history that children of this node append to.

        Returns:
            The status the step settles to when the node does not fail.
        """
        ...


class LeafNodeHandler:
    def __init__(
        self,
        runner: RecipeRunner,
        semaphore: asyncio.Semaphore,
        resolver: VariableResolver | None = None,
    ) -> None:
        self.runner = runner
        self.semaphore = semaphore
        self.resolver = resolver or VariableResolver()

    async def execute(
        self,
        node: LeafNode,
        step: ChainExecutionStep,
        scope: ExecutionScope,
        walker: "ChainWalker",
        history: List[ChainExecutionStep],
    ) -> StepStatus:
        context = scope.context
        target = RecipeTarget(
            workspace_root=context.workspace_root,
            target_files=list(context.target_files),
            dry_run=context.dry_run,
            variables=dict(context.variables),
            parameters=self.resolver.resolve(node.config.parameters, context.variables),
        )

        attempts = node.config.retries + 1
        for attempt in range(1, attempts + 1):
            try:
                async with self.semaphore:
                    logger.info(f"Executing recipe: {node.recipe_ref} (node {node.id}, attempt {attempt}/{attempts})")
                    result = await self._invoke(node, target)
                break
            except Exception as e:
                if attempt >= attempts or scope.cancelled:
                    raise
                logger.warning(f"Recipe {node.recipe_ref} failed on attempt {attempt}/{attempts}: {e}")

        step.output = result.output
        step.files_modified = list(result.files_modified)
        return "completed"

    async def _invoke(self, node: LeafNode, target: RecipeTarget) -> RecipeRunResult:
        call = self.runner.run(node.recipe_ref, target)
        timeout_ms = node.config.timeout_ms
        try:
            if timeout_ms is None:
                result: Any = await call
            else:
                result = await asyncio.wait_for(call, timeout=timeout_ms / 1000)
        except asyncio.TimeoutError as e:
            raise RecipeRunError(node.recipe_ref, f"timed out after {timeout_ms} ms") from e

        if isinstance(result, str):
            return RecipeRunResult(output=result)
        return RecipeRunResult.model_validate(result)


class ConditionNodeHandler:
    def __init__(self, evaluator: ConditionEvaluator) -> None:
        self.evaluator = evaluator

    async def execute(
        self,
        node: ConditionNode,
        step: ChainExecutionStep,
        scope: ExecutionScope,
        walker: "ChainWalker",
        history: List[ChainExecutionStep],
    ) -> StepStatus:
        result = await self.evaluator.evaluate(node.condition, scope.context)
        step.condition_result = result
        logger.info(f"Condition {node.name}: {result}")

        if not result:
            return "skipped"

        for child in node.children:
            await walker.walk(child, scope, history)
        return "completed"


class SequenceNodeHandler:
    """Walks children strictly in declared order. Also used for groups."""

    async def execute(
        self,
        node: BaseNode,
        step: ChainExecutionStep,
        scope: ExecutionScope,
        walker: "ChainWalker",
        history: List[ChainExecutionStep],
    ) -> StepStatus:
        for child in node_children(node):
            await walker.walk(child, scope, history)
        return "completed"


class ParallelNodeHandler:
    """
    Runs every child branch concurrently and waits for all of them.

    Each branch records into its own history, which joins the shared history
    when the branch settles, so branch records appear in completion order.
    """

    async def execute(
        self,
        node: BaseNode,
        step: ChainExecutionStep,
        scope: ExecutionScope,
        walker: "ChainWalker",
        history: List[ChainExecutionStep],
    ) -> StepStatus:
        if scope.cancelled:
            raise ExecutionCancelled(node.id)

        children = node_children(node)

        async def _branch(child: BaseNode) -> None:
            local: List[ChainExecutionStep] = []
            try:
                await walker.walk(child, scope, local)
            finally:
                history.extend(local)

        results = await asyncio.gather(*(_branch(child) for child in children), return_exceptions=True)

        for result in results:
            if isinstance(result, ExecutionCancelled):
                raise result
        for result in results:
            if isinstance(result, BaseException) and not isinstance(result, Exception):
                raise result

        failures = [r for r in results if isinstance(r, Exception)]
        if failures:
            failed_ids = [f.node_id if isinstance(f, NodeExecutionFailed) else "?" for f in failures]
            raise NodeExecutionFailed(
                node.id,
                f"{len(failures)} of {len(children)} parallel branches failed: {', '.join(failed_ids)}",
            )
        return "completed"
