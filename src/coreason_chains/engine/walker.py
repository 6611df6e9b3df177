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
from typing import Dict, List

from coreason_chains.core.exceptions import ExecutionCancelled, NodeExecutionFailed
from coreason_chains.core.interfaces import RecipeRunner
from coreason_chains.core.models import BaseNode, ChainExecutionStep
from coreason_chains.engine.conditions import ConditionEvaluator
from coreason_chains.engine.handlers import (
    ConditionNodeHandler,
    ExecutionScope,
    LeafNodeHandler,
    NodeHandler,
    ParallelNodeHandler,
    SequenceNodeHandler,
)
from coreason_chains.engine.resolver import VariableResolver
from coreason_chains.utils.logger import logger


class ChainWalker:
    """
    Walks a node tree, recording one step per visited node.
    """

    def __init__(
        self,
        runner: RecipeRunner,
        evaluator: ConditionEvaluator | None = None,
        max_parallel: int = 10,
        resolver: VariableResolver | None = None,
    ) -> None:
        if max_parallel < 1:
            raise ValueError("max_parallel must be >= 1")
        self.max_parallel = max_parallel
        # Bounds concurrent recipe invocations across all parallel branches of a walker.
        self.semaphore = asyncio.Semaphore(max_parallel)
        self.evaluator = evaluator or ConditionEvaluator()
        sequence = SequenceNodeHandler()
        self.handlers: Dict[str, NodeHandler] = {
            "leaf": LeafNodeHandler(runner, self.semaphore, resolver),
            "condition": ConditionNodeHandler(self.evaluator),
            "sequence": sequence,
            "group": sequence,
            "parallel": ParallelNodeHandler(),
        }

    async def walk(self, node: BaseNode, scope: ExecutionScope, history: List[ChainExecutionStep]) -> None:
        """
        Executes a node and, through its handler, its subtree.

        A failure is absorbed here when the node's ``continue_on_error`` is set;
        otherwise it is re-raised to the parent as NodeExecutionFailed.
        Cancellation always propagates.

        Args:
            node: The node to execute.
            scope: The run the node belongs to.
            history: The history the node's step is appended to.

        Raises:
            NodeExecutionFailed: If the node failed and may not continue on error.
            ExecutionCancelled: If the run was cancelled.
        """
        kind = getattr(node, "kind")
        step = ChainExecutionStep(node_id=node.id, node_name=node.name, node_kind=kind, status="running")

        if scope.cancelled:
            cancelled = ExecutionCancelled(node.id)
            step.settle("failed", error=str(cancelled))
            history.append(step)
            await scope.publish(step)
            raise cancelled

        history.append(step)
        scope.context.current_node = node.id

        if not node.config.enabled:
            step.settle("skipped")
            await scope.publish(step)
            return

        handler = self.handlers[kind]
        try:
            status = await handler.execute(node, step, scope, self, history)
        except ExecutionCancelled as e:
            step.settle("failed", error=str(e))
            await scope.publish(step)
            raise
        except Exception as e:
            step.settle("failed", error=str(e))
            await scope.publish(step)
            if node.config.continue_on_error:
                logger.warning(f"Node {node.id} failed, continuing: {e}")
                return
            logger.error(f"Node {node.id} failed: {e}")
            if isinstance(e, NodeExecutionFailed) and e.node_id == node.id:
                raise
            raise NodeExecutionFailed(node.id, str(e)) from e

        step.settle(status)
        await scope.publish(step)
