# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_chains

import uuid
from typing import Any, Dict, Iterable, List, Literal, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from coreason_chains.core.exceptions import InvalidChainDefinition
from coreason_chains.core.interfaces import IssueDetector
from coreason_chains.core.models import (
    RECORD_CONFIG,
    BaseNode,
    ChainMetadata,
    Condition,
    ConditionNode,
    DetectedIssue,
    GroupNode,
    LeafNode,
    NodeConfig,
    NodeMetadata,
    ParallelNode,
    RecipeChain,
    RecipeVariable,
    SequenceNode,
)
from coreason_chains.core.registry import ChainRegistry
from coreason_chains.engine.topology import TopologyEngine, parse_node
from coreason_chains.events.factory import EventFactory
from coreason_chains.events.sink import EventDispatcher
from coreason_chains.utils.logger import logger

ESTIMATE_PER_ISSUE_MS = 30_000
MAX_PRIORITY = 100


class ChainOptions(BaseModel):
    """Optional fields a caller may supply when creating a chain."""

    model_config = RECORD_CONFIG

    version: str = "1.0.0"
    variables: Dict[str, RecipeVariable] = Field(default_factory=dict)
    preconditions: List[Condition] = Field(default_factory=list)
    postconditions: List[Condition] = Field(default_factory=list)
    category: Optional[str] = None
    required_permissions: Optional[List[str]] = None
    supported_languages: Optional[List[str]] = None
    supported_frameworks: Optional[List[str]] = None


class PatternChainOptions(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    execution_mode: Literal["sequence", "parallel"] = "sequence"
    include_validation: bool = False


def issue_priority(issues: Iterable[DetectedIssue]) -> int:
    """Aggregate remediation priority for a group of issues, capped at 100."""
    priority = 0
    for issue in issues:
        if issue.metadata.security_impact == "high":
            priority += 10
        if issue.metadata.performance_impact == "high":
            priority += 8
        if issue.metadata.maintainability_impact == "high":
            priority += 6
        if issue.confidence >= 90:
            priority += 5
    return min(priority, MAX_PRIORITY)


def _unique(values: Iterable[Optional[str]]) -> List[str]:
    seen: Dict[str, None] = {}
    for value in values:
        if value:
            seen.setdefault(value, None)
    return list(seen)


class ChainBuilder:
    """Creates chains and registers them."""

    def __init__(
        self,
        registry: ChainRegistry,
        topology: TopologyEngine | None = None,
        dispatcher: EventDispatcher | None = None,
    ) -> None:
        self.registry = registry
        self.topology = topology or TopologyEngine()
        self.dispatcher = dispatcher or EventDispatcher()

    async def create_chain(
        self,
        name: str,
        description: str,
        root_node: BaseNode | Dict[str, Any],
        options: ChainOptions | Dict[str, Any] | None = None,
    ) -> RecipeChain:
        """Creates and registers a chain from an explicit node tree.

        Args:
            name: Display name of the chain.
            description: Free-form description.
            root_node: The tree, as a node model or its dict form.
            options: Version, variables, conditions and metadata overrides.

        Returns:
            RecipeChain: The registered chain with derived complexity and duration.

        Raises:
            InvalidChainDefinition: If the tree or the options are malformed.
        """
        root = parse_node(root_node)
        opts = self._parse_options(options)

        graph = self.topology.build_graph(root)
        metadata = ChainMetadata(
            category=opts.category or "custom",
            complexity=self.topology.classify(graph),
            estimated_duration_ms=self.topology.estimate_duration(graph),
            required_permissions=opts.required_permissions or ["file.write"],
            supported_languages=opts.supported_languages or [],
            supported_frameworks=opts.supported_frameworks or [],
        )

        chain = RecipeChain(
            id=f"chain-{uuid.uuid4().hex}",
            name=name,
            description=description,
            version=opts.version,
            root_node=root,  # type: ignore[arg-type]
            variables=opts.variables,
            preconditions=opts.preconditions,
            postconditions=opts.postconditions,
            metadata=metadata,
        )

        self.registry.register(chain)
        await self.dispatcher.emit(EventFactory.create_chain_created(chain))

        logger.info(f"Created recipe chain: {name} ({chain.id})")
        return chain

    async def create_chain_from_patterns(
        self,
        issues: Sequence[DetectedIssue | Dict[str, Any]],
        name: str,
        options: PatternChainOptions | Dict[str, Any] | None = None,
    ) -> RecipeChain:
        """Synthesises a chain that remediates a list of detected issues.

        Issues are grouped by suggested recipe (an issue may join several
        groups); each group becomes one leaf whose priority reflects the
        group's aggregate severity.

        Args:
            issues: Issues from the detector.
            name: Display name of the chain.
            options: Execution mode and validation toggle.

        Returns:
            RecipeChain: The registered chain.

        Raises:
            InvalidChainDefinition: If the issues yield no nodes at all.
        """
        try:
            parsed = [DetectedIssue.model_validate(i) for i in issues]
            if isinstance(options, PatternChainOptions):
                opts = options
            else:
                opts = PatternChainOptions.model_validate(options or {})
        except ValidationError as e:
            raise InvalidChainDefinition("Malformed pattern input", [err["msg"] for err in e.errors()]) from e

        groups: Dict[str, List[DetectedIssue]] = {}
        for issue in parsed:
            for recipe in issue.suggested_recipes:
                groups.setdefault(recipe, []).append(issue)

        nodes: List[BaseNode] = []
        for index, (recipe, group) in enumerate(groups.items()):
            nodes.append(
                LeafNode(
                    id=f"pattern-recipe-{index}",
                    name=f"Apply {recipe}",
                    recipe_ref=recipe,
                    config=NodeConfig(enabled=True, continue_on_error=True, priority=issue_priority(group)),
                    metadata=NodeMetadata(
                        description=f"Address {len(group)} instances of patterns",
                        estimated_time_ms=len(group) * ESTIMATE_PER_ISSUE_MS,
                        tags=["auto-generated", "pattern-based"],
                    ),
                )
            )

        if opts.include_validation:
            nodes.append(
                GroupNode(
                    id="validation-step",
                    name="Validation",
                    children=[
                        ConditionNode(
                            id="compile-check",
                            name="Compilation Check",
                            condition=Condition(kind="custom", expression="compilation.successful"),
                        ),
                        ConditionNode(
                            id="test-execution",
                            name="Test Execution",
                            condition=Condition(kind="custom", expression="tests.passing"),
                        ),
                    ],
                )
            )

        root_cls = ParallelNode if opts.execution_mode == "parallel" else SequenceNode
        root = root_cls(id="pattern-based-root", name="Pattern-based Modernization", children=nodes)

        return await self.create_chain(
            name,
            f"Auto-generated chain from {len(parsed)} detected patterns",
            root,
            ChainOptions(
                category="pattern-based",
                supported_languages=_unique(i.metadata.language for i in parsed),
                supported_frameworks=_unique(i.metadata.framework for i in parsed),
            ),
        )

    async def create_chain_from_detector(
        self,
        detector: IssueDetector,
        workspace_root: str,
        name: str,
        options: PatternChainOptions | Dict[str, Any] | None = None,
    ) -> RecipeChain:
        """Runs the issue detector over a workspace and builds a chain from its findings."""
        issues = await detector.detect(workspace_root)
        logger.info(f"Detector reported {len(issues)} issues in {workspace_root}")
        return await self.create_chain_from_patterns(issues, name, options)

    def _parse_options(self, options: ChainOptions | Dict[str, Any] | None) -> ChainOptions:
        if isinstance(options, ChainOptions):
            return options
        try:
            return ChainOptions.model_validate(options or {})
        except ValidationError as e:
            raise InvalidChainDefinition("Malformed chain options", [err["msg"] for err in e.errors()]) from e
