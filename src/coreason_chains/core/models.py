# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_chains

import re
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

# Persisted records use camelCase on the wire and tolerate unknown fields.
RECORD_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# 1. Conditions

ConditionKind = Literal["language", "framework", "dependency", "pattern", "custom"]


class Condition(BaseModel):
    """A gate evaluated against the execution context."""

    model_config = RECORD_CONFIG

    kind: ConditionKind
    expression: str
    negate: bool = False


# 2. Node tree


class NodeConfig(BaseModel):
    model_config = RECORD_CONFIG

    enabled: bool = True
    continue_on_error: bool = True
    timeout_ms: Optional[int] = Field(default=None, gt=0)
    retries: int = Field(default=0, ge=0)
    priority: Optional[int] = None
    parameters: Dict[str, Any] = Field(default_factory=dict)


class NodeMetadata(BaseModel):
    model_config = RECORD_CONFIG

    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    author: Optional[str] = None
    estimated_time_ms: Optional[int] = Field(default=None, ge=0)
    required_tools: List[str] = Field(default_factory=list)


class BaseNode(BaseModel):
    model_config = RECORD_CONFIG

    id: str
    name: str
    config: NodeConfig = Field(default_factory=NodeConfig)
    metadata: NodeMetadata = Field(default_factory=NodeMetadata)


class LeafNode(BaseNode):
    """Applies exactly one recipe."""

    kind: Literal["leaf"] = "leaf"
    recipe_ref: str


class ConditionNode(BaseNode):
    """Runs its children in order when the condition holds."""

    kind: Literal["condition"] = "condition"
    condition: Condition
    children: List["RecipeNode"] = Field(default_factory=list)


class SequenceNode(BaseNode):
    kind: Literal["sequence"] = "sequence"
    children: List["RecipeNode"] = Field(default_factory=list)


class ParallelNode(BaseNode):
    kind: Literal["parallel"] = "parallel"
    children: List["RecipeNode"] = Field(default_factory=list)


class GroupNode(BaseNode):
    """Organisational grouping. Executes like a sequence."""

    kind: Literal["group"] = "group"
    children: List["RecipeNode"] = Field(default_factory=list)


# Discriminated Union
RecipeNode = Annotated[
    Union[LeafNode, ConditionNode, SequenceNode, ParallelNode, GroupNode],
    Field(discriminator="kind"),
]

CompositeNode = Union[ConditionNode, SequenceNode, ParallelNode, GroupNode]

ConditionNode.model_rebuild()
SequenceNode.model_rebuild()
ParallelNode.model_rebuild()
GroupNode.model_rebuild()


def node_children(node: BaseNode) -> List[Any]:
    """Returns the children of any node variant (empty for leaves)."""
    return list(getattr(node, "children", []))


# 3. Chains

VariableType = Literal["string", "boolean", "number", "array", "object"]


class VariableValidation(BaseModel):
    model_config = RECORD_CONFIG

    pattern: Optional[str] = None
    min_length: Optional[int] = Field(default=None, ge=0)
    max_length: Optional[int] = Field(default=None, ge=0)
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    allowed_values: Optional[List[Any]] = None
    custom_validator: Optional[str] = None

    @field_validator("pattern")
    @classmethod
    def pattern_compiles(cls, value: Optional[str]) -> Optional[str]:
        if value is not None:
            try:
                re.compile(value)
            except re.error as e:
                raise ValueError(f"invalid pattern {value!r}: {e}") from e
        return value


class RecipeVariable(BaseModel):
    model_config = RECORD_CONFIG

    name: str
    type: VariableType = "string"
    description: str = ""
    default_value: Any = None
    required: bool = False
    validation: Optional[VariableValidation] = None


Complexity = Literal["simple", "moderate", "complex"]


class ChainMetadata(BaseModel):
    model_config = RECORD_CONFIG

    category: str = "custom"
    complexity: Complexity = "simple"
    estimated_duration_ms: int = 0
    required_permissions: List[str] = Field(default_factory=lambda: ["file.write"])
    supported_languages: List[str] = Field(default_factory=list)
    supported_frameworks: List[str] = Field(default_factory=list)
    created: datetime = Field(default_factory=utcnow)
    last_modified: datetime = Field(default_factory=utcnow)
    usage_count: int = Field(default=0, ge=0)
    success_count: int = Field(default=0, ge=0)
    success_rate: float = 0.0

    @model_validator(mode="before")
    @classmethod
    def derive_success_count(cls, data: Any) -> Any:
        # Records written before successCount existed only carry the rate.
        if isinstance(data, dict) and "successCount" not in data and "success_count" not in data:
            usage = data.get("usageCount", data.get("usage_count")) or 0
            rate = data.get("successRate", data.get("success_rate")) or 0.0
            if usage:
                data = {**data, "success_count": round(float(rate) * int(usage) / 100)}
        return data


class RecipeChain(BaseModel):
    """A named, versioned, reusable tree of recipe nodes."""

    model_config = RECORD_CONFIG

    id: str
    name: str
    description: str = ""
    version: str = "1.0.0"
    root_node: RecipeNode
    variables: Dict[str, RecipeVariable] = Field(default_factory=dict)
    preconditions: List[Condition] = Field(default_factory=list)
    postconditions: List[Condition] = Field(default_factory=list)
    metadata: ChainMetadata = Field(default_factory=ChainMetadata)


# 4. Execution state

StepStatus = Literal["pending", "running", "completed", "failed", "skipped"]
RunStatus = Literal["completed", "failed", "partial"]


class ChainExecutionStep(BaseModel):
    """One recorded visit to one node."""

    model_config = RECORD_CONFIG

    node_id: str
    node_name: str
    node_kind: str
    start_time: datetime = Field(default_factory=utcnow)
    end_time: Optional[datetime] = None
    status: StepStatus = "pending"
    output: Optional[str] = None
    error: Optional[str] = None
    condition_result: Optional[bool] = None
    files_modified: List[str] = Field(default_factory=list)

    def settle(self, status: StepStatus, error: str | None = None) -> None:
        self.status = status
        self.end_time = utcnow()
        if error is not None:
            self.error = error


class ChainExecutionContext(BaseModel):
    """Mutable, execution-scoped state threaded through one run."""

    model_config = RECORD_CONFIG

    variables: Dict[str, Any] = Field(default_factory=dict)
    workspace_root: str = "."
    target_files: List[str] = Field(default_factory=list)
    dry_run: bool = False
    continue_on_error: bool = True
    pattern_hits: List[str] = Field(default_factory=list)
    current_node: Optional[str] = None
    execution_history: List[ChainExecutionStep] = Field(default_factory=list)


class ExecutionSummary(BaseModel):
    model_config = RECORD_CONFIG

    total_nodes: int = 0
    executed_nodes: int = 0
    successful_nodes: int = 0
    failed_nodes: int = 0
    skipped_nodes: int = 0
    total_duration_ms: int = 0
    files_modified: int = 0
    warnings: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


class ChainExecutionResult(BaseModel):
    model_config = RECORD_CONFIG

    chain_id: str
    execution_id: str
    status: RunStatus
    start_time: datetime
    end_time: datetime
    context: ChainExecutionContext
    summary: ExecutionSummary


# 5. Collaborator payloads

Impact = Literal["none", "low", "medium", "high"]


class IssueMetadata(BaseModel):
    model_config = RECORD_CONFIG

    language: Optional[str] = None
    framework: Optional[str] = None
    security_impact: Impact = "none"
    performance_impact: Impact = "none"
    maintainability_impact: Impact = "none"


class DetectedIssue(BaseModel):
    """An issue reported by the pattern detector, tagged with remediation recipes."""

    model_config = RECORD_CONFIG

    id: str
    name: str = ""
    confidence: float = Field(default=0.0, ge=0, le=100)
    suggested_recipes: List[str] = Field(default_factory=list)
    metadata: IssueMetadata = Field(default_factory=IssueMetadata)


class RecipeTarget(BaseModel):
    """What the recipe runner receives for one leaf invocation."""

    model_config = ConfigDict(extra="forbid")

    workspace_root: str
    target_files: List[str] = Field(default_factory=list)
    dry_run: bool = False
    variables: Dict[str, Any] = Field(default_factory=dict)
    parameters: Dict[str, Any] = Field(default_factory=dict)


class RecipeRunResult(BaseModel):
    model_config = RECORD_CONFIG

    output: str = ""
    files_modified: List[str] = Field(default_factory=list)
