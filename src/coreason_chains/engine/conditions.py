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
from pathlib import PurePath
from typing import Any, Callable, Dict, FrozenSet, Mapping, Optional, Tuple

from jinja2 import StrictUndefined, nodes
from jinja2.exceptions import TemplateError
from jinja2.sandbox import SandboxedEnvironment

from coreason_chains.core.exceptions import ExpressionError
from coreason_chains.core.interfaces import WorkspaceInspector
from coreason_chains.core.models import ChainExecutionContext, Condition
from coreason_chains.utils.logger import logger

LANGUAGE_EXTENSIONS: Dict[str, Tuple[str, ...]] = {
    "java": (".java",),
    "kotlin": (".kt", ".kts"),
    "groovy": (".groovy", ".gradle"),
    "scala": (".scala",),
    "python": (".py", ".pyi"),
    "javascript": (".js", ".jsx", ".mjs", ".cjs"),
    "typescript": (".ts", ".tsx"),
    "go": (".go",),
    "csharp": (".cs",),
    "ruby": (".rb",),
    "rust": (".rs",),
    "cpp": (".cpp", ".cc", ".cxx", ".hpp", ".h"),
    "c": (".c", ".h"),
    "xml": (".xml",),
    "yaml": (".yml", ".yaml"),
}

LANGUAGE_ALIASES: Dict[str, str] = {
    "js": "javascript",
    "ts": "typescript",
    "py": "python",
    "c#": "csharp",
    "c++": "cpp",
    "golang": "go",
}

_ALLOWED_NODES: Tuple[type, ...] = (
    nodes.Name,
    nodes.Const,
    nodes.Getattr,
    nodes.Getitem,
    nodes.Compare,
    nodes.Operand,
    nodes.And,
    nodes.Or,
    nodes.Not,
    nodes.Neg,
    nodes.Pos,
    nodes.List,
    nodes.Tuple,
    nodes.Test,
)

_ALLOWED_TESTS: FrozenSet[str] = frozenset({"defined", "undefined", "none", "true", "false", "number", "string"})

_STRING_LITERAL = re.compile(r"(\"(?:[^\"\\]|\\.)*\"|'(?:[^'\\]|\\.)*')")


def _normalise(expression: str) -> str:
    """Rewrites JavaScript-style operators outside string literals."""
    parts = _STRING_LITERAL.split(expression)
    for i in range(0, len(parts), 2):
        part = parts[i]
        part = part.replace("===", "==").replace("!==", "!=")
        part = part.replace("&&", " and ").replace("||", " or ")
        part = re.sub(r"!(?!=)", " not ", part)
        parts[i] = part
    return "".join(parts).strip()


class ExpressionEvaluator:
    """
    Evaluates small boolean expressions against a variable bag.

    Expressions use Jinja2 expression syntax, restricted to literals, names,
    attribute/item access, comparisons and boolean operators. Anything else
    (calls, filters, arithmetic) is rejected before evaluation.
    """

    def __init__(self) -> None:
        self.env = SandboxedEnvironment(undefined=StrictUndefined)
        self._compiled: Dict[str, Callable[..., Any]] = {}

    def compile(self, expression: str) -> Callable[..., Any]:
        """Parses, checks and compiles an expression.

        Args:
            expression: The raw expression text.

        Returns:
            A callable taking the variable bag as keyword arguments.

        Raises:
            ExpressionError: If the expression is malformed or uses a disallowed construct.
        """
        source = _normalise(expression)
        if source in self._compiled:
            return self._compiled[source]
        if not source:
            raise ExpressionError("Empty expression")

        try:
            template = self.env.parse("{{ " + source + " }}")
        except TemplateError as e:
            raise ExpressionError(f"Invalid expression '{expression}': {e}") from e

        body = template.body
        if len(body) != 1 or not isinstance(body[0], nodes.Output) or len(body[0].nodes) != 1:
            raise ExpressionError(f"Invalid expression '{expression}'")
        root = body[0].nodes[0]

        for node in [root, *root.find_all(nodes.Node)]:
            if not isinstance(node, _ALLOWED_NODES):
                raise ExpressionError(f"Disallowed construct {type(node).__name__} in '{expression}'")
            if isinstance(node, nodes.Test) and (node.name not in _ALLOWED_TESTS or node.args or node.kwargs):
                raise ExpressionError(f"Disallowed test '{node.name}' in '{expression}'")

        try:
            compiled = self.env.compile_expression(source, undefined_to_none=False)
        except TemplateError as e:
            raise ExpressionError(f"Invalid expression '{expression}': {e}") from e

        self._compiled[source] = compiled
        return compiled

    def evaluate(self, expression: str, variables: Mapping[str, Any]) -> bool:
        """Evaluates an expression to a boolean.

        Raises:
            ExpressionError: On malformed expressions or evaluation failures
                (undefined names, type errors in comparisons).
        """
        compiled = self.compile(expression)
        try:
            return bool(compiled(**variables))
        except (TemplateError, TypeError, ValueError, KeyError, AttributeError) as e:
            raise ExpressionError(f"Could not evaluate '{expression}': {e}") from e


class ConditionEvaluator:
    """Decides condition outcomes against an execution context."""

    def __init__(
        self,
        inspector: WorkspaceInspector | None = None,
        expressions: ExpressionEvaluator | None = None,
    ) -> None:
        self.inspector = inspector
        self.expressions = expressions or ExpressionEvaluator()

    async def evaluate(self, condition: Condition, context: ChainExecutionContext) -> bool:
        """
        Evaluates a condition. Never raises for a well-formed condition.

        Args:
            condition: The condition to evaluate.
            context: The live execution context.

        Returns:
            bool: The outcome, inverted when the condition is negated.
        """
        if condition.kind == "language":
            result = self._evaluate_language(condition.expression, context)
        elif condition.kind == "framework":
            result = await self._evaluate_workspace("has_framework", condition.expression, context)
        elif condition.kind == "dependency":
            result = await self._evaluate_workspace("has_dependency", condition.expression, context)
        elif condition.kind == "pattern":
            result = condition.expression.strip() in context.pattern_hits
        else:
            result = self._evaluate_custom(condition.expression, context)

        return not result if condition.negate else result

    def _evaluate_language(self, expression: str, context: ChainExecutionContext) -> bool:
        # "java", "java.version < 11" and "Java 17" all name the language first.
        match = re.match(r"\s*([A-Za-z#+]+)", expression)
        if not match:
            return False
        language = match.group(1).lower()
        language = LANGUAGE_ALIASES.get(language, language)

        extensions = LANGUAGE_EXTENSIONS.get(language)
        if extensions is None:
            logger.debug(f"Unknown language in condition: {expression}")
            return False
        return any(PurePath(f).suffix.lower() in extensions for f in context.target_files)

    async def _evaluate_workspace(self, method: str, expression: str, context: ChainExecutionContext) -> bool:
        if self.inspector is None:
            return True
        try:
            found: Optional[bool] = await getattr(self.inspector, method)(expression, context.workspace_root)
        except Exception as e:
            logger.warning(f"Workspace inspection failed for '{expression}': {e}")
            return True
        return True if found is None else found

    def _evaluate_custom(self, expression: str, context: ChainExecutionContext) -> bool:
        bag: Dict[str, Any] = {
            "workspace_root": context.workspace_root,
            "target_files": list(context.target_files),
            "dry_run": context.dry_run,
            "pattern_hits": list(context.pattern_hits),
        }
        bag.update(context.variables)
        try:
            return self.expressions.evaluate(expression, bag)
        except ExpressionError as e:
            logger.warning(f"Custom condition evaluation failed: {e}")
            return False
