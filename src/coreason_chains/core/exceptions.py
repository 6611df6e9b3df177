# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_chains

from typing import List


class ChainError(Exception):
    """Base class for all recipe-chain errors."""

    pass


class ChainNotFound(ChainError):
    """Raised when a chain id is not present in the registry."""

    def __init__(self, chain_id: str) -> None:
        self.chain_id = chain_id
        super().__init__(f"Chain not found: {chain_id}")


class InvalidChainDefinition(ChainError):
    """Raised when a node tree or a stored chain record is malformed."""

    def __init__(self, message: str, problems: List[str] | None = None) -> None:
        self.problems = problems or []
        if self.problems:
            message = f"{message}: " + "; ".join(self.problems)
        super().__init__(message)


class PreconditionFailed(ChainError):
    """Raised when a chain is not eligible to run. No node executes."""

    def __init__(self, expression: str, message: str | None = None) -> None:
        self.expression = expression
        super().__init__(message or f"Precondition failed: {expression}")


class VariableValidationError(PreconditionFailed):
    """Raised when a chain variable is missing or violates its validation rules."""

    def __init__(self, variable: str, reason: str) -> None:
        self.variable = variable
        self.reason = reason
        super().__init__(variable, f"Variable '{variable}' is invalid: {reason}")


class NodeExecutionFailed(ChainError):
    """A node failed and its configuration does not allow the failure to be absorbed."""

    def __init__(self, node_id: str, message: str) -> None:
        self.node_id = node_id
        super().__init__(message)

    def __repr__(self) -> str:
        return f"NodeExecutionFailed(node_id={self.node_id!r}, message={str(self)!r})"


class ExecutionCancelled(ChainError):
    """Raised by the walker when the caller's cancellation signal is set."""

    def __init__(self, node_id: str | None = None) -> None:
        self.node_id = node_id
        super().__init__("Execution cancelled" if node_id is None else f"Execution cancelled before node {node_id}")


class ExpressionError(ChainError):
    """Raised when a custom expression is malformed or uses a disallowed construct."""

    pass


class RecipeRunError(ChainError):
    """Raised by recipe runners when a recipe application fails."""

    def __init__(self, recipe_ref: str, message: str) -> None:
        self.recipe_ref = recipe_ref
        super().__init__(f"Recipe {recipe_ref} failed: {message}")
