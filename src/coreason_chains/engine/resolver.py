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
from typing import Any, Dict, Mapping

from coreason_chains.core.exceptions import ExpressionError, VariableValidationError
from coreason_chains.core.models import RecipeVariable
from coreason_chains.engine.conditions import ExpressionEvaluator

_TEMPLATE = re.compile(r"\{\{\s*([\w\-\.]+)\s*\}\}")

_TYPE_CHECKS: Dict[str, Any] = {
    "string": lambda v: isinstance(v, str),
    "boolean": lambda v: isinstance(v, bool),
    "number": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    "array": lambda v: isinstance(v, (list, tuple)),
    "object": lambda v: isinstance(v, dict),
}


class VariableResolver:
    """
    Handles resolution of {{ variable }} placeholders in node parameters.
    """

    def resolve(self, parameters: Dict[str, Any], variables: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Recursively replaces {{ name }} (or {{ name.key }}) with variable values.
        """
        return self._replace_value(dict(parameters), variables)  # type: ignore

    def _replace_value(self, val: Any, variables: Mapping[str, Any]) -> Any:
        if isinstance(val, str):
            for ref in _TEMPLATE.findall(val):
                found, current_val = self._lookup(ref, variables)
                if not found:
                    continue

                # If the string is EXACTLY the template, keep the raw object (e.g. list/int)
                if _TEMPLATE.fullmatch(val.strip()):
                    return current_val
                val = re.sub(r"\{\{\s*" + re.escape(ref) + r"\s*\}\}", str(current_val), val)
            return val
        elif isinstance(val, dict):
            return {k: self._replace_value(v, variables) for k, v in val.items()}
        elif isinstance(val, list):
            return [self._replace_value(v, variables) for v in val]
        return val

    def _lookup(self, ref: str, variables: Mapping[str, Any]) -> tuple[bool, Any]:
        parts = ref.split(".")
        if parts[0] not in variables:
            return False, None
        current_val = variables[parts[0]]
        for part in parts[1:]:
            if isinstance(current_val, dict) and part in current_val:
                current_val = current_val[part]
            elif hasattr(current_val, part):
                current_val = getattr(current_val, part)
            else:
                return False, None
        return True, current_val


class VariableBinder:
    """Merges declared chain variables with caller-supplied values and validates them."""

    def __init__(self, expressions: ExpressionEvaluator | None = None) -> None:
        self.expressions = expressions or ExpressionEvaluator()

    def bind(self, declared: Mapping[str, RecipeVariable], supplied: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Builds the run's variable bag.

        Declared defaults are applied first, caller values override them, and
        undeclared caller values are passed through untouched.

        Args:
            declared: The chain's variable declarations.
            supplied: Values supplied by the caller.

        Returns:
            Dict[str, Any]: The resolved variables.

        Raises:
            VariableValidationError: If a required variable is missing or a value
                fails its validation rules.
        """
        bound: Dict[str, Any] = {}
        for key, spec in declared.items():
            if spec.default_value is not None:
                bound[key] = spec.default_value
        bound.update(supplied)

        for key, spec in declared.items():
            if key not in bound or bound[key] is None:
                if spec.required:
                    raise VariableValidationError(key, "required value is missing")
                continue
            self._validate(key, spec, bound[key])
        return bound

    def _validate(self, key: str, spec: RecipeVariable, value: Any) -> None:
        if not _TYPE_CHECKS[spec.type](value):
            raise VariableValidationError(key, f"expected {spec.type}, got {type(value).__name__}")

        rules = spec.validation
        if rules is None:
            return

        if rules.allowed_values is not None and value not in rules.allowed_values:
            raise VariableValidationError(key, f"{value!r} is not one of {rules.allowed_values!r}")
        if rules.pattern is not None and not re.fullmatch(rules.pattern, str(value)):
            raise VariableValidationError(key, f"{value!r} does not match pattern {rules.pattern!r}")
        if isinstance(value, (str, list, tuple, dict)):
            if rules.min_length is not None and len(value) < rules.min_length:
                raise VariableValidationError(key, f"length {len(value)} is below {rules.min_length}")
            if rules.max_length is not None and len(value) > rules.max_length:
                raise VariableValidationError(key, f"length {len(value)} exceeds {rules.max_length}")
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            if rules.min_value is not None and value < rules.min_value:
                raise VariableValidationError(key, f"{value} is below {rules.min_value}")
            if rules.max_value is not None and value > rules.max_value:
                raise VariableValidationError(key, f"{value} exceeds {rules.max_value}")
        if rules.custom_validator:
            try:
                ok = self.expressions.evaluate(rules.custom_validator, {"value": value})
            except ExpressionError as e:
                raise VariableValidationError(key, str(e)) from e
            if not ok:
                raise VariableValidationError(key, f"custom validator '{rules.custom_validator}' rejected {value!r}")
