# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_chains

from typing import Any
from unittest.mock import AsyncMock

import pytest

from coreason_chains.core.registry import ChainRegistry
from coreason_chains.engine.engine import ChainEngine
from coreason_chains.storage.builtin import builtin_chains, register_builtin_chains


def test_builtin_chains_are_valid_and_classified() -> None:
    chains = {chain.id: chain for chain in builtin_chains()}

    assert set(chains) == {"java-modernization-full", "spring-boot-2-to-3-migration"}
    java = chains["java-modernization-full"]
    assert java.metadata.category == "modernization"
    assert java.metadata.complexity == "complex"
    # sequence(condition, parallel(10s, 10s), sequence(10s, 10s))
    assert java.metadata.estimated_duration_ms == 30_000
    assert java.variables["targetJavaVersion"].default_value == "17"

    spring = chains["spring-boot-2-to-3-migration"]
    assert spring.metadata.complexity == "complex"
    assert spring.metadata.required_permissions == ["file.write", "dependency.modify", "test.run"]


def test_builtin_chains_are_fresh_copies() -> None:
    first = builtin_chains()[0]
    first.metadata.usage_count = 99
    assert builtin_chains()[0].metadata.usage_count == 0


def test_register_builtin_chains(registry: ChainRegistry) -> None:
    registered = register_builtin_chains(registry)
    assert len(registered) == 2
    assert len(registry.by_category("migration")) == 1


@pytest.mark.asyncio  # type: ignore
async def test_java_modernization_run(registry: ChainRegistry, runner: Any) -> None:
    register_builtin_chains(registry)
    engine = ChainEngine(registry, runner)

    result = await engine.execute_chain(
        "java-modernization-full",
        {"workspaceRoot": "/ws", "targetFiles": ["src/Main.java"], "variables": {"targetJavaVersion": "21"}},
    )

    assert result.status == "completed"
    assert sorted(runner.calls) == sorted(
        [
            "org.openrewrite.java.dependencies.UpgradeDependencyVersion",
            "org.openrewrite.java.security.SecureRandom",
            "org.openrewrite.java.migrate.Java8toJava11",
            "com.example.StringBuilderOptimization",
        ]
    )
    # The compilation/test postcondition has no data to evaluate against.
    assert len(result.summary.warnings) == 1


@pytest.mark.asyncio  # type: ignore
async def test_spring_boot_run_skips_security_when_absent(registry: ChainRegistry, runner: Any) -> None:
    register_builtin_chains(registry)
    inspector = AsyncMock()
    inspector.has_framework.return_value = True

    async def has_dependency(expression: str, workspace_root: str) -> bool:
        return not expression.startswith("spring-security")

    inspector.has_dependency.side_effect = has_dependency
    engine = ChainEngine(registry, runner, inspector=inspector)

    result = await engine.execute_chain("spring-boot-2-to-3-migration", {"targetFiles": ["App.java"]})

    steps = {s.node_id: s for s in result.context.execution_history}
    assert result.status == "completed"
    assert steps["security-migration"].status == "skipped"
    assert "security-config-update" not in steps
    assert "org.openrewrite.java.spring.boot3.UpgradeSpringBoot_3_0" in runner.calls
