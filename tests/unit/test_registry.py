# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_chains

import threading
from typing import Any, Callable

import pytest

from coreason_chains.core.exceptions import ChainNotFound
from coreason_chains.core.models import (
    ChainExecutionContext,
    ChainExecutionResult,
    ExecutionSummary,
    RecipeChain,
    RunStatus,
    utcnow,
)
from coreason_chains.core.registry import ChainRegistry


def result(chain_id: str, status: RunStatus) -> ChainExecutionResult:
    now = utcnow()
    return ChainExecutionResult(
        chain_id=chain_id,
        execution_id=f"exec-{status}",
        status=status,
        start_time=now,
        end_time=now,
        context=ChainExecutionContext(),
        summary=ExecutionSummary(),
    )


def test_register_get_and_unregister(registry: ChainRegistry, make_chain: Callable[..., RecipeChain], nodes: Any) -> None:
    chain = make_chain(nodes.leaf("a"), chain_id="c1")

    assert "c1" in registry
    assert len(registry) == 1
    assert registry.require("c1") is chain
    assert registry.all() == [chain]

    registry.unregister("c1")
    assert registry.get("c1") is None
    with pytest.raises(ChainNotFound):
        registry.require("c1")
    with pytest.raises(ChainNotFound):
        registry.unregister("c1")


def test_by_category(registry: ChainRegistry, make_chain: Callable[..., RecipeChain], nodes: Any) -> None:
    make_chain(nodes.leaf("a"), chain_id="m", metadata={"category": "migration"})
    make_chain(nodes.leaf("a"), chain_id="c")

    assert [c.id for c in registry.by_category("migration")] == ["m"]
    assert [c.id for c in registry.by_category("custom")] == ["c"]


def test_record_execution_updates_statistics(
    registry: ChainRegistry, make_chain: Callable[..., RecipeChain], nodes: Any
) -> None:
    chain = make_chain(nodes.leaf("a"), chain_id="c1")

    registry.record_execution(result("c1", "completed"))
    registry.record_execution(result("c1", "partial"))
    registry.record_execution(result("c1", "failed"))
    registry.record_execution(result("c1", "completed"))

    assert chain.metadata.usage_count == 4
    assert chain.metadata.success_rate == pytest.approx(50.0)
    assert len(registry.history("c1")) == 4
    assert len(registry.history()) == 4


def test_record_execution_for_unknown_chain(registry: ChainRegistry) -> None:
    with pytest.raises(ChainNotFound):
        registry.record_execution(result("ghost", "completed"))


def test_record_execution_is_atomic_across_threads(
    registry: ChainRegistry, make_chain: Callable[..., RecipeChain], nodes: Any
) -> None:
    chain = make_chain(nodes.leaf("a"), chain_id="c1")

    def worker(status: RunStatus) -> None:
        for _ in range(50):
            registry.record_execution(result("c1", status))

    threads = [threading.Thread(target=worker, args=(s,)) for s in ("completed", "failed") * 4]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert chain.metadata.usage_count == 400
    assert chain.metadata.success_rate == pytest.approx(50.0)


def test_statistics_continue_from_loaded_counts(
    registry: ChainRegistry, make_chain: Callable[..., RecipeChain], nodes: Any
) -> None:
    chain = make_chain(nodes.leaf("a"), chain_id="c1", metadata={"usageCount": 10, "successRate": 10.0})
    assert chain.metadata.success_count == 1

    registry.record_execution(result("c1", "completed"))

    assert chain.metadata.usage_count == 11
    assert chain.metadata.success_count == 2
    assert chain.metadata.success_rate == pytest.approx(2 / 11 * 100)


def test_history_is_bounded(nodes: Any) -> None:
    registry = ChainRegistry(history_limit=3)
    chain = RecipeChain.model_validate({"id": "c1", "name": "c1", "rootNode": nodes.leaf("a")})
    registry.register(chain)

    for _ in range(10):
        registry.record_execution(result("c1", "completed"))

    assert len(registry.history()) == 3
    assert chain.metadata.usage_count == 10
    assert chain.metadata.success_rate == pytest.approx(100.0)
