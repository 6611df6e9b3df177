# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_chains

from pathlib import Path
from typing import Any

import pytest

from coreason_chains.core.registry import ChainRegistry
from coreason_chains.engine.builder import ChainBuilder
from coreason_chains.engine.engine import ChainEngine
from coreason_chains.events.sink import EventDispatcher, QueueEventSink
from coreason_chains.storage.chain_store import ChainStore

ISSUES = [
    {"id": "i1", "confidence": 95, "suggestedRecipes": ["r.A", "r.B"], "metadata": {"language": "java"}},
    {"id": "i2", "confidence": 50, "suggestedRecipes": ["r.B"], "metadata": {"securityImpact": "high"}},
]


@pytest.mark.asyncio  # type: ignore
async def test_detect_build_execute_persist(registry: ChainRegistry, runner: Any, tmp_path: Path) -> None:
    sink = QueueEventSink()
    dispatcher = EventDispatcher([sink])
    builder = ChainBuilder(registry, dispatcher=dispatcher)
    engine = ChainEngine(registry, runner, dispatcher=dispatcher)
    store = ChainStore.for_workspace(str(tmp_path))
    runner.failures["r.B"] = -1

    chain = await builder.create_chain_from_patterns(ISSUES, "Remediate", {"includeValidation": True})
    result = await engine.execute_chain(chain.id, {"workspaceRoot": str(tmp_path)})
    store.save(registry.require(chain.id))

    steps = {s.node_id: s.status for s in result.context.execution_history}
    assert result.status == "partial"
    assert steps["pattern-recipe-0"] == "completed"
    assert steps["pattern-recipe-1"] == "failed"
    assert steps["compile-check"] == "skipped"
    assert steps["pattern-based-root"] == "completed"

    reloaded = ChainRegistry()
    assert ChainStore.for_workspace(str(tmp_path)).load_into(reloaded) == 1
    stored = reloaded.require(chain.id)
    assert stored.metadata.usage_count == 1
    assert stored.metadata.success_rate == 0.0

    kinds = []
    while not sink.queue.empty():
        kinds.append(sink.queue.get_nowait().event_type)
    assert kinds[0] == "CHAIN_CREATED"
    assert kinds[1] == "EXECUTION_START"
    assert kinds[-1] == "EXECUTION_END"
