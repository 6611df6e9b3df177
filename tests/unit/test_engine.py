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
from types import SimpleNamespace
from typing import Any, Callable
from unittest.mock import AsyncMock

import pytest

from coreason_chains.core.exceptions import ChainNotFound, InvalidChainDefinition
from coreason_chains.core.models import RecipeChain
from coreason_chains.core.registry import ChainRegistry
from coreason_chains.engine.engine import ChainEngine
from coreason_chains.events.sink import EventDispatcher, QueueEventSink

MakeChain = Callable[..., RecipeChain]


def java_gate(*children: Any) -> dict:
    return {
        "id": "java-gate",
        "name": "Java only",
        "kind": "condition",
        "condition": {"kind": "language", "expression": "java", "negate": False},
        "children": list(children),
    }


@pytest.mark.asyncio  # type: ignore
async def test_disabled_root_leaf_completes(
    registry: ChainRegistry, runner: Any, make_chain: MakeChain, nodes: SimpleNamespace
) -> None:
    make_chain(nodes.leaf("a", enabled=False))
    engine = ChainEngine(registry, runner)

    result = await engine.execute_chain("chain-test", {"workspaceRoot": "/ws"})

    assert result.status == "completed"
    assert [s.status for s in result.context.execution_history] == ["skipped"]
    assert result.summary.skipped_nodes == 1
    assert runner.calls == []


@pytest.mark.asyncio  # type: ignore
async def test_language_condition_skip_scenario(
    registry: ChainRegistry, runner: Any, make_chain: MakeChain, nodes: SimpleNamespace
) -> None:
    make_chain(java_gate(nodes.leaf("upgrade")))
    engine = ChainEngine(registry, runner)

    result = await engine.execute_chain("chain-test", {"workspaceRoot": "/ws", "targetFiles": ["app/main.py"]})

    assert result.status == "completed"
    history = result.context.execution_history
    assert len(history) == 1
    assert history[0].status == "skipped"
    assert history[0].condition_result is False
    assert runner.calls == []


@pytest.mark.asyncio  # type: ignore
async def test_successful_run_summary(
    registry: ChainRegistry, runner: Any, make_chain: MakeChain, nodes: SimpleNamespace
) -> None:
    runner.files = {"a": ["A.java", "B.java"], "b": ["B.java", "C.java"]}
    chain = make_chain(nodes.composite("sequence", "root", nodes.leaf("a"), nodes.leaf("b")))
    engine = ChainEngine(registry, runner)

    result = await engine.execute_chain("chain-test", {"workspaceRoot": "/ws"})

    assert result.status == "completed"
    assert result.execution_id.startswith("exec-")
    assert result.summary.total_nodes == 3
    assert result.summary.executed_nodes == 3
    assert result.summary.successful_nodes == 3
    assert result.summary.failed_nodes == 0
    assert result.summary.files_modified == 3
    assert result.summary.total_duration_ms >= 0
    assert result.summary.errors == []
    assert result.end_time >= result.start_time
    assert result.context.current_node is None
    assert chain.metadata.usage_count == 1
    assert chain.metadata.success_rate == 100


@pytest.mark.asyncio  # type: ignore
async def test_absorbed_failure_yields_partial(
    registry: ChainRegistry, runner: Any, make_chain: MakeChain, nodes: SimpleNamespace
) -> None:
    runner.failures["a"] = -1
    chain = make_chain(nodes.composite("sequence", "root", nodes.leaf("a"), nodes.leaf("b")))
    engine = ChainEngine(registry, runner)

    result = await engine.execute_chain("chain-test")

    assert result.status == "partial"
    assert result.summary.failed_nodes == 1
    assert any("boom" in e for e in result.summary.errors)
    assert chain.metadata.success_rate == 0


@pytest.mark.asyncio  # type: ignore
async def test_root_propagation_fails_run_without_raising(
    registry: ChainRegistry, runner: Any, make_chain: MakeChain, nodes: SimpleNamespace
) -> None:
    runner.failures["a"] = -1
    root = nodes.composite(
        "sequence", "root", nodes.leaf("a", continueOnError=False), nodes.leaf("b"), config={"continueOnError": False}
    )
    chain = make_chain(root)
    engine = ChainEngine(registry, runner)

    result = await engine.execute_chain("chain-test")

    assert result.status == "failed"
    assert [s.node_id for s in result.context.execution_history] == ["root", "a"]
    assert runner.calls == ["a"]
    assert chain.metadata.usage_count == 1


@pytest.mark.asyncio  # type: ignore
async def test_precondition_failure_runs_nothing(
    registry: ChainRegistry, runner: Any, make_chain: MakeChain, nodes: SimpleNamespace
) -> None:
    chain = make_chain(nodes.leaf("a"), preconditions=[{"kind": "language", "expression": "java"}])
    engine = ChainEngine(registry, runner)

    result = await engine.execute_chain("chain-test", {"targetFiles": ["main.py"]})

    assert result.status == "failed"
    assert result.context.execution_history == []
    assert result.summary.errors == ["Precondition failed: java"]
    assert runner.calls == []
    assert chain.metadata.usage_count == 1


@pytest.mark.asyncio  # type: ignore
async def test_invalid_variable_is_a_precondition_failure(
    registry: ChainRegistry, runner: Any, make_chain: MakeChain, nodes: SimpleNamespace
) -> None:
    variables = {
        "targetJavaVersion": {
            "name": "Target Java Version",
            "defaultValue": "17",
            "required": True,
            "validation": {"allowedValues": ["11", "17", "21"]},
        }
    }
    make_chain(nodes.leaf("a", parameters={"to": "{{ targetJavaVersion }}"}), variables=variables)
    engine = ChainEngine(registry, runner)

    bad = await engine.execute_chain("chain-test", {"variables": {"targetJavaVersion": "8"}})
    good = await engine.execute_chain("chain-test")

    assert bad.status == "failed"
    assert "targetJavaVersion" in bad.summary.errors[0]
    assert good.status == "completed"
    assert good.context.variables["targetJavaVersion"] == "17"
    assert runner.targets[0].parameters == {"to": "17"}


@pytest.mark.asyncio  # type: ignore
async def test_postcondition_failure_is_a_warning(
    registry: ChainRegistry, runner: Any, make_chain: MakeChain, nodes: SimpleNamespace
) -> None:
    make_chain(
        nodes.leaf("a"),
        postconditions=[
            {"kind": "custom", "expression": "compilation.successful && tests.passing"},
            {"kind": "custom", "expression": "dry_run == false"},
        ],
    )
    engine = ChainEngine(registry, runner)

    result = await engine.execute_chain("chain-test")

    assert result.status == "completed"
    assert result.summary.warnings == ["Postcondition not met: compilation.successful && tests.passing"]


@pytest.mark.asyncio  # type: ignore
async def test_unknown_chain_raises(registry: ChainRegistry, runner: Any) -> None:
    with pytest.raises(ChainNotFound):
        await ChainEngine(registry, runner).execute_chain("missing")


@pytest.mark.asyncio  # type: ignore
async def test_malformed_context_raises(registry: ChainRegistry, runner: Any, make_chain: MakeChain, nodes: SimpleNamespace) -> None:
    make_chain(nodes.leaf("a"))
    with pytest.raises(InvalidChainDefinition):
        await ChainEngine(registry, runner).execute_chain("chain-test", {"targetFiles": "not-a-list"})


@pytest.mark.asyncio  # type: ignore
async def test_cancellation_fails_run(
    registry: ChainRegistry, runner: Any, make_chain: MakeChain, nodes: SimpleNamespace
) -> None:
    make_chain(nodes.composite("sequence", "root", nodes.leaf("a"), nodes.leaf("b")))
    cancel = asyncio.Event()
    cancel.set()

    result = await ChainEngine(registry, runner).execute_chain("chain-test", cancel_event=cancel)

    assert result.status == "failed"
    assert result.context.execution_history[0].error == "Execution cancelled before node root"
    assert runner.calls == []


@pytest.mark.asyncio  # type: ignore
async def test_concurrent_runs_update_statistics_exactly(
    registry: ChainRegistry, make_chain: MakeChain, nodes: SimpleNamespace
) -> None:
    chain = make_chain(nodes.leaf("step", continueOnError=False))

    class ContextSensitiveRunner:
        async def run(self, recipe_ref: str, target: Any) -> str:
            await asyncio.sleep(0.01)
            if target.variables.get("fail"):
                raise RuntimeError("requested failure")
            return "ok"

    engine = ChainEngine(registry, ContextSensitiveRunner())
    ok, bad = await asyncio.gather(
        engine.execute_chain("chain-test", {"variables": {"fail": False}}),
        engine.execute_chain("chain-test", {"variables": {"fail": True}}),
    )

    assert ok.status == "completed"
    assert bad.status == "failed"
    assert ok.execution_id != bad.execution_id
    assert chain.metadata.usage_count == 2
    assert chain.metadata.success_rate == pytest.approx(50.0)


@pytest.mark.asyncio  # type: ignore
async def test_events_bracket_the_run(
    registry: ChainRegistry, runner: Any, make_chain: MakeChain, nodes: SimpleNamespace
) -> None:
    make_chain(nodes.composite("sequence", "root", nodes.leaf("a")))
    sink = QueueEventSink()
    engine = ChainEngine(registry, runner, dispatcher=EventDispatcher([sink]))

    result = await engine.execute_chain("chain-test", {"workspaceRoot": "/ws", "dryRun": True})

    events = sink.drain()
    assert [e.event_type for e in events] == ["EXECUTION_START", "STEP_DONE", "STEP_DONE", "EXECUTION_END"]
    assert all(e.execution_id == result.execution_id for e in events)
    assert events[0].payload["dry_run"] is True
    assert events[-1].payload["status"] == "completed"
    assert events[-1].payload["summary"]["successfulNodes"] == 2


@pytest.mark.asyncio  # type: ignore
async def test_failing_sink_does_not_affect_execution(
    registry: ChainRegistry, runner: Any, make_chain: MakeChain, nodes: SimpleNamespace
) -> None:
    make_chain(nodes.leaf("a"))
    broken = AsyncMock()
    broken.emit.side_effect = ConnectionError("redis down")

    result = await ChainEngine(registry, runner, dispatcher=EventDispatcher([broken])).execute_chain("chain-test")

    assert result.status == "completed"
    assert broken.emit.await_count == 3


@pytest.mark.asyncio  # type: ignore
async def test_framework_condition_uses_inspector(
    registry: ChainRegistry, runner: Any, make_chain: MakeChain, nodes: SimpleNamespace
) -> None:
    inspector = AsyncMock()
    inspector.has_framework.return_value = False
    make_chain(nodes.leaf("a"), preconditions=[{"kind": "framework", "expression": "spring-boot"}])

    result = await ChainEngine(registry, runner, inspector=inspector).execute_chain("chain-test", {"workspaceRoot": "/ws"})

    assert result.status == "failed"
    inspector.has_framework.assert_awaited_once_with("spring-boot", "/ws")


@pytest.mark.asyncio  # type: ignore
async def test_default_workspace_root_is_cwd(
    registry: ChainRegistry, runner: Any, make_chain: MakeChain, nodes: SimpleNamespace, tmp_path: Any, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.chdir(tmp_path)
    make_chain(nodes.leaf("a"))

    result = await ChainEngine(registry, runner).execute_chain("chain-test")

    assert result.context.workspace_root == str(tmp_path)
    assert runner.targets[0].workspace_root == str(tmp_path)
