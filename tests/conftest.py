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
from typing import Any, Callable, Dict, List

import pytest

from coreason_chains.core.exceptions import RecipeRunError
from coreason_chains.core.models import RecipeChain, RecipeRunResult, RecipeTarget
from coreason_chains.core.registry import ChainRegistry
from coreason_chains.events.sink import EventDispatcher, QueueEventSink

pytest_plugins = ("pytest_asyncio",)


class ScriptedRunner:
    """
    Recipe runner double. Recipes succeed unless scripted to fail; failures
    are counted down per recipe (-1 fails forever).
    """

    def __init__(self) -> None:
        self.calls: List[str] = []
        self.targets: List[RecipeTarget] = []
        self.failures: Dict[str, int] = {}
        self.delays: Dict[str, float] = {}
        self.files: Dict[str, List[str]] = {}
        self.active = 0
        self.max_active = 0

    async def run(self, recipe_ref: str, target: RecipeTarget) -> RecipeRunResult:
        self.calls.append(recipe_ref)
        self.targets.append(target)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delays.get(recipe_ref, 0))
            remaining = self.failures.get(recipe_ref, 0)
            if remaining:
                if remaining > 0:
                    self.failures[recipe_ref] = remaining - 1
                raise RecipeRunError(recipe_ref, "boom")
            return RecipeRunResult(output=f"applied {recipe_ref}", files_modified=self.files.get(recipe_ref, []))
        finally:
            self.active -= 1


@pytest.fixture  # type: ignore[misc]
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture  # type: ignore[misc]
def runner() -> ScriptedRunner:
    return ScriptedRunner()


@pytest.fixture  # type: ignore[misc]
def registry() -> ChainRegistry:
    return ChainRegistry()


@pytest.fixture  # type: ignore[misc]
def event_sink() -> QueueEventSink:
    return QueueEventSink()


@pytest.fixture  # type: ignore[misc]
def dispatcher(event_sink: QueueEventSink) -> EventDispatcher:
    return EventDispatcher([event_sink])


def leaf(node_id: str, recipe: str | None = None, **config: Any) -> Dict[str, Any]:
    return {"id": node_id, "name": node_id, "kind": "leaf", "recipeRef": recipe or node_id, "config": config}


def composite(kind: str, node_id: str, *children: Dict[str, Any], **extra: Any) -> Dict[str, Any]:
    return {"id": node_id, "name": node_id, "kind": kind, "children": list(children), **extra}


@pytest.fixture  # type: ignore[misc]
def nodes() -> SimpleNamespace:
    return SimpleNamespace(leaf=leaf, composite=composite)


@pytest.fixture  # type: ignore[misc]
def make_chain(registry: ChainRegistry) -> Callable[..., RecipeChain]:
    def _make(root: Dict[str, Any], chain_id: str = "chain-test", **fields: Any) -> RecipeChain:
        chain = RecipeChain.model_validate({"id": chain_id, "name": f"Chain {chain_id}", "rootNode": root, **fields})
        registry.register(chain)
        return chain

    return _make
