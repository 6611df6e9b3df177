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
from collections import deque
from typing import Deque, Dict, List, Optional

from coreason_chains.core.exceptions import ChainNotFound
from coreason_chains.core.models import ChainExecutionResult, RecipeChain
from coreason_chains.utils.logger import logger

HISTORY_LIMIT = 100


class ChainRegistry:
    """
    Process-lifetime store of chains and their most recent execution results.

    The registry is the only state shared between concurrent executions, so
    every mutation happens under a single lock.
    """

    def __init__(self, history_limit: int = HISTORY_LIMIT) -> None:
        self._chains: Dict[str, RecipeChain] = {}
        self._history: Deque[ChainExecutionResult] = deque(maxlen=history_limit)
        self._lock = threading.Lock()

    def register(self, chain: RecipeChain) -> None:
        with self._lock:
            self._chains[chain.id] = chain
        logger.debug(f"Registered chain {chain.id} ({chain.name})")

    def unregister(self, chain_id: str) -> None:
        with self._lock:
            if chain_id not in self._chains:
                raise ChainNotFound(chain_id)
            del self._chains[chain_id]

    def get(self, chain_id: str) -> Optional[RecipeChain]:
        with self._lock:
            return self._chains.get(chain_id)

    def require(self, chain_id: str) -> RecipeChain:
        chain = self.get(chain_id)
        if chain is None:
            raise ChainNotFound(chain_id)
        return chain

    def all(self) -> List[RecipeChain]:
        with self._lock:
            return list(self._chains.values())

    def by_category(self, category: str) -> List[RecipeChain]:
        return [chain for chain in self.all() if chain.metadata.category == category]

    def __contains__(self, chain_id: object) -> bool:
        with self._lock:
            return chain_id in self._chains

    def __len__(self) -> int:
        with self._lock:
            return len(self._chains)

    def history(self, chain_id: str | None = None) -> List[ChainExecutionResult]:
        with self._lock:
            if chain_id is None:
                return list(self._history)
            return [result for result in self._history if result.chain_id == chain_id]

    def record_execution(self, result: ChainExecutionResult) -> RecipeChain:
        """
        Appends a finished run and refreshes the chain's cumulative statistics.

        The increment and the success-rate recomputation happen in one critical
        section, so concurrent completions of the same chain never lose updates.

        Args:
            result: The terminal record of one run.

        Returns:
            RecipeChain: The chain with its updated statistics.

        Raises:
            ChainNotFound: If the chain was removed while the run was in flight.
        """
        with self._lock:
            chain = self._chains.get(result.chain_id)
            if chain is None:
                raise ChainNotFound(result.chain_id)

            self._history.append(result)
            metadata = chain.metadata
            metadata.usage_count += 1
            if result.status == "completed":
                metadata.success_count += 1
            metadata.success_rate = metadata.success_count / metadata.usage_count * 100
            return chain
