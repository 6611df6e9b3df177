# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_chains

import json
from pathlib import Path
from typing import Any, Dict, List

from pydantic import ValidationError

from coreason_chains.core.exceptions import ChainNotFound, InvalidChainDefinition
from coreason_chains.core.models import RecipeChain
from coreason_chains.core.registry import ChainRegistry
from coreason_chains.engine.topology import TopologyEngine
from coreason_chains.utils.logger import logger

CHAINS_SUBDIR = Path(".moderne") / "chains"
REQUIRED_FIELDS = (("id",), ("name",), ("rootNode", "root_node"))


class ChainStore:
    """
    Persists chains as one JSON document per chain.

    Records are written with camelCase keys and ISO-8601 timestamps. Unknown
    keys are ignored on load, so records written by newer versions still load.
    """

    def __init__(self, directory: str | Path, topology: TopologyEngine | None = None) -> None:
        self.directory = Path(directory)
        self.topology = topology or TopologyEngine()

    @classmethod
    def for_workspace(cls, workspace_root: str | Path) -> "ChainStore":
        return cls(Path(workspace_root) / CHAINS_SUBDIR)

    def path_for(self, chain_id: str) -> Path:
        return self.directory / f"{chain_id}.json"

    def save(self, chain: RecipeChain) -> Path:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.path_for(chain.id)
        data = chain.model_dump(mode="json", by_alias=True)
        path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        logger.info(f"Saved chain {chain.id} to {path}")
        return path

    def load(self, chain_id: str) -> RecipeChain:
        """
        Loads one chain by id.

        Raises:
            ChainNotFound: If no record exists for ``chain_id``.
            InvalidChainDefinition: If the record is unreadable or malformed.
        """
        path = self.path_for(chain_id)
        if not path.is_file():
            raise ChainNotFound(chain_id)
        return self._read(path)

    def delete(self, chain_id: str) -> None:
        path = self.path_for(chain_id)
        if not path.is_file():
            raise ChainNotFound(chain_id)
        path.unlink()
        logger.info(f"Deleted chain {chain_id}")

    def list_ids(self) -> List[str]:
        if not self.directory.is_dir():
            return []
        return sorted(p.stem for p in self.directory.glob("*.json"))

    def load_all(self) -> List[RecipeChain]:
        """Loads every readable record; bad files are logged and skipped."""
        if not self.directory.is_dir():
            logger.debug(f"No chains directory found: {self.directory}")
            return []

        chains: List[RecipeChain] = []
        for path in sorted(self.directory.glob("*.json")):
            try:
                chains.append(self._read(path))
            except InvalidChainDefinition as e:
                logger.warning(f"Skipping chain file {path.name}: {e}")
        logger.info(f"Loaded {len(chains)} chains from {self.directory}")
        return chains

    def load_into(self, registry: ChainRegistry) -> int:
        chains = self.load_all()
        for chain in chains:
            registry.register(chain)
        return len(chains)

    def _read(self, path: Path) -> RecipeChain:
        try:
            data: Any = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise InvalidChainDefinition(f"Unreadable chain file {path.name}", [str(e)]) from e

        if not isinstance(data, dict):
            raise InvalidChainDefinition(f"Chain file {path.name} is not a JSON object")
        missing = _missing_fields(data)
        if missing:
            raise InvalidChainDefinition(f"Chain file {path.name} is incomplete", [f"missing {f}" for f in missing])

        try:
            chain = RecipeChain.model_validate(data)
        except ValidationError as e:
            raise InvalidChainDefinition(
                f"Malformed chain file {path.name}",
                [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()],
            ) from e

        self.topology.validate(chain.root_node)
        return chain


def _missing_fields(data: Dict[str, Any]) -> List[str]:
    return [names[0] for names in REQUIRED_FIELDS if not any(data.get(n) for n in names)]
