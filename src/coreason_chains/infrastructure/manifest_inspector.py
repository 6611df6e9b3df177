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
import json
import re
import tomllib
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from loguru import logger

# (coordinate, version); coordinate is "group:artifact" or a bare package name.
Dependency = Tuple[str, Optional[str]]

MANIFEST_FILES = ("pom.xml", "build.gradle", "build.gradle.kts", "package.json", "requirements.txt", "pyproject.toml")

FRAMEWORK_ALIASES: Dict[str, List[str]] = {
    "spring-boot": ["org.springframework.boot"],
    "spring": ["org.springframework"],
    "junit": ["org.junit"],
}

_EXPRESSION = re.compile(
    r'^\s*(?P<name>[A-Za-z0-9_@/:\-]+(?:\.[A-Za-z0-9_\-]+)*?)'
    r'(?:\.(?P<attr>version|present))?'
    r'(?:\s+matches\s+"(?P<pattern>[^"]*)")?\s*$'
)
_GRADLE_DEP = re.compile(r"""['"]([\w.\-]+):([\w.\-]+)(?::([\w.\-]+))?['"]""")
_GRADLE_PLUGIN = re.compile(r"""id\s*\(?\s*['"]([\w.\-]+)['"]\s*\)?\s*version\s*['"]([\w.\-]+)['"]""")
_PEP508 = re.compile(r"^\s*([A-Za-z0-9_.\-]+)(?:\[[^\]]*\])?\s*(?:[=~<>!]=?\s*([\w.*\-]+))?")


def parse_expression(expression: str) -> Tuple[str, Optional[str]]:
    """Splits ``name[.version|.present] [matches "regex"]`` into name and version pattern."""
    match = _EXPRESSION.match(expression)
    if not match:
        return expression.strip(), None
    return match.group("name"), match.group("pattern")


def _strip_ns(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _read_pom(path: Path) -> List[Dependency]:
    root = ET.parse(path).getroot()
    deps: List[Dependency] = []
    for element in root.iter():
        if _strip_ns(element.tag) not in ("dependency", "parent", "plugin"):
            continue
        fields = {_strip_ns(child.tag): (child.text or "").strip() for child in element}
        artifact = fields.get("artifactId")
        if artifact:
            deps.append((f"{fields.get('groupId', '')}:{artifact}", fields.get("version") or None))
    return deps


def _read_gradle(path: Path) -> List[Dependency]:
    text = path.read_text(encoding="utf-8")
    deps: List[Dependency] = [(f"{g}:{a}", v) for g, a, v in _GRADLE_DEP.findall(text)]
    deps.extend((plugin, version) for plugin, version in _GRADLE_PLUGIN.findall(text))
    return [(coord, version or None) for coord, version in deps]


def _read_package_json(path: Path) -> List[Dependency]:
    data = json.loads(path.read_text(encoding="utf-8"))
    deps: List[Dependency] = []
    for section in ("dependencies", "devDependencies", "peerDependencies"):
        for name, version in (data.get(section) or {}).items():
            deps.append((name, str(version).lstrip("^~>=<") or None))
    return deps


def _read_requirements(path: Path) -> List[Dependency]:
    deps: List[Dependency] = []
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.split("#", 1)[0].strip()
        if not line or line.startswith("-"):
            continue
        match = _PEP508.match(line)
        if match:
            deps.append((match.group(1), match.group(2)))
    return deps


def _read_pyproject(path: Path) -> List[Dependency]:
    data = tomllib.loads(path.read_text(encoding="utf-8"))
    deps: List[Dependency] = []
    for spec in data.get("project", {}).get("dependencies", []):
        match = _PEP508.match(spec)
        if match:
            deps.append((match.group(1), match.group(2)))
    poetry = data.get("tool", {}).get("poetry", {}).get("dependencies", {})
    for name, version in poetry.items():
        deps.append((name, version.lstrip("^~>=<") if isinstance(version, str) else None))
    return deps


_READERS = {
    "pom.xml": _read_pom,
    "build.gradle": _read_gradle,
    "build.gradle.kts": _read_gradle,
    "package.json": _read_package_json,
    "requirements.txt": _read_requirements,
    "pyproject.toml": _read_pyproject,
}


def scan_manifests(workspace_root: str | Path) -> Optional[List[Dependency]]:
    """
    Collects declared dependencies from the build manifests at the workspace root.

    Returns:
        The dependencies found, or None when the workspace has no readable manifest.
    """
    root = Path(workspace_root)
    found = False
    deps: List[Dependency] = []
    for name in MANIFEST_FILES:
        path = root / name
        if not path.is_file():
            continue
        try:
            deps.extend(_READERS[name](path))
            found = True
        except (OSError, ValueError, ET.ParseError) as e:
            logger.warning(f"Could not read manifest {path}: {e}")
    return deps if found else None


def _matches(name: str, coordinate: str) -> bool:
    needles = [name.lower(), *(alias.lower() for alias in FRAMEWORK_ALIASES.get(name.lower(), []))]
    return any(needle in coordinate.lower() for needle in needles)


class ManifestInspector:
    """
    Answers framework and dependency conditions from build manifests.

    Returns None (no evidence) when the workspace has no manifest at all.
    """

    async def has_framework(self, expression: str, workspace_root: str) -> Optional[bool]:
        name, _ = parse_expression(expression)
        deps = await asyncio.to_thread(scan_manifests, workspace_root)
        if deps is None:
            return None
        return any(_matches(name, coordinate) for coordinate, _ in deps)

    async def has_dependency(self, expression: str, workspace_root: str) -> Optional[bool]:
        name, pattern = parse_expression(expression)
        deps = await asyncio.to_thread(scan_manifests, workspace_root)
        if deps is None:
            return None

        candidates = [version for coordinate, version in deps if _matches(name, coordinate)]
        if not candidates:
            return False
        if pattern is None:
            return True
        try:
            regex = re.compile(pattern)
        except re.error as e:
            logger.warning(f"Invalid version pattern in dependency condition '{expression}': {e}")
            return None
        return any(version is not None and regex.match(version) for version in candidates)
