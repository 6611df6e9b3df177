# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_chains

from typing import Any, Dict, List

from coreason_chains.core.models import RecipeChain
from coreason_chains.core.registry import ChainRegistry
from coreason_chains.engine.topology import TopologyEngine
from coreason_chains.utils.logger import logger

JAVA_MODERNIZATION: Dict[str, Any] = {
    "id": "java-modernization-full",
    "name": "Complete Java Modernization",
    "description": "Comprehensive Java modernization from legacy versions to modern practices",
    "rootNode": {
        "id": "root",
        "name": "Java Modernization Pipeline",
        "kind": "sequence",
        "children": [
            {
                "id": "version-check",
                "name": "Check Java Version",
                "kind": "condition",
                "condition": {"kind": "language", "expression": "java.version < 11"},
            },
            {
                "id": "dependency-phase",
                "name": "Dependency Modernization",
                "kind": "parallel",
                "children": [
                    {
                        "id": "update-deps",
                        "name": "Update Dependencies",
                        "kind": "leaf",
                        "recipeRef": "org.openrewrite.java.dependencies.UpgradeDependencyVersion",
                    },
                    {
                        "id": "security-fixes",
                        "name": "Fix Security Vulnerabilities",
                        "kind": "leaf",
                        "recipeRef": "org.openrewrite.java.security.SecureRandom",
                    },
                ],
            },
            {
                "id": "code-modernization",
                "name": "Code Pattern Modernization",
                "kind": "sequence",
                "children": [
                    {
                        "id": "java8-patterns",
                        "name": "Java 8 Patterns",
                        "kind": "leaf",
                        "recipeRef": "org.openrewrite.java.migrate.Java8toJava11",
                    },
                    {
                        "id": "string-builder",
                        "name": "StringBuilder Optimization",
                        "kind": "leaf",
                        "recipeRef": "com.example.StringBuilderOptimization",
                    },
                ],
            },
        ],
    },
    "variables": {
        "targetJavaVersion": {
            "name": "Target Java Version",
            "type": "string",
            "description": "Target Java version for modernization",
            "defaultValue": "17",
            "required": True,
            "validation": {"allowedValues": ["11", "17", "21"]},
        }
    },
    "preconditions": [{"kind": "language", "expression": "java"}],
    "postconditions": [{"kind": "custom", "expression": "compilation.successful && tests.passing"}],
    "metadata": {
        "category": "modernization",
        "requiredPermissions": ["file.write", "dependency.modify"],
        "supportedLanguages": ["java"],
        "supportedFrameworks": ["spring", "junit"],
    },
}

SPRING_BOOT_MIGRATION: Dict[str, Any] = {
    "id": "spring-boot-2-to-3-migration",
    "name": "Spring Boot 2 to 3 Migration",
    "description": "Complete migration from Spring Boot 2.x to 3.x",
    "rootNode": {
        "id": "root",
        "name": "Spring Boot Migration Pipeline",
        "kind": "sequence",
        "children": [
            {
                "id": "pre-migration-checks",
                "name": "Pre-migration Validation",
                "kind": "group",
                "children": [
                    {
                        "id": "check-spring-version",
                        "name": "Check Spring Boot Version",
                        "kind": "condition",
                        "condition": {"kind": "dependency", "expression": 'spring-boot.version matches "2\\.*"'},
                    },
                    {
                        "id": "check-java-17",
                        "name": "Ensure Java 17+",
                        "kind": "condition",
                        "condition": {"kind": "language", "expression": "java.version >= 17"},
                    },
                ],
            },
            {
                "id": "core-migration",
                "name": "Core Spring Boot Migration",
                "kind": "leaf",
                "recipeRef": "org.openrewrite.java.spring.boot3.UpgradeSpringBoot_3_0",
            },
            {
                "id": "jakarta-migration",
                "name": "Jakarta EE Migration",
                "kind": "leaf",
                "recipeRef": "org.openrewrite.java.migrate.javax.JavaxMigrationToJakarta",
            },
            {
                "id": "security-migration",
                "name": "Spring Security 6 Migration",
                "kind": "condition",
                "condition": {"kind": "dependency", "expression": "spring-security.present"},
                "children": [
                    {
                        "id": "security-config-update",
                        "name": "Update Security Configuration",
                        "kind": "leaf",
                        "recipeRef": "org.openrewrite.java.spring.security6.UpgradeSpringSecurity_6_0",
                    }
                ],
            },
            {
                "id": "post-migration-cleanup",
                "name": "Post-migration Cleanup",
                "kind": "parallel",
                "children": [
                    {
                        "id": "update-tests",
                        "name": "Update Test Configuration",
                        "kind": "leaf",
                        "recipeRef": "org.openrewrite.java.spring.boot3.UpdateTestSlices",
                    },
                    {
                        "id": "cleanup-deprecated",
                        "name": "Remove Deprecated APIs",
                        "kind": "leaf",
                        "recipeRef": "org.openrewrite.java.spring.boot3.RemoveDeprecatedApis",
                    },
                ],
            },
        ],
    },
    "preconditions": [{"kind": "framework", "expression": "spring-boot"}],
    "postconditions": [{"kind": "dependency", "expression": 'spring-boot.version matches "3\\.*"'}],
    "metadata": {
        "category": "migration",
        "requiredPermissions": ["file.write", "dependency.modify", "test.run"],
        "supportedLanguages": ["java"],
        "supportedFrameworks": ["spring-boot"],
    },
}

BUILTIN_DEFINITIONS: List[Dict[str, Any]] = [JAVA_MODERNIZATION, SPRING_BOOT_MIGRATION]


def builtin_chains(topology: TopologyEngine | None = None) -> List[RecipeChain]:
    """Fresh copies of the shipped chains, with complexity and duration derived from their trees."""
    topology = topology or TopologyEngine()
    chains = []
    for definition in BUILTIN_DEFINITIONS:
        chain = RecipeChain.model_validate(definition)
        graph = topology.build_graph(chain.root_node)  # type: ignore[arg-type]
        chain.metadata.complexity = topology.classify(graph)
        chain.metadata.estimated_duration_ms = topology.estimate_duration(graph)
        chains.append(chain)
    return chains


def register_builtin_chains(registry: ChainRegistry) -> List[RecipeChain]:
    chains = builtin_chains()
    for chain in chains:
        registry.register(chain)
    logger.info(f"Initialized {len(chains)} built-in recipe chains")
    return chains
