"""
Build conventions — one shared configuration bundle for every
selected module.

This is declarative replication: the same compiler settings,
dependency sets, and test environment land on each module. The
executor reads the test environment when it launches test steps, and
downstream analysis reads the unified coverage path from here.
"""

from __future__ import annotations

import logging
import shlex
from collections.abc import Mapping
from pathlib import Path

from pydantic import BaseModel, Field

from buildplane.core.config.properties import (
    PROJECT_GROUP_ID,
    PROJECT_VERSION,
    PropertyStore,
)
from buildplane.core.models.module import Module
from buildplane.core.services.coverage import UNIFIED_REPORT_PATH

logger = logging.getLogger(__name__)

# System properties with this prefix reach the test JVM with it stripped
FORWARDED_PROPERTY_PREFIX = "cas.test."

# ── Dependency sets ─────────────────────────────────────────────

_IMPLEMENTATION = [
    # reactive web stack
    "io.vertx:vertx-rx-java3",
    "io.vertx:vertx-web-client",
    "io.vertx:vertx-web-validation",
    "io.vertx:vertx-kafka-client",
    "io.vertx:vertx-opentelemetry",
    # metrics
    "io.micrometer:micrometer-registry-prometheus",
    # structured logging
    "org.apache.logging.log4j:log4j-api",
    "org.apache.logging.log4j:log4j-core",
    "org.apache.logging.log4j:log4j-slf4j2-impl",
    "org.apache.logging.log4j:log4j-layout-template-json",
    # columnar database client
    "com.datastax.oss:java-driver-core",
    "com.datastax.oss:java-driver-query-builder",
    "com.datastax.oss:java-driver-mapper-runtime",
    "com.datastax.oss:java-driver-metrics-micrometer",
    # message broker
    "org.apache.kafka:kafka-clients",
    # utilities
    "com.opencsv:opencsv",
    "org.apache.commons:commons-lang3",
    "org.apache.commons:commons-collections4",
    "com.github.ben-manes.caffeine:caffeine",
    # tracing
    "io.opentelemetry:opentelemetry-api",
    "io.opentelemetry:opentelemetry-exporter-otlp",
    "io.opentelemetry:opentelemetry-sdk-extension-autoconfigure",
]

# Order matters: lombok must run before the mapper processor
_ANNOTATION_PROCESSORS = [
    "org.projectlombok:lombok",
    "com.datastax.oss:java-driver-mapper-processor",
]

_TEST_IMPLEMENTATION = [
    "org.junit.jupiter:junit-jupiter",
    "io.vertx:vertx-junit5",
    "io.vertx:vertx-junit5-rx-java3",
    "io.rest-assured:rest-assured",
    "org.assertj:assertj-core",
    "org.mockito:mockito-core",
    "org.mockito:mockito-inline",
    "org.awaitility:awaitility",
]


class JvmTestSettings(BaseModel):
    """How every module's test process is launched."""

    timeout_seconds: int = 1800
    jvm_args: list[str] = Field(default_factory=lambda: ["-Xmx1024M"])
    system_properties: dict[str, str] = Field(default_factory=lambda: {
        "file.encoding": "UTF-8",
        "datastax-java-driver.basic.request.timeout": "15 seconds",
    })
    environment: dict[str, str] = Field(default_factory=lambda: {
        "TESTCONTAINERS_IMAGES_REGISTRY_OVERRIDE": "docker-na-public.artifactory.swg-devops.com",
        "TESTCONTAINERS_IMAGES_REPO_PREFIX": "wce-cicd-docker-io-docker-remote",
        "TESTCONTAINERS_IMAGE_SUBSTITUTOR": "com.ibm.sterling.fulfilment.cas.CommonImageNameSubstitutor",
    })


class ConventionBundle(BaseModel):
    """The shared configuration applied to every selected module."""

    encoding: str = "UTF-8"
    dependencies: dict[str, list[str]] = Field(default_factory=lambda: {
        "implementation": list(_IMPLEMENTATION),
        "annotationProcessor": list(_ANNOTATION_PROCESSORS),
        "testImplementation": list(_TEST_IMPLEMENTATION),
    })
    test: JvmTestSettings = Field(default_factory=JvmTestSettings)
    coverage_report_enabled: bool = False


DEFAULT_BUNDLE = ConventionBundle()


class ModuleConventions(BaseModel):
    """The bundle as applied to one module."""

    module: str
    group: str
    version: str
    encoding: str
    dependencies: dict[str, list[str]]
    test_timeout_seconds: int
    test_jvm_args: list[str]
    test_system_properties: dict[str, str]
    test_environment: dict[str, str]
    coverage_report_enabled: bool
    analysis_properties: dict[str, str]

    def process_environment(self) -> dict[str, str]:
        """Environment for this module's test process.

        JVM args and system properties travel in JAVA_TOOL_OPTIONS.
        """
        opts = list(self.test_jvm_args)
        opts += [
            f"-D{key}={value}" for key, value in sorted(self.test_system_properties.items())
        ]
        env = dict(self.test_environment)
        env["JAVA_TOOL_OPTIONS"] = " ".join(shlex.quote(o) for o in opts)
        return env


def forwarded_properties(
    system_properties: Mapping[str, str],
    prefix: str = FORWARDED_PROPERTY_PREFIX,
) -> dict[str, str]:
    """Pick prefixed properties and strip the prefix.

    ``cas.test.db.host=x`` becomes ``db.host=x``. A bare prefix with
    nothing after it is ignored.
    """
    result: dict[str, str] = {}
    for key, value in system_properties.items():
        if key.startswith(prefix) and len(key) > len(prefix):
            result[key[len(prefix):]] = str(value)
    return result


def apply_conventions(
    modules: list[Module],
    properties: PropertyStore,
    system_properties: Mapping[str, str] | None = None,
    bundle: ConventionBundle = DEFAULT_BUNDLE,
    project_root: Path | None = None,
) -> dict[str, ModuleConventions]:
    """Apply the bundle to every selected module.

    Args:
        modules: The selected set.
        properties: Source of PROJECT_GROUP_ID / PROJECT_VERSION.
        system_properties: Externally supplied -D properties.
        bundle: The shared configuration.
        project_root: Makes the unified report path absolute when given.

    Returns:
        Mapping of module name to its applied conventions.

    Raises:
        MissingConfigurationError: If group id or version is not supplied.
    """
    group = properties.require(PROJECT_GROUP_ID)
    version = properties.require(PROJECT_VERSION)

    forwarded = forwarded_properties(system_properties or {})
    if forwarded:
        logger.info("Forwarding %d test system properties", len(forwarded))

    # Fixed properties are set after forwarded ones and win on conflict
    test_props = {**forwarded, **bundle.test.system_properties}

    report_path = str(project_root / UNIFIED_REPORT_PATH) if project_root else UNIFIED_REPORT_PATH

    applied: dict[str, ModuleConventions] = {}
    for module in modules:
        applied[module.name] = ModuleConventions(
            module=module.name,
            group=group,
            version=version,
            encoding=bundle.encoding,
            dependencies={k: list(v) for k, v in bundle.dependencies.items()},
            test_timeout_seconds=bundle.test.timeout_seconds,
            test_jvm_args=list(bundle.test.jvm_args),
            test_system_properties=dict(test_props),
            test_environment=dict(bundle.test.environment),
            coverage_report_enabled=bundle.coverage_report_enabled,
            analysis_properties={
                "sonar.coverage.jacoco.xmlReportPaths": report_path,
            },
        )
        logger.debug("Applied conventions to %s (%s:%s)", module.name, group, version)

    return applied
