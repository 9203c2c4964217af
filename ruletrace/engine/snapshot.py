"""Immutable published state of the whole index.

A Snapshot is assembled from scratch on every rebuild out of (mostly
cached) per-file results and is never mutated afterwards. Mappings are
exposed through MappingProxyType.
"""

import hashlib
import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from types import MappingProxyType

from ..config import NamingConfig, ProjectConfig
from .core.document import ParseWarning
from .core.markdown import ExtractedSpec
from .core.rule_id import RuleId
from .index.builder import (
    DocumentOutline,
    ForwardIndex,
    ReverseIndex,
    ScannedFile,
    build_forward,
    build_outlines,
    build_reverse,
    summarize,
)
from .index.coverage import CoverageSummary
from .index.manifest import Manifest, merge_specs
from .validation import ValidationReport, validate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SpecView:
    """One spec: its documents and merged manifest."""

    name: str
    source: str
    naming: NamingConfig
    documents: tuple[ExtractedSpec, ...] = ()
    manifest: Manifest = field(default_factory=Manifest)
    impl_names: tuple[str, ...] = ()
    fetch_error: str | None = None

    @property
    def warnings(self) -> tuple[ParseWarning, ...]:
        return tuple(w for doc in self.documents for w in doc.warnings)


@dataclass(frozen=True)
class ImplView:
    """One implementation of a spec, fully indexed and validated."""

    spec: str
    impl: str
    language: str
    forward: ForwardIndex
    reverse: ReverseIndex
    outlines: tuple[DocumentOutline, ...]
    summary: CoverageSummary
    validation: ValidationReport
    files: Mapping[str, ScannedFile] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def key(self) -> str:
        return f"{self.spec}/{self.impl}"


@dataclass(frozen=True)
class Snapshot:
    """One published, internally consistent state of the index.

    Attributes:
        version: Monotonic version, bumped only when the fingerprint changes
        fingerprint: Digest of every input that went into the build
        built_at: When the snapshot was assembled
        project_root: Absolute project root
        config: Project configuration the snapshot was built from
        config_error: Message of the configuration error, if any
        specs: Spec name -> SpecView
        impls: (spec, impl) -> ImplView, in configuration order
    """

    version: int
    fingerprint: str
    built_at: datetime
    project_root: str
    config: ProjectConfig
    config_error: str | None = None
    specs: Mapping[str, SpecView] = field(default_factory=lambda: MappingProxyType({}))
    impls: Mapping[tuple[str, str], ImplView] = field(default_factory=lambda: MappingProxyType({}))

    def spec_view(self, name: str) -> SpecView | None:
        return self.specs.get(name)

    def impl_view(self, spec: str, impl: str) -> ImplView | None:
        return self.impls.get((spec, impl))

    def pairs(self) -> list[tuple[str, str]]:
        return list(self.impls)

    def implemented_set(self) -> frozenset[tuple[str, str, RuleId]]:
        return frozenset(
            (spec, impl, rule_id)
            for (spec, impl), view in self.impls.items()
            for rule_id in view.forward.implemented
        )

    def verified_set(self) -> frozenset[tuple[str, str, RuleId]]:
        return frozenset(
            (spec, impl, rule_id)
            for (spec, impl), view in self.impls.items()
            for rule_id in view.forward.verified
        )


def compute_fingerprint(parts: Iterable[str]) -> str:
    """Order-independent digest of build inputs."""
    digest = hashlib.sha256()
    for part in sorted(parts):
        digest.update(part.encode("utf-8"))
        digest.update(b"\0")
    return digest.hexdigest()


def empty_snapshot(project_root: str, config_error: str | None = None) -> Snapshot:
    return Snapshot(
        version=0,
        fingerprint="",
        built_at=datetime.now(UTC),
        project_root=project_root,
        config=ProjectConfig(),
        config_error=config_error,
    )


def assemble_snapshot(
    *,
    version: int,
    fingerprint: str,
    project_root: str,
    config: ProjectConfig,
    config_error: str | None,
    spec_documents: Mapping[str, Sequence[ExtractedSpec]],
    spec_errors: Mapping[str, str],
    impl_files: Mapping[tuple[str, str], Sequence[ScannedFile]],
) -> Snapshot:
    """Build manifests, indexes and validation reports into a Snapshot.

    Args:
        version: Version to stamp on the snapshot
        fingerprint: Input fingerprint (see compute_fingerprint)
        project_root: Absolute project root
        config: Project configuration
        config_error: Current configuration error message, if any
        spec_documents: Spec name -> extracted documents
        spec_errors: Spec name -> error reading its documents
        impl_files: (spec, impl) -> scanned source files

    Returns:
        The new Snapshot
    """
    specs: dict[str, SpecView] = {}
    impls: dict[tuple[str, str], ImplView] = {}

    for spec_config in config.specs:
        documents = tuple(sorted(spec_documents.get(spec_config.name, ()), key=lambda d: d.sort_key))
        manifest = merge_specs(documents)
        spec_view = SpecView(
            name=spec_config.name,
            source=spec_config.source,
            naming=spec_config.naming,
            documents=documents,
            manifest=manifest,
            impl_names=tuple(impl.name for impl in spec_config.impls),
            fetch_error=spec_errors.get(spec_config.name),
        )
        specs[spec_config.name] = spec_view

        for impl_config in spec_config.impls:
            key = (spec_config.name, impl_config.name)
            files = tuple(sorted(impl_files.get(key, ()), key=lambda f: f.path))
            forward = build_forward(manifest, files)
            reverse = build_reverse(files)
            warnings = spec_view.warnings + tuple(w for f in files for w in f.warnings)
            impls[key] = ImplView(
                spec=spec_config.name,
                impl=impl_config.name,
                language=impl_config.lang,
                forward=forward,
                reverse=reverse,
                outlines=build_outlines(documents, manifest, forward),
                summary=summarize(manifest, forward),
                validation=validate(
                    manifest,
                    forward,
                    reverse,
                    naming=spec_config.naming,
                    warnings=warnings,
                    config_error=config_error or spec_view.fetch_error,
                ),
                files=MappingProxyType({f.path: f for f in files}),
            )

    return Snapshot(
        version=version,
        fingerprint=fingerprint,
        built_at=datetime.now(UTC),
        project_root=project_root,
        config=config,
        config_error=config_error,
        specs=MappingProxyType(specs),
        impls=MappingProxyType(impls),
    )
