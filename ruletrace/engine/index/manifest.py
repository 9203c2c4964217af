"""Rule manifest: the merged set of rule definitions of one spec."""

import logging
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from ...models.enums import DuplicateKind
from ..core.document import DuplicateRule, RuleDefinition, RuleLocation
from ..core.markdown import ExtractedSpec
from ..core.rule_id import RuleId, RuleIdMatch, classify_reference

logger = logging.getLogger(__name__)


def _location(definition: RuleDefinition) -> RuleLocation:
    return RuleLocation(
        file=definition.spec_file, line=definition.line, byte_offset=definition.byte_offset
    )


@dataclass(frozen=True)
class Manifest:
    """Rule definitions keyed by id base, unique, in merge order.

    Only one revision of a rule can be defined; references to an older
    revision are classified as stale.
    """

    definitions: Mapping[str, RuleDefinition] = field(default_factory=lambda: MappingProxyType({}))
    duplicates: tuple[DuplicateRule, ...] = ()

    def __len__(self) -> int:
        return len(self.definitions)

    def __iter__(self) -> Iterator[RuleDefinition]:
        return iter(self.definitions.values())

    def __contains__(self, rule_id: object) -> bool:
        return isinstance(rule_id, RuleId) and self.get(rule_id) is not None

    def get(self, rule_id: RuleId) -> RuleDefinition | None:
        """Definition with exactly this id (base and revision)."""
        definition = self.definitions.get(rule_id.base)
        if definition is not None and definition.id == rule_id:
            return definition
        return None

    def get_base(self, base: str) -> RuleDefinition | None:
        return self.definitions.get(base)

    def resolve(self, rule_id: RuleId) -> tuple[RuleIdMatch, RuleDefinition | None]:
        """Classify a reference id against the manifest."""
        definition = self.definitions.get(rule_id.base)
        if definition is None:
            return RuleIdMatch.NO_MATCH, None
        return classify_reference(definition.id, rule_id), definition

    @property
    def ids(self) -> tuple[RuleId, ...]:
        return tuple(definition.id for definition in self.definitions.values())


def merge_specs(extracted: Iterable[ExtractedSpec]) -> Manifest:
    """Merge extracted spec files into one manifest.

    Files are merged in ``(weight, path)`` order; the first definition of an
    id wins and later ones are recorded as cross-file duplicates. Same-file
    duplicates found during extraction are carried over.
    """
    definitions: dict[str, RuleDefinition] = {}
    duplicates: list[DuplicateRule] = []
    cross: dict[str, list[RuleLocation]] = {}

    for spec in sorted(extracted, key=lambda s: s.sort_key):
        duplicates.extend(spec.duplicates)
        for definition in spec.definitions:
            kept = definitions.get(definition.id.base)
            if kept is None:
                definitions[definition.id.base] = definition
                continue
            logger.info(
                f"Rule '{definition.id}' in {definition.spec_file}:{definition.line} "
                f"already defined in {kept.spec_file}:{kept.line}"
            )
            cross.setdefault(definition.id.base, [_location(kept)]).append(_location(definition))

    for base, locations in cross.items():
        duplicates.append(
            DuplicateRule(id=definitions[base].id, kind=DuplicateKind.CROSS_FILE, locations=tuple(locations))
        )

    return Manifest(definitions=MappingProxyType(definitions), duplicates=tuple(duplicates))
