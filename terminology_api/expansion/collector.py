from typing import Dict, Iterator, List, Optional, Set, Tuple
import logging
import re

from terminology_api.classes import (
    CodeSystem,
    Concept,
    ConceptSet,
    ConceptSetFilter,
    ContainsEntry,
    ValueSet,
)
from terminology_api.exceptions import CyclicReferenceError, InvalidFilterError, VersionMismatchError
from terminology_api.expansion.component_builder import ConceptComponentBuilder, extension_to_property
from terminology_api.filters import ConceptFilter, FilterOperator, is_hierarchy_filter
from terminology_api.finder import ResourceFinder
from terminology_api.request import (
    VERSION_CHECKED,
    VERSION_FORCED,
    VERSION_FROM_INCLUDE,
    VERSION_FROM_SYSTEM_VERSION,
    ExpansionContext,
)
from terminology_api.versions import versions_match

logger = logging.getLogger(__name__)


def build_parent_map(code_system: CodeSystem) -> Dict[str, Concept]:
    """child code -> parent concept, built in one pass over the tree."""
    parents = {}
    stack = list(code_system.concepts)
    while stack:
        parent = stack.pop()
        for child in parent.concepts:
            parents.setdefault(child.code, parent)
            stack.append(child)
    return parents


def iter_descendants_and_self(concept: Concept) -> Iterator[Concept]:
    stack = [concept]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.concepts))


def _first_filter(filters: List[ConceptSetFilter], operator: FilterOperator) -> Optional[ConceptSetFilter]:
    return next((f for f in filters if is_hierarchy_filter(f, operator)), None)


def _property_filters(filters: List[ConceptSetFilter]) -> List[ConceptSetFilter]:
    property_filters = []
    for concept_filter in filters:
        operator = FilterOperator.from_code(concept_filter.op)
        if operator is None or not operator.is_hierarchical:
            property_filters.append(concept_filter)
    return property_filters


class ConceptCollector:
    """
    Walks a ValueSet's compose: includes in order, then excludes,
    recursing into nested ValueSets with a cycle guard.
    """

    def __init__(self, resource_finder: ResourceFinder, concept_filter: ConceptFilter,
                 component_builder: Optional[ConceptComponentBuilder] = None):
        self.resource_finder = resource_finder
        self.concept_filter = concept_filter
        self.component_builder = component_builder or ConceptComponentBuilder(concept_filter)

    def collect_all_concepts(self, value_set: ValueSet, context: ExpansionContext) -> List[ContainsEntry]:
        if value_set.compose is None:
            return []

        chain: Set[str] = set()
        entries = self._collect(value_set, context, chain)

        unique = []
        seen = set()
        for entry in entries:
            key = (entry.system, entry.version, entry.code)
            if key not in seen:
                seen.add(key)
                unique.append(entry)
        return unique

    def _collect(self, value_set: ValueSet, context: ExpansionContext, chain: Set[str]) -> List[ContainsEntry]:
        key = value_set.canonical_key
        if key in chain:
            raise CyclicReferenceError(
                f"Cyclic ValueSet inclusion detected: {key} is already in the expansion chain."
            )

        chain.add(key)
        try:
            included: List[ContainsEntry] = []
            if value_set.compose is not None:
                self.process_includes(value_set, context, included, chain)
                self.process_excludes(value_set, context, included, chain)
            return included
        finally:
            chain.discard(key)

    # --- includes ---

    def process_includes(self, value_set: ValueSet, context: ExpansionContext,
                         included: List[ContainsEntry], chain: Set[str]):
        for index, include in enumerate(value_set.compose.include):
            self.validate_filters(value_set, include, index, "include")

            if include.system:
                self.process_system_include(value_set, include, context, included)

            if include.value_sets:
                self.process_value_set_include(include, context, included, chain)

    def validate_filters(self, value_set: ValueSet, concept_set: ConceptSet, set_index: int, section: str):
        """Every filter needs a value, and regex values must compile."""
        for filter_index, concept_filter in enumerate(concept_set.filters):
            location = [
                f"ValueSet[{value_set.url}|{value_set.version}].compose.{section}[{set_index}]"
                f".filter[{filter_index}].value"
            ]
            if concept_filter.value is None or not str(concept_filter.value).strip():
                raise InvalidFilterError(
                    f"The system {concept_set.system} filter with property = {concept_filter.property}, "
                    f"op = {concept_filter.op} has no value",
                    location=location,
                )
            if FilterOperator.from_code(concept_filter.op) == FilterOperator.REGEX:
                try:
                    re.compile(concept_filter.value)
                except re.error as e:
                    raise InvalidFilterError(
                        f"The system {concept_set.system} filter with property = {concept_filter.property} "
                        f"has an invalid regex '{concept_filter.value}': {e}",
                        location=location,
                    ) from e

    def determine_system_version(self, system: str, include_version: Optional[str],
                                 context: ExpansionContext) -> Tuple[Optional[str], Optional[str], Optional[str]]:
        """
        Effective version for a system include.

        Returns:
            (version, source, requested) where source names the parameter
            that decided the version and requested is its raw value
        """
        forced = context.force_versions.get(system)
        if forced:
            return forced, VERSION_FORCED, f"{system}|{forced}"

        checked = context.check_versions.get(system)
        if checked:
            if include_version and not versions_match(checked, include_version):
                raise VersionMismatchError(
                    f"ValueSet specifies version '{include_version}' for system '{system}', "
                    f"but check-system-version requires version '{checked}'"
                )
            return include_version or checked, VERSION_CHECKED, f"{system}|{checked}"

        if include_version and include_version.strip():
            return include_version, VERSION_FROM_INCLUDE, include_version

        default = context.system_versions.get(system)
        if default:
            return default, VERSION_FROM_SYSTEM_VERSION, f"{system}|{default}"
        return None, None, None

    def process_system_include(self, value_set: ValueSet, include: ConceptSet, context: ExpansionContext,
                               included: List[ContainsEntry]):
        system = include.system
        version, source, requested = self.determine_system_version(system, include.version, context)

        if context.is_system_excluded(system, version):
            logger.debug(f"Skipping include of excluded system {system}")
            return

        code_system = self.resource_finder.find_code_system(system, version, context)
        logger.debug(f"Including {code_system.canonical} (version from {source or 'latest'})")

        self.load_supplements(code_system, context)
        self.add_system_parameters(code_system, source, requested, context)

        if include.concepts:
            self.process_explicit_concepts(value_set, code_system, include, context, included)
        else:
            self.process_filtered_concepts(value_set, code_system, include, context, included)

    def load_supplements(self, code_system: CodeSystem, context: ExpansionContext):
        if not context.has_discovered_supplements(code_system.url):
            context.cache_supplements(
                code_system.url,
                self.resource_finder.find_supplements(code_system.url, context),
            )

    def add_system_parameters(self, code_system: CodeSystem, source: Optional[str], requested: Optional[str],
                              context: ExpansionContext):
        canonical = code_system.canonical
        context.record_used_version(code_system.url, code_system.version, source, requested)
        context.add_parameter("used-codesystem", "valueUri", canonical)

        if code_system.status == "draft":
            context.add_parameter("warning-draft", "valueUri", canonical)
        if code_system.experimental:
            context.add_parameter("warning-experimental", "valueUri", canonical)
        standards_status = code_system.standards_status
        if standards_status == "deprecated":
            context.add_parameter("warning-deprecated", "valueUri", canonical)
        elif standards_status == "withdrawn":
            context.add_parameter("warning-withdrawn", "valueUri", canonical)

    def process_explicit_concepts(self, value_set: ValueSet, code_system: CodeSystem, include: ConceptSet,
                                  context: ExpansionContext, included: List[ContainsEntry]):
        for reference in include.concepts:
            base = code_system.find_concept(reference.code)
            if base is None:
                logger.debug(f"Code {reference.code} not found in {code_system.canonical}, skipping")
                continue

            concept = base.copy()
            concept.designations.extend(reference.designations)
            for ext in reference.extensions:
                concept.replace_extension(ext)
                mapped = extension_to_property(ext)
                if mapped is not None:
                    concept.replace_property(mapped)

            display = reference.display or concept.display
            if (self.concept_filter.matches_all_filters(concept, include.filters, code_system)
                    and self.concept_filter.should_include_concept(value_set, concept, display, context.request)):
                included.append(self.component_builder.create_expansion_component(code_system, concept, context))

    def process_filtered_concepts(self, value_set: ValueSet, code_system: CodeSystem, include: ConceptSet,
                                  context: ExpansionContext, included: List[ContainsEntry]):
        filters = include.filters
        property_filters = _property_filters(filters)

        generalizes = _first_filter(filters, FilterOperator.GENERALIZES)
        if generalizes is not None:
            for ancestor in self.iter_ancestors_and_self(code_system, generalizes.value):
                if self.concept_filter.matches_all_filters(ancestor, property_filters, code_system):
                    included.append(self.component_builder.create_expansion_component(code_system, ancestor, context))
            return

        for concept in self.select_roots(code_system, filters):
            self._walk(value_set, code_system, concept, property_filters, context, included)

    def _walk(self, value_set: ValueSet, code_system: CodeSystem, concept: Concept,
              property_filters: List[ConceptSetFilter], context: ExpansionContext, included: List[ContainsEntry]):
        # Hierarchical output is never built; children are flattened after their parent
        if (self.concept_filter.matches_all_filters(concept, property_filters, code_system)
                and self.concept_filter.should_include_concept(value_set, concept, concept.display, context.request)):
            included.append(self.component_builder.create_expansion_component(code_system, concept, context))

        for child in concept.concepts:
            self._walk(value_set, code_system, child, property_filters, context, included)

    def select_roots(self, code_system: CodeSystem, filters: List[ConceptSetFilter]) -> List[Concept]:
        """Traversal roots: the is-a concept, the children of the descendent-of concept, or the whole tree."""
        is_a = _first_filter(filters, FilterOperator.IS_A)
        if is_a is not None:
            concept = code_system.find_concept(is_a.value)
            return [concept] if concept is not None else []

        descendent_of = _first_filter(filters, FilterOperator.DESCENDENT_OF)
        if descendent_of is not None:
            concept = code_system.find_concept(descendent_of.value)
            return list(concept.concepts) if concept is not None else []

        return list(code_system.concepts)

    def iter_ancestors_and_self(self, code_system: CodeSystem, code: str) -> Iterator[Concept]:
        parents = build_parent_map(code_system)
        current = code_system.find_concept(code)
        visited = set()
        while current is not None and current.code not in visited:
            visited.add(current.code)
            yield current
            current = parents.get(current.code)

    def process_value_set_include(self, include: ConceptSet, context: ExpansionContext,
                                  included: List[ContainsEntry], chain: Set[str]):
        for canonical in include.value_sets:
            nested = self.resource_finder.find_value_set_by_canonical(canonical, context)
            logger.debug(f"Including nested ValueSet {nested.canonical}")

            context.add_parameter("used-valueset", "valueUri", nested.canonical)
            if nested.standards_status == "withdrawn":
                context.add_parameter("warning-withdrawn", "valueUri", nested.canonical)

            included.extend(self._collect(nested, context, chain))

    # --- excludes ---

    def process_excludes(self, value_set: ValueSet, context: ExpansionContext,
                         included: List[ContainsEntry], chain: Set[str]):
        if not value_set.compose.exclude:
            return

        codes_to_exclude: Set[str] = set()
        for index, exclude in enumerate(value_set.compose.exclude):
            self.validate_filters(value_set, exclude, index, "exclude")

            if exclude.system and not context.is_system_excluded(exclude.system, exclude.version):
                code_system = self.resource_finder.find_code_system(exclude.system, exclude.version, context)
                codes_to_exclude.update(self.collect_excluded_codes(code_system, exclude))

            for canonical in exclude.value_sets:
                excluded_vs = self.resource_finder.find_value_set_by_canonical(canonical, context)
                for entry in self._collect(excluded_vs, context, chain):
                    codes_to_exclude.add(entry.key)

        if codes_to_exclude:
            included[:] = [entry for entry in included if entry.key not in codes_to_exclude]

    def collect_excluded_codes(self, code_system: CodeSystem, exclude: ConceptSet) -> Set[str]:
        system = code_system.url
        codes = set()

        is_not_a = _first_filter(exclude.filters, FilterOperator.IS_NOT_A)
        if is_not_a is not None:
            concept = code_system.find_concept(is_not_a.value)
            if concept is not None:
                codes.update(f"{system}|{c.code}" for c in iter_descendants_and_self(concept))

        other_filters = [
            f for f in exclude.filters
            if FilterOperator.from_code(f.op) != FilterOperator.IS_NOT_A
        ]
        if other_filters:
            property_filters = _property_filters(other_filters)
            generalizes = _first_filter(other_filters, FilterOperator.GENERALIZES)
            if generalizes is not None:
                candidates = self.iter_ancestors_and_self(code_system, generalizes.value)
            else:
                candidates = (
                    c for root in self.select_roots(code_system, other_filters)
                    for c in iter_descendants_and_self(root)
                )
            for concept in candidates:
                if self.concept_filter.matches_all_filters(concept, property_filters, code_system):
                    codes.add(f"{system}|{concept.code}")

        for reference in exclude.concepts:
            if reference.code:
                codes.add(f"{system}|{reference.code}")

        if not exclude.filters and not exclude.concepts:
            codes.update(f"{system}|{c.code}" for c in code_system.iter_concepts())
        return codes
