from enum import Enum
from typing import List, Optional
import logging
import re

from terminology_api.classes import CodeSystem, Concept, ConceptSetFilter, ValueSet
from terminology_api.constants import (
    ACTIVE_STATUS_CODES,
    EXT_NOT_FOR_UI,
    NOT_SELECTABLE_URI,
)

logger = logging.getLogger(__name__)


class FilterOperator(str, Enum):
    EQUAL = "="
    REGEX = "regex"
    IN = "in"
    NOT_IN = "not-in"
    EXISTS = "exists"
    IS_A = "is-a"
    IS_NOT_A = "is-not-a"
    DESCENDENT_OF = "descendent-of"
    GENERALIZES = "generalizes"

    @classmethod
    def from_code(cls, code: Optional[str]) -> Optional["FilterOperator"]:
        if code is None:
            return None
        if code == "descendant-of":
            return cls.DESCENDENT_OF
        try:
            return cls(code)
        except ValueError:
            return None

    @property
    def is_hierarchical(self) -> bool:
        return self in HIERARCHY_OPERATORS


HIERARCHY_OPERATORS = {
    FilterOperator.IS_A,
    FilterOperator.IS_NOT_A,
    FilterOperator.DESCENDENT_OF,
    FilterOperator.GENERALIZES,
}


def is_hierarchy_filter(concept_filter: ConceptSetFilter, operator: FilterOperator) -> bool:
    """True for a 'concept' filter using the given hierarchy operator."""
    return concept_filter.property == "concept" and FilterOperator.from_code(concept_filter.op) == operator


def _split_values(value: str) -> List[str]:
    return [item.strip() for item in value.split(",")]


def _parse_boolean(value: str) -> bool:
    return value.strip().lower() == "true"


class ConceptFilter:
    """
    Single-concept predicates used while walking a code system:
    compose filters, the text filter, active-only and not-for-UI.
    """

    def should_include_concept(self, value_set: ValueSet, concept: Concept, display: Optional[str],
                               request) -> bool:
        if not self.matches_text_filter(concept, display, request.filter):
            return False

        inactive_excluded = bool(request.active_only) or (
            value_set is not None and value_set.compose is not None and value_set.compose.inactive is False
        )
        if inactive_excluded and self.is_concept_inactive(concept):
            return False

        if request.exclude_not_for_ui and self.is_not_for_ui(concept):
            return False
        return True

    def matches_text_filter(self, concept: Concept, display: Optional[str], text: Optional[str]) -> bool:
        if not text:
            return True
        needle = text.lower()
        if concept.code and needle in concept.code.lower():
            return True
        return bool(display) and needle in display.lower()

    def matches_all_filters(self, concept: Concept, filters: List[ConceptSetFilter],
                            code_system: Optional[CodeSystem] = None) -> bool:
        return all(self.matches_filter(concept, f, code_system) for f in filters or [])

    def matches_filter(self, concept: Concept, concept_filter: ConceptSetFilter,
                       code_system: Optional[CodeSystem] = None) -> bool:
        if concept_filter.op is None or concept_filter.value is None:
            return True

        operator = FilterOperator.from_code(concept_filter.op)
        if operator is None:
            logger.debug(f"Unsupported filter operator '{concept_filter.op}'")
            return False

        # Hierarchy operators pick traversal roots in the collector
        if operator.is_hierarchical:
            return True

        prop = concept_filter.property
        value = concept_filter.value

        if operator == FilterOperator.EXISTS:
            return _parse_boolean(value) == self._has_value(concept, prop)

        candidates = self._values_for(concept, prop)
        if operator == FilterOperator.EQUAL:
            return value in candidates
        if operator == FilterOperator.REGEX:
            pattern = re.compile(value)
            return any(pattern.fullmatch(candidate) for candidate in candidates)
        if operator == FilterOperator.IN:
            allowed = _split_values(value)
            return any(candidate in allowed for candidate in candidates)
        if operator == FilterOperator.NOT_IN:
            allowed = _split_values(value)
            return not any(candidate in allowed for candidate in candidates)
        return False

    def _values_for(self, concept: Concept, prop: Optional[str]) -> List[str]:
        if prop in ("code", "concept"):
            return [concept.code] if concept.code is not None else []
        if prop == "display":
            return [concept.display] if concept.display is not None else []
        return [
            p.primitive_value for p in concept.get_properties(prop)
            if p.primitive_value is not None
        ]

    def _has_value(self, concept: Concept, prop: Optional[str]) -> bool:
        if prop == "code":
            return bool(concept.code)
        if prop == "display":
            return bool(concept.display)
        if prop == "definition":
            return bool(concept.definition)
        return any(p.primitive_value for p in concept.get_properties(prop))

    def is_concept_inactive(self, concept: Concept) -> bool:
        inactive = concept.get_property("inactive")
        if inactive is not None and inactive.value is True:
            return True

        status = concept.get_property("status")
        if status is not None and status.primitive_value is not None:
            return status.primitive_value.lower() not in ACTIVE_STATUS_CODES
        return False

    def is_concept_abstract(self, concept: Concept, code_system: Optional[CodeSystem]) -> bool:
        property_code = "notSelectable"
        if code_system is not None:
            for definition in code_system.properties:
                if definition.uri == NOT_SELECTABLE_URI:
                    property_code = definition.code
                    break

        prop = concept.get_property(property_code)
        return prop is not None and prop.value is True

    def is_not_for_ui(self, concept: Concept) -> bool:
        ext = concept.get_extension(EXT_NOT_FOR_UI)
        return ext is not None and ext.get("valueBoolean") is True
