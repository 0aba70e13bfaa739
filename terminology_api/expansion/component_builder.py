from typing import List, Optional
import logging

from terminology_api.classes import (
    CodeSystem,
    Coding,
    Concept,
    ConceptProperty,
    ContainsEntry,
    Designation,
)
from terminology_api.constants import (
    DESIGNATION_USAGE_SYSTEM,
    EXT_CONTAINS_PROPERTY,
    EXTENSION_PROPERTY_CODES,
    PASSTHROUGH_EXTENSIONS,
)
from terminology_api.filters import ConceptFilter
from terminology_api.language import parse_language_preferences
from terminology_api.request import ExpansionContext

logger = logging.getLogger(__name__)

DECIMAL_PROPERTIES = {"order", "weight"}


def extension_to_property(ext: dict) -> Optional[ConceptProperty]:
    """Map order/label/weight extensions onto the property they stand for."""
    code = EXTENSION_PROPERTY_CODES.get(ext.get("url"))
    if code is None:
        return None
    for key, value in ext.items():
        if key.startswith("value"):
            return ConceptProperty(code=code, value=value, value_type=key)
    return None


def find_designation_for_language(designations: List[Designation], language: str) -> Optional[Designation]:
    """Exact language match first, then a regional child (en -> en-US), then the parent (en-US -> en)."""
    if not language:
        return None
    wanted = language.lower()

    for designation in designations:
        if designation.language and designation.language.lower() == wanted:
            return designation

    for designation in designations:
        if designation.language and designation.language.lower().startswith(wanted + "-"):
            return designation

    if "-" in wanted:
        parent = wanted.split("-", 1)[0]
        for designation in designations:
            if designation.language and designation.language.lower() == parent:
                return designation
    return None


def designation_matches(designation: Designation, filters: List[str]) -> bool:
    if not filters:
        return True
    for value in filters:
        if not value:
            continue
        if designation.language:
            if value == designation.language:
                return True
            if "|" in value and value.rsplit("|", 1)[1] == designation.language:
                return True
        if designation.use is not None:
            if value == designation.use.code:
                return True
            if designation.use.system and value == f"{designation.use.system}|{designation.use.code}":
                return True
    return False


def property_extension(code: str, value_type: str, value) -> dict:
    if code in DECIMAL_PROPERTIES and value_type == "valueInteger":
        value_type = "valueDecimal"
    return {
        "url": EXT_CONTAINS_PROPERTY,
        "extension": [
            {"url": "code", "valueCode": code},
            {"url": "value", value_type: value},
        ],
    }


class ConceptComponentBuilder:
    """Turns one resolved concept into an expansion.contains entry."""

    def __init__(self, concept_filter: ConceptFilter):
        self.concept_filter = concept_filter

    def create_expansion_component(self, code_system: CodeSystem, concept: Concept,
                                   context: ExpansionContext) -> ContainsEntry:
        request = context.request
        merged = self.merge_supplements(code_system, concept, context)

        entry = ContainsEntry(system=code_system.url, code=concept.code, version=code_system.version)

        entry.display, designations = self.negotiate_display(merged, code_system, context.display_language)

        if self.concept_filter.is_concept_abstract(merged, code_system):
            entry.abstract = True
        if self.concept_filter.is_concept_inactive(merged):
            entry.inactive = True

        if request.include_designations:
            entry.designations = [d for d in designations if designation_matches(d, request.designations)]

        entry.extensions = [ext for ext in merged.extensions if ext.get("url") in PASSTHROUGH_EXTENSIONS]
        entry.extensions.extend(self.property_extensions(merged, request.properties))
        return entry

    def merge_supplements(self, code_system: CodeSystem, concept: Concept,
                          context: ExpansionContext) -> Concept:
        supplements = context.supplements_for(code_system.url)
        if not supplements:
            return concept

        merged = concept.copy()
        for supplement in supplements:
            extra = supplement.find_concept(concept.code)
            if extra is None:
                continue
            context.record_supplement_used(supplement)
            merged.designations.extend(extra.designations)
            for prop in extra.properties:
                merged.replace_property(prop)
            for ext in extra.extensions:
                merged.replace_extension(ext)
                mapped = extension_to_property(ext)
                if mapped is not None:
                    merged.replace_property(mapped)
        return merged

    def negotiate_display(self, concept: Concept, code_system: CodeSystem, display_language: Optional[str]):
        """
        Pick the display for the requested language.

        Returns:
            (display, designations) where designations may gain the demoted
            original display and lose the promoted one.
        """
        display = concept.display
        designations = list(concept.designations)
        preferences = parse_language_preferences(display_language)
        if not preferences:
            return display, designations

        top = preferences[0]
        if top.is_wildcard or top.language == code_system.language:
            return display, designations

        promoted = None
        for preference in preferences:
            if preference.quality > 0 and not preference.is_wildcard:
                promoted = find_designation_for_language(designations, preference.language)
                if promoted is not None:
                    break

        if promoted is not None:
            designations.remove(promoted)
            self._demote(designations, display, code_system)
            return promoted.value, designations

        hard_fail = any(p.is_wildcard and p.quality == 0 for p in preferences)
        if hard_fail:
            self._demote(designations, display, code_system)
            return None, designations
        return display, designations

    @staticmethod
    def _demote(designations: List[Designation], display: Optional[str], code_system: CodeSystem):
        if display:
            designations.append(Designation(
                value=display,
                language=code_system.language,
                use=Coding(system=DESIGNATION_USAGE_SYSTEM, code="display"),
            ))

    def property_extensions(self, concept: Concept, requested: List[str]) -> List[dict]:
        extensions = []
        for code in requested or []:
            if code == "definition":
                if concept.definition:
                    extensions.append(property_extension(code, "valueString", concept.definition))
                continue
            for prop in concept.get_properties(code):
                if prop.value is not None:
                    extensions.append(property_extension(prop.code, prop.value_type, prop.value))
        return extensions
