from typing import Dict, List, Optional, Set
import logging

from terminology_api.classes import CodeSystem, Concept, ConceptProperty, Designation, extension_value
from terminology_api.constants import (
    DESIGNATION_USAGE_SYSTEM,
    EXT_CS_ALTERNATE,
    EXT_CS_CONCEPT_ORDER,
    EXT_CS_LABEL,
    EXT_ITEM_WEIGHT,
    EXT_LANGUAGE,
    EXT_RENDERING_STYLE,
    EXT_RENDERING_XHTML,
    INACTIVE_STATUS_CODES,
)
from terminology_api.exceptions import ConceptNotFoundError, InvalidRequestError, MissingParameterError
from terminology_api.filters import ConceptFilter
from terminology_api.finder import ResourceFinder

logger = logging.getLogger(__name__)

# Extension url -> property code reported by $lookup, in output order
EXTENSION_LOOKUP_PROPERTIES = [
    (EXT_CS_CONCEPT_ORDER, "conceptOrder"),
    (EXT_ITEM_WEIGHT, "itemWeight"),
    (EXT_RENDERING_STYLE, "renderingStyle"),
    (EXT_RENDERING_XHTML, "renderingXhtml"),
]

HANDLED_PROPERTIES = {"abstract", "definition", "inactive", "child", "parent"}


def _value_part(value_type: str, value) -> Dict:
    return {"name": "value", value_type: value}


def property_parameter(code: str, value_type: str, value, description: Optional[str] = None) -> Dict:
    parts = [{"name": "code", "valueCode": code}]
    if description:
        parts.append({"name": "description", "valueString": description})
    parts.append(_value_part(value_type, value))
    return {"name": "property", "part": parts}


def designation_parameter(designation: Designation) -> Dict:
    parts = []
    if designation.use is not None:
        parts.append({"name": "use", "valueCoding": designation.use.to_dict()})
    if designation.language:
        parts.append({"name": "language", "valueCode": designation.language})
    parts.append({"name": "value", "valueString": designation.value})
    return {"name": "designation", "part": parts}


def requested_property_codes(properties: Optional[List[str]]) -> Set[str]:
    """Empty set means every property; '*' anywhere asks for all of them too."""
    codes = set()
    for value in properties or []:
        if value == "*":
            return set()
        if value:
            codes.add(value)
    return codes


class LookupService:
    """CodeSystem $lookup: metadata, designations and properties of a single code."""

    def __init__(self, resource_finder: ResourceFinder, concept_filter: Optional[ConceptFilter] = None):
        self.resource_finder = resource_finder
        self.concept_filter = concept_filter or ConceptFilter()

    def lookup(self, code: Optional[str] = None, system: Optional[str] = None, version: Optional[str] = None,
               coding: Optional[Dict] = None, properties: Optional[List[str]] = None) -> Dict:
        if not code and not coding:
            raise InvalidRequestError("Either 'code' or 'coding' parameter must be provided")

        if coding:
            code = coding.get("code")
            system = coding.get("system")
            version = coding.get("version") or version

        if not code:
            raise MissingParameterError("Code parameter is required")
        if not system:
            raise MissingParameterError("System parameter is required")

        logger.info(f"Lookup request - Code: {code}, System: {system}, Version: {version}")
        code_system = self.resource_finder.find_code_system(system, version)
        concept = code_system.find_concept(code)
        if concept is None:
            raise ConceptNotFoundError(f"Concept with code '{code}' not found in CodeSystem '{system}'")

        return {"resourceType": "Parameters", "parameter": self.build_parameters(code_system, concept, properties)}

    def build_parameters(self, code_system: CodeSystem, concept: Concept,
                         properties: Optional[List[str]] = None) -> List[Dict]:
        params = []

        abstract = concept.get_property("abstract")
        if abstract is not None and isinstance(abstract.value, bool):
            params.append({"name": "abstract", "valueBoolean": abstract.value})
        elif self.concept_filter.is_concept_abstract(concept, code_system):
            params.append({"name": "abstract", "valueBoolean": True})

        params.append({"name": "code", "valueCode": concept.code})
        params.extend(self.designation_parameters(code_system, concept))

        if concept.display:
            params.append({"name": "display", "valueString": concept.display})
        if code_system.name:
            params.append({"name": "name", "valueString": code_system.name})
        if concept.definition:
            params.append({"name": "definition", "valueString": concept.definition})

        params.extend(self.property_parameters(code_system, concept, requested_property_codes(properties)))

        params.append({"name": "system", "valueUri": code_system.url})
        if code_system.version:
            params.append({"name": "version", "valueString": code_system.version})
        return params

    def designation_parameters(self, code_system: CodeSystem, concept: Concept) -> List[Dict]:
        params = [designation_parameter(d) for d in concept.designations]

        has_display_designation = any(
            d.use is not None and d.use.system == DESIGNATION_USAGE_SYSTEM and d.use.code == "display"
            for d in concept.designations
        )
        if not has_display_designation and concept.display:
            language = extension_value(concept.extensions, EXT_LANGUAGE) or code_system.language or "en"
            params.append({
                "name": "designation",
                "part": [
                    {"name": "language", "valueCode": language},
                    {"name": "use", "valueCoding": {"system": DESIGNATION_USAGE_SYSTEM, "code": "display"}},
                    {"name": "value", "valueString": concept.display},
                ],
            })

        for url, use_code in ((EXT_CS_ALTERNATE, "alternate"), (EXT_CS_LABEL, "label")):
            for ext in concept.extensions:
                if ext.get("url") != url:
                    continue
                value_key = next((k for k in ext if k.startswith("value")), None)
                if value_key is None:
                    continue
                params.append({
                    "name": "designation",
                    "part": [
                        {"name": "use", "valueCoding": {"code": use_code}},
                        {"name": "value", value_key: ext[value_key]},
                    ],
                })
        return params

    def property_parameters(self, code_system: CodeSystem, concept: Concept, requested: Set[str]) -> List[Dict]:
        def wanted(code):
            return not requested or code in requested

        params = []

        if wanted("child"):
            for child in concept.concepts:
                params.append(property_parameter("child", "valueCode", child.code, child.display))

        if wanted("definition"):
            explicit = concept.get_properties("definition")
            if explicit:
                params.extend(property_parameter(p.code, p.value_type, p.value) for p in explicit)
            elif concept.definition:
                params.append(property_parameter("definition", "valueString", concept.definition))

        if wanted("inactive"):
            params.extend(self.inactive_parameters(concept))

        if wanted("parent"):
            params.extend(self.parent_parameters(code_system, concept))

        for prop in concept.properties:
            if prop.code not in HANDLED_PROPERTIES and wanted(prop.code):
                params.append(property_parameter(prop.code, prop.value_type, prop.value))

        for url, code in EXTENSION_LOOKUP_PROPERTIES:
            if not wanted(code):
                continue
            ext = concept.get_extension(url)
            if ext is None:
                continue
            value_key = next((k for k in ext if k.startswith("value")), None)
            if value_key is not None:
                params.append(property_parameter(code, value_key, ext[value_key]))
        return params

    def inactive_parameters(self, concept: Concept) -> List[Dict]:
        explicit = concept.get_properties("inactive")
        if explicit:
            return [property_parameter(p.code, p.value_type, p.value) for p in explicit]

        status = concept.get_property("status")
        if status is not None:
            inactive = (status.primitive_value or "").lower() in INACTIVE_STATUS_CODES
            return [property_parameter("inactive", "valueBoolean", inactive)]
        return [property_parameter("inactive", "valueBoolean", False)]

    def parent_parameters(self, code_system: CodeSystem, concept: Concept) -> List[Dict]:
        explicit: List[ConceptProperty] = concept.get_properties("parent")
        if explicit:
            params = []
            for prop in explicit:
                parent = code_system.find_concept(prop.primitive_value)
                description = parent.display if parent is not None else None
                params.append(property_parameter("parent", prop.value_type, prop.value, description))
            return params

        for candidate in code_system.iter_concepts():
            if any(child.code == concept.code for child in candidate.concepts):
                return [property_parameter("parent", "valueCode", candidate.code, candidate.display)]
        return []
