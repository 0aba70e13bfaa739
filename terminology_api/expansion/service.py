from typing import Dict, Optional
import logging

from terminology_api.classes import ValueSet, split_canonical
from terminology_api.constants import EXT_VALUESET_SUPPLEMENT
from terminology_api.exceptions import InvalidRequestError
from terminology_api.expansion.assembler import ExpansionAssembler, compose_display_language
from terminology_api.expansion.collector import ConceptCollector
from terminology_api.expansion.component_builder import ConceptComponentBuilder
from terminology_api.filters import ConceptFilter
from terminology_api.finder import ResourceFinder
from terminology_api.request import ExpansionContext, ExpansionRequest
from terminology_api.store import ResourceStore
from terminology_api.versions import select_version

logger = logging.getLogger(__name__)

METADATA_FIELDS = [
    "language", "url", "identifier", "version", "name", "title",
    "status", "experimental", "date", "immutable",
]

DEFINITION_FIELDS = [
    "publisher", "contact", "description", "useContext", "jurisdiction",
    "purpose", "copyright", "compose", "extension",
]


class ValueSetExpansionService:
    """
    Entry point for ValueSet $expand.

    Resolves the source ValueSet, collects its concepts and wraps them in
    an expansion. Collaborators default to the standard implementations
    built on the given store.
    """

    def __init__(self, store: ResourceStore, resource_finder: Optional[ResourceFinder] = None,
                 concept_filter: Optional[ConceptFilter] = None):
        self.resource_finder = resource_finder or ResourceFinder(store)
        self.concept_filter = concept_filter or ConceptFilter()
        self.component_builder = ConceptComponentBuilder(self.concept_filter)
        self.collector = ConceptCollector(self.resource_finder, self.concept_filter, self.component_builder)
        self.assembler = ExpansionAssembler(self.resource_finder)

    def expand(self, request: ExpansionRequest) -> Dict:
        if request.offset is not None and request.offset < 0:
            raise InvalidRequestError("Offset must be >= 0")

        context = ExpansionContext(request)
        source = self.retrieve_value_set(request, context)
        logger.info(f"Expanding {source.canonical or 'inline ValueSet'}")

        if source.standards_status == "withdrawn":
            context.add_parameter("warning-withdrawn", "valueUri", source.canonical)

        self.register_explicit_supplements(source, context)
        context.use_fallback_display_language(compose_display_language(source) or source.language)

        entries = self.collector.collect_all_concepts(source, context)
        expansion = self.assembler.build_expansion(source, entries, context)

        result = {"resourceType": "ValueSet"}
        fields = METADATA_FIELDS + (DEFINITION_FIELDS if request.include_definition else [])
        for key in fields:
            if key in source.resource:
                result[key] = source.resource[key]
        result["expansion"] = expansion
        return result

    def retrieve_value_set(self, request: ExpansionRequest, context: ExpansionContext) -> ValueSet:
        """
        Source ValueSet, in order of preference: a tx-resource matching the
        url, an inline valueSet parameter, the resource id, the url.
        """
        url, version = split_canonical(request.url)
        version = request.value_set_version or version

        if url:
            local = select_version([vs for vs in context.tx_value_sets if vs.url == url], version)
            if local is not None:
                return local

        if request.value_set:
            return ValueSet.from_dict(request.value_set)

        if request.id:
            return self.resource_finder.get_value_set(request.id)

        if url:
            return self.resource_finder.find_value_set(url, version, context)

        raise InvalidRequestError(
            "Either a resource ID or the 'url' parameter must be provided for the $expand operation."
        )

    def register_explicit_supplements(self, source: ValueSet, context: ExpansionContext):
        for ext in source.extensions:
            if ext.get("url") != EXT_VALUESET_SUPPLEMENT:
                continue
            canonical = ext.get("valueCanonical") or ext.get("valueUri")
            if not canonical:
                continue

            url, version = split_canonical(canonical)
            supplement = self.resource_finder.find_code_system(url, version, context)
            context.register_explicit_supplement(supplement)
            context.add_parameter("used-supplement", "valueUri", supplement.canonical)
            context.add_parameter("version", "valueUri", supplement.canonical)
