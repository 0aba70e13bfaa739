from datetime import datetime, timezone
from typing import Dict, List, Optional
import logging
import uuid

from terminology_api.classes import ContainsEntry, ValueSet, split_canonical
from terminology_api.constants import (
    EXT_CONTAINS_PROPERTY,
    EXT_EXPANSION_PARAMETER,
    EXT_EXPANSION_PROPERTY,
    WELL_KNOWN_PROPERTY_URIS,
)
from terminology_api.exceptions import InvalidRequestError, NotFoundError
from terminology_api.finder import ResourceFinder
from terminology_api.request import VERSION_FROM_SYSTEM_VERSION, ExpansionContext

logger = logging.getLogger(__name__)

ECHO_ORDER = [
    "excludeNested",
    "includeDesignations",
    "includeDefinition",
    "activeOnly",
    "displayLanguage",
    "exclude-system",
    "system-version",
    "check-system-version",
    "force-system-version",
    "count",
    "offset",
    "property",
    "designation",
    "filter",
    "date",
    "url",
]

GENERATED_ORDER = [
    "used-codesystem",
    "used-supplement",
    "version",
    "warning-draft",
    "warning-experimental",
    "warning-withdrawn",
]

PARAMETER_RANK = {name: rank for rank, name in enumerate(ECHO_ORDER + GENERATED_ORDER)}


def sort_parameters(parameters: List[Dict]) -> List[Dict]:
    """Echoed parameters, then generated ones, then anything else; stable within a rank."""
    unranked = len(PARAMETER_RANK)
    return sorted(parameters, key=lambda param: PARAMETER_RANK.get(param.get("name"), unranked))


def compose_display_language(value_set: ValueSet) -> Optional[str]:
    """displayLanguage carried as a valueset-expansion-parameter extension on compose."""
    if value_set.compose is None:
        return None
    for ext in value_set.compose.extensions:
        if ext.get("url") != EXT_EXPANSION_PARAMETER:
            continue
        name = None
        value = None
        for sub in ext.get("extension", []):
            if sub.get("url") == "name":
                name = next((v for k, v in sub.items() if k.startswith("value")), None)
            elif sub.get("url") == "value":
                value = next((v for k, v in sub.items() if k.startswith("value")), None)
        if name == "displayLanguage" and value:
            return value
    return None


def page(entries: List, offset: Optional[int], count: Optional[int]) -> List:
    offset = offset or 0
    if offset < 0:
        raise InvalidRequestError("Offset must be >= 0")
    if offset >= len(entries):
        return []
    if count is None or count <= 0:
        return entries[offset:]
    return entries[offset:offset + count]


def _observed_property_codes(entries: List[ContainsEntry]) -> List[str]:
    codes = []
    stack = list(reversed(entries))
    while stack:
        entry = stack.pop()
        for ext in entry.extensions:
            if ext.get("url") != EXT_CONTAINS_PROPERTY:
                continue
            for sub in ext.get("extension", []):
                if sub.get("url") == "code" and sub.get("valueCode") not in codes:
                    codes.append(sub.get("valueCode"))
        stack.extend(reversed(entry.contains))
    return codes


def _systems_by_property(entries: List[ContainsEntry]) -> Dict[str, str]:
    """First system each property code was seen on."""
    systems = {}
    stack = list(reversed(entries))
    while stack:
        entry = stack.pop()
        for ext in entry.extensions:
            if ext.get("url") != EXT_CONTAINS_PROPERTY:
                continue
            for sub in ext.get("extension", []):
                if sub.get("url") == "code":
                    systems.setdefault(sub.get("valueCode"), entry.system)
        stack.extend(reversed(entry.contains))
    return systems


def property_declaration(code: str, uri: str) -> Dict:
    return {
        "url": EXT_EXPANSION_PROPERTY,
        "extension": [
            {"url": "code", "valueCode": code},
            {"url": "uri", "valueUri": uri},
        ],
    }


class ExpansionAssembler:
    """
    Wraps collected entries into the expansion element: parameters,
    property declarations, paging and totals.
    """

    def __init__(self, resource_finder: ResourceFinder):
        self.resource_finder = resource_finder

    def build_expansion(self, source: ValueSet, entries: List[ContainsEntry], context: ExpansionContext) -> Dict:
        request = context.request
        paged = page(entries, request.offset, request.count)
        self.strip_single_versions(entries, context)

        expansion = {
            "extension": self.property_declarations(source, entries, context),
            "identifier": f"urn:uuid:{uuid.uuid4()}",
            "timestamp": datetime.now(timezone.utc).strftime('%Y-%m-%dT%H:%M:%S+00:00'),
            "total": len(entries),
        }
        if request.offset is not None:
            expansion["offset"] = request.offset

        expansion["parameter"] = sort_parameters(self.echo_parameters(source, context) + context.parameters)
        expansion["contains"] = [entry.to_dict() for entry in paged]

        logger.debug(f"Assembled expansion of {source.canonical}: {len(paged)} of {len(entries)} concepts")
        return {key: value for key, value in expansion.items() if value != []}

    def strip_single_versions(self, entries: List[ContainsEntry], context: ExpansionContext):
        """Entry versions are only kept for systems that were used in more than one version."""
        versions: Dict[str, set] = {}
        for used in context.used_versions:
            versions.setdefault(used.url, set()).add(used.version)

        stack = list(entries)
        while stack:
            entry = stack.pop()
            if len(versions.get(entry.system, ())) <= 1:
                entry.version = None
            stack.extend(entry.contains)

    def echo_parameters(self, source: ValueSet, context: ExpansionContext) -> List[Dict]:
        request = context.request
        params = []

        def echo(name, value_type, value):
            if value is not None and value != "":
                params.append({"name": name, value_type: value})

        echo("excludeNested", "valueBoolean", request.exclude_nested)
        echo("includeDesignations", "valueBoolean", request.include_designations)
        echo("includeDefinition", "valueBoolean", request.include_definition)
        echo("activeOnly", "valueBoolean", request.active_only)
        echo(
            "displayLanguage",
            "valueCode",
            request.display_language or compose_display_language(source) or source.language,
        )
        for value in request.exclude_system:
            echo("exclude-system", "valueCanonical", value)
        for value in request.system_version:
            url, _ = split_canonical(value)
            if context.was_decided_by(url, value, VERSION_FROM_SYSTEM_VERSION):
                echo("system-version", "valueUri", value)
        for value in request.force_system_version:
            echo("force-system-version", "valueUri", value)
        echo("count", "valueInteger", request.count)
        echo("offset", "valueInteger", request.offset)
        for value in request.properties:
            echo("property", "valueCode", value)
        for value in request.designations:
            echo("designation", "valueString", value)
        echo("filter", "valueString", request.filter)
        echo("date", "valueDateTime", request.date)
        if request.http_method == "GET":
            echo("url", "valueUri", request.url)
        echo("excludeNotForUI", "valueBoolean", request.exclude_not_for_ui)
        return params

    def property_declarations(self, source: ValueSet, entries: List[ContainsEntry],
                              context: ExpansionContext) -> List[Dict]:
        """
        Declare requested properties the first included system does not
        define, then any property code observed in the output.
        """
        declared = []
        declarations = []
        uri_maps: Dict[str, Dict[str, str]] = {}

        def declare(code, system_url):
            if code in declared:
                return
            uri = self._property_uri(code, system_url, context, uri_maps)
            if uri is None:
                return
            declared.append(code)
            declarations.append(property_declaration(code, uri))

        first_system = None
        if source.compose is not None:
            first_system = next((inc.system for inc in source.compose.include if inc.system), None)

        defined = set(self._property_uris(first_system, context, uri_maps))
        for code in context.request.properties:
            if code not in defined:
                declare(code, first_system)

        systems = _systems_by_property(entries)
        for code in _observed_property_codes(entries):
            declare(code, systems.get(code))
        return declarations

    def _property_uri(self, code: str, system_url: Optional[str], context: ExpansionContext,
                      uri_maps: Dict[str, Dict[str, str]]) -> Optional[str]:
        declared = self._property_uris(system_url, context, uri_maps)
        if declared.get(code):
            return declared[code]
        if code in WELL_KNOWN_PROPERTY_URIS:
            return WELL_KNOWN_PROPERTY_URIS[code]
        if system_url:
            return f"{system_url}#{code}"
        return None

    def _property_uris(self, system_url: Optional[str], context: ExpansionContext,
                       uri_maps: Dict[str, Dict[str, str]]) -> Dict[str, str]:
        if not system_url:
            return {}
        if system_url not in uri_maps:
            version = next((u.version for u in context.used_versions if u.url == system_url), None)
            try:
                code_system = self.resource_finder.find_code_system(system_url, version, context)
                uri_maps[system_url] = {p.code: p.uri for p in code_system.properties}
            except NotFoundError:
                logger.debug(f"No property definitions available for {system_url}")
                uri_maps[system_url] = {}
        return uri_maps[system_url]
