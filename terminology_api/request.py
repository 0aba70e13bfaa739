from dataclasses import dataclass, field
from typing import Dict, List, Optional
import logging

from terminology_api.classes import CodeSystem, ValueSet, resource_from_dict, split_canonical
from terminology_api.language import first_language_tag

logger = logging.getLogger(__name__)

# Where the version used for a system came from
VERSION_FORCED = "force-system-version"
VERSION_CHECKED = "check-system-version"
VERSION_FROM_INCLUDE = "include"
VERSION_FROM_SYSTEM_VERSION = "system-version"


def parse_system_versions(values: List[str]) -> Dict[str, str]:
    """Map 'url|version' entries to {url: version}; entries without a version are skipped."""
    versions = {}
    for value in values or []:
        url, version = split_canonical(value)
        if url and version and version.strip():
            versions[url] = version
    return versions


@dataclass
class ExpansionRequest:
    """
    Caller parameters for one $expand call.

    Built once per call and never mutated afterwards; everything derived
    while expanding lives on ExpansionContext.
    """
    id: Optional[str] = None
    url: Optional[str] = None
    value_set_version: Optional[str] = None
    value_set: Optional[Dict] = None
    filter: Optional[str] = None
    date: Optional[str] = None
    offset: Optional[int] = None
    count: Optional[int] = None
    include_designations: Optional[bool] = None
    designations: List[str] = field(default_factory=list)
    include_definition: Optional[bool] = None
    active_only: Optional[bool] = None
    exclude_nested: Optional[bool] = None
    exclude_not_for_ui: Optional[bool] = None
    display_language: Optional[str] = None
    accept_language: Optional[str] = None
    exclude_system: List[str] = field(default_factory=list)
    system_version: List[str] = field(default_factory=list)
    check_system_version: List[str] = field(default_factory=list)
    force_system_version: List[str] = field(default_factory=list)
    properties: List[str] = field(default_factory=list)
    default_valueset_versions: List[str] = field(default_factory=list)
    tx_resources: List[Dict] = field(default_factory=list)
    http_method: str = "POST"


@dataclass
class UsedVersion:
    url: str
    version: Optional[str]
    source: Optional[str] = None
    requested: Optional[str] = None


class ExpansionContext:
    """
    Request-scoped state derived while expanding: lazily resolved caches,
    the used-version ledger and the server-generated parameters.
    Never shared between requests.
    """

    def __init__(self, request: ExpansionRequest):
        self.request = request
        self.parameters: List[Dict] = []
        self.used_versions: List[UsedVersion] = []
        self.explicit_supplements: Dict[str, List[CodeSystem]] = {}
        self._supplements: Dict[str, List[CodeSystem]] = {}
        self._display_language = None
        self._display_language_resolved = False
        self._default_versions = None
        self._tx_code_systems = None
        self._tx_value_sets = None
        self._force_versions = None
        self._check_versions = None
        self._system_versions = None

    # --- lazily derived request views ---

    @property
    def display_language(self) -> Optional[str]:
        if not self._display_language_resolved:
            language = self.request.display_language
            if not language:
                language = first_language_tag(self.request.accept_language)
            self._display_language = language
            self._display_language_resolved = True
        return self._display_language

    def use_fallback_display_language(self, language: Optional[str]):
        """Adopt a language from the value set when the caller gave none."""
        if not self.display_language and language:
            self._display_language = language

    @property
    def default_valueset_versions(self) -> Dict[str, str]:
        if self._default_versions is None:
            self._default_versions = parse_system_versions(self.request.default_valueset_versions)
        return self._default_versions

    @property
    def force_versions(self) -> Dict[str, str]:
        if self._force_versions is None:
            self._force_versions = parse_system_versions(self.request.force_system_version)
        return self._force_versions

    @property
    def check_versions(self) -> Dict[str, str]:
        if self._check_versions is None:
            self._check_versions = parse_system_versions(self.request.check_system_version)
        return self._check_versions

    @property
    def system_versions(self) -> Dict[str, str]:
        if self._system_versions is None:
            self._system_versions = parse_system_versions(self.request.system_version)
        return self._system_versions

    def _load_tx_resources(self):
        self._tx_code_systems = []
        self._tx_value_sets = []
        for data in self.request.tx_resources:
            resource = resource_from_dict(data or {})
            if isinstance(resource, CodeSystem) and resource.url:
                self._tx_code_systems.append(resource)
            elif isinstance(resource, ValueSet) and resource.url:
                self._tx_value_sets.append(resource)
            else:
                logger.debug(f"Ignoring tx-resource of type {(data or {}).get('resourceType')}")

    @property
    def tx_code_systems(self) -> List[CodeSystem]:
        if self._tx_code_systems is None:
            self._load_tx_resources()
        return self._tx_code_systems

    @property
    def tx_value_sets(self) -> List[ValueSet]:
        if self._tx_value_sets is None:
            self._load_tx_resources()
        return self._tx_value_sets

    def is_system_excluded(self, url: Optional[str], version: Optional[str] = None) -> bool:
        for value in self.request.exclude_system:
            excluded_url, excluded_version = split_canonical(value)
            if excluded_url == url and (excluded_version is None or excluded_version == version):
                return True
        return False

    # --- supplements ---

    def register_explicit_supplement(self, supplement: CodeSystem):
        target, _ = split_canonical(supplement.supplements)
        if target:
            self.explicit_supplements.setdefault(target, []).append(supplement)

    def has_discovered_supplements(self, url: str) -> bool:
        return url in self._supplements

    def cache_supplements(self, url: str, supplements: List[CodeSystem]):
        self._supplements[url] = supplements

    def supplements_for(self, url: str) -> List[CodeSystem]:
        """Explicitly requested supplements first, then discovered ones."""
        supplements = []
        seen = set()
        for supplement in self.explicit_supplements.get(url, []) + self._supplements.get(url, []):
            key = f"{supplement.url}|{supplement.version}"
            if key not in seen:
                seen.add(key)
                supplements.append(supplement)
        return supplements

    def record_supplement_used(self, supplement: CodeSystem):
        self.add_parameter("used-supplement", "valueUri", supplement.canonical)

    # --- used-version ledger ---

    def record_used_version(self, url: str, version: Optional[str], source: Optional[str] = None,
                            requested: Optional[str] = None):
        for used in self.used_versions:
            if used.url == url and used.version == version:
                return
        self.used_versions.append(UsedVersion(url, version, source, requested))

    def was_decided_by(self, url: str, requested: str, source: str) -> bool:
        return any(
            used.url == url and used.source == source and used.requested == requested
            for used in self.used_versions
        )

    # --- generated parameters ---

    def add_parameter(self, name: str, value_type: str, value, unique: bool = True):
        if unique and self.has_parameter(name, value_type, value):
            return
        self.parameters.append({"name": name, value_type: value})

    def has_parameter(self, name: str, value_type: str, value) -> bool:
        return any(
            param.get("name") == name and param.get(value_type) == value
            for param in self.parameters
        )

