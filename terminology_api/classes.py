from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterator, List, Optional

from terminology_api.constants import EXT_STANDARDS_STATUS


def _drop_empty(data: Dict) -> Dict:
    return {k: v for k, v in data.items() if v is not None and v != []}


def _value_entry(data: Dict):
    """Return the (value[x] key, value) pair of a FHIR element, or (None, None)."""
    for key, value in data.items():
        if key.startswith("value") and key != "value":
            return key, value
    return None, None


def split_canonical(canonical: Optional[str]):
    """Split 'url|version' into (url, version)."""
    if not canonical:
        return None, None
    if "|" in canonical:
        url, version = canonical.split("|", 1)
        return url, (version or None)
    return canonical, None


def extension_value(extensions: List[Dict], url: str):
    for ext in extensions:
        if ext.get("url") == url:
            return _value_entry(ext)[1]
    return None


@dataclass
class Coding:
    system: Optional[str] = None
    code: Optional[str] = None
    display: Optional[str] = None
    version: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> Optional["Coding"]:
        if not data:
            return None
        return cls(
            system=data.get("system"),
            code=data.get("code"),
            display=data.get("display"),
            version=data.get("version"),
        )

    def to_dict(self) -> Dict:
        return _drop_empty({
            "system": self.system,
            "version": self.version,
            "code": self.code,
            "display": self.display,
        })


@dataclass
class Designation:
    value: Optional[str] = None
    language: Optional[str] = None
    use: Optional[Coding] = None
    extensions: List[Dict] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict) -> "Designation":
        return cls(
            value=data.get("value"),
            language=data.get("language"),
            use=Coding.from_dict(data.get("use")),
            extensions=list(data.get("extension", [])),
        )

    def to_dict(self) -> Dict:
        return _drop_empty({
            "extension": self.extensions,
            "language": self.language,
            "use": self.use.to_dict() if self.use else None,
            "value": self.value,
        })


@dataclass
class ConceptProperty:
    code: str
    value: Any = None
    value_type: str = "valueString"

    @classmethod
    def from_dict(cls, data: Dict) -> "ConceptProperty":
        value_type, value = _value_entry(data)
        return cls(code=data.get("code"), value=value, value_type=value_type or "valueString")

    @property
    def primitive_value(self) -> Optional[str]:
        if self.value is None:
            return None
        if self.value_type == "valueCoding":
            return self.value.get("code")
        if isinstance(self.value, bool):
            return "true" if self.value else "false"
        return str(self.value)


@dataclass
class Concept:
    code: str
    display: Optional[str] = None
    definition: Optional[str] = None
    designations: List[Designation] = field(default_factory=list)
    properties: List[ConceptProperty] = field(default_factory=list)
    concepts: List["Concept"] = field(default_factory=list)
    extensions: List[Dict] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict) -> "Concept":
        return cls(
            code=data.get("code"),
            display=data.get("display"),
            definition=data.get("definition"),
            designations=[Designation.from_dict(d) for d in data.get("designation", [])],
            properties=[ConceptProperty.from_dict(p) for p in data.get("property", [])],
            concepts=[Concept.from_dict(c) for c in data.get("concept", [])],
            extensions=list(data.get("extension", [])),
        )

    def copy(self) -> "Concept":
        """Copy with fresh designation/property/extension lists; children stay shared."""
        return replace(
            self,
            designations=list(self.designations),
            properties=list(self.properties),
            extensions=list(self.extensions),
        )

    def get_property(self, code: str) -> Optional[ConceptProperty]:
        for prop in self.properties:
            if prop.code == code:
                return prop
        return None

    def get_properties(self, code: str) -> List[ConceptProperty]:
        return [prop for prop in self.properties if prop.code == code]

    def replace_property(self, prop: ConceptProperty):
        self.properties = [p for p in self.properties if p.code != prop.code]
        self.properties.append(prop)

    def get_extension(self, url: str) -> Optional[Dict]:
        for ext in self.extensions:
            if ext.get("url") == url:
                return ext
        return None

    def replace_extension(self, ext: Dict):
        self.extensions = [e for e in self.extensions if e.get("url") != ext.get("url")]
        self.extensions.append(ext)


@dataclass
class PropertyDefinition:
    code: str
    uri: Optional[str] = None
    type: Optional[str] = None
    description: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict) -> "PropertyDefinition":
        return cls(
            code=data.get("code"),
            uri=data.get("uri"),
            type=data.get("type"),
            description=data.get("description"),
        )


@dataclass
class CodeSystem:
    url: Optional[str] = None
    version: Optional[str] = None
    id: Optional[str] = None
    name: Optional[str] = None
    title: Optional[str] = None
    status: Optional[str] = None
    experimental: Optional[bool] = None
    language: Optional[str] = None
    content: Optional[str] = None
    supplements: Optional[str] = None
    properties: List[PropertyDefinition] = field(default_factory=list)
    concepts: List[Concept] = field(default_factory=list)
    extensions: List[Dict] = field(default_factory=list)
    resource: Dict = field(default_factory=dict, repr=False, compare=False)
    _index: Optional[Dict[str, Concept]] = field(default=None, init=False, repr=False, compare=False)

    @classmethod
    def from_dict(cls, data: Dict) -> "CodeSystem":
        return cls(
            url=data.get("url"),
            version=data.get("version"),
            id=data.get("id"),
            name=data.get("name"),
            title=data.get("title"),
            status=data.get("status"),
            experimental=data.get("experimental"),
            language=data.get("language"),
            content=data.get("content"),
            supplements=data.get("supplements"),
            properties=[PropertyDefinition.from_dict(p) for p in data.get("property", [])],
            concepts=[Concept.from_dict(c) for c in data.get("concept", [])],
            extensions=list(data.get("extension", [])),
            resource=data,
        )

    @property
    def canonical(self) -> str:
        return f"{self.url}|{self.version}" if self.version else self.url

    @property
    def standards_status(self) -> Optional[str]:
        return extension_value(self.extensions, EXT_STANDARDS_STATUS)

    def iter_concepts(self) -> Iterator[Concept]:
        """Pre-order walk over the whole concept tree."""
        stack = list(reversed(self.concepts))
        while stack:
            concept = stack.pop()
            yield concept
            stack.extend(reversed(concept.concepts))

    def find_concept(self, code: Optional[str]) -> Optional[Concept]:
        if code is None:
            return None
        if self._index is None:
            index = {}
            for concept in self.iter_concepts():
                index.setdefault(concept.code, concept)
            self._index = index
        return self._index.get(code)


@dataclass
class ConceptReference:
    code: str
    display: Optional[str] = None
    designations: List[Designation] = field(default_factory=list)
    extensions: List[Dict] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict) -> "ConceptReference":
        return cls(
            code=data.get("code"),
            display=data.get("display"),
            designations=[Designation.from_dict(d) for d in data.get("designation", [])],
            extensions=list(data.get("extension", [])),
        )


@dataclass
class ConceptSetFilter:
    property: Optional[str] = None
    op: Optional[str] = None
    value: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict) -> "ConceptSetFilter":
        return cls(property=data.get("property"), op=data.get("op"), value=data.get("value"))


@dataclass
class ConceptSet:
    """A compose.include or compose.exclude rule."""
    system: Optional[str] = None
    version: Optional[str] = None
    concepts: List[ConceptReference] = field(default_factory=list)
    filters: List[ConceptSetFilter] = field(default_factory=list)
    value_sets: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict) -> "ConceptSet":
        return cls(
            system=data.get("system"),
            version=data.get("version"),
            concepts=[ConceptReference.from_dict(c) for c in data.get("concept", [])],
            filters=[ConceptSetFilter.from_dict(f) for f in data.get("filter", [])],
            value_sets=list(data.get("valueSet", [])),
        )


@dataclass
class Compose:
    include: List[ConceptSet] = field(default_factory=list)
    exclude: List[ConceptSet] = field(default_factory=list)
    inactive: Optional[bool] = None
    extensions: List[Dict] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict) -> "Compose":
        return cls(
            include=[ConceptSet.from_dict(i) for i in data.get("include", [])],
            exclude=[ConceptSet.from_dict(e) for e in data.get("exclude", [])],
            inactive=data.get("inactive"),
            extensions=list(data.get("extension", [])),
        )


@dataclass
class ValueSet:
    url: Optional[str] = None
    version: Optional[str] = None
    id: Optional[str] = None
    name: Optional[str] = None
    title: Optional[str] = None
    status: Optional[str] = None
    experimental: Optional[bool] = None
    language: Optional[str] = None
    compose: Optional[Compose] = None
    extensions: List[Dict] = field(default_factory=list)
    resource: Dict = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_dict(cls, data: Dict) -> "ValueSet":
        compose = data.get("compose")
        return cls(
            url=data.get("url"),
            version=data.get("version"),
            id=data.get("id"),
            name=data.get("name"),
            title=data.get("title"),
            status=data.get("status"),
            experimental=data.get("experimental"),
            language=data.get("language"),
            compose=Compose.from_dict(compose) if compose is not None else None,
            extensions=list(data.get("extension", [])),
            resource=data,
        )

    @property
    def canonical_key(self) -> str:
        return f"{self.url}|{self.version or ''}"

    @property
    def canonical(self) -> str:
        return f"{self.url}|{self.version}" if self.version else self.url

    @property
    def standards_status(self) -> Optional[str]:
        return extension_value(self.extensions, EXT_STANDARDS_STATUS)


@dataclass
class ContainsEntry:
    system: str
    code: str
    display: Optional[str] = None
    version: Optional[str] = None
    abstract: Optional[bool] = None
    inactive: Optional[bool] = None
    designations: List[Designation] = field(default_factory=list)
    extensions: List[Dict] = field(default_factory=list)
    contains: List["ContainsEntry"] = field(default_factory=list)

    @property
    def key(self) -> str:
        return f"{self.system}|{self.code}"

    def to_dict(self) -> Dict:
        return _drop_empty({
            "extension": self.extensions,
            "system": self.system,
            "version": self.version,
            "abstract": self.abstract,
            "inactive": self.inactive,
            "code": self.code,
            "display": self.display,
            "designation": [d.to_dict() for d in self.designations],
            "contains": [c.to_dict() for c in self.contains],
        })


def resource_from_dict(data: Dict):
    """Parse a CodeSystem or ValueSet JSON resource, None for anything else."""
    resource_type = data.get("resourceType")
    if resource_type == "CodeSystem":
        return CodeSystem.from_dict(data)
    if resource_type == "ValueSet":
        return ValueSet.from_dict(data)
    return None
