from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional
import json
import logging

from terminology_api.classes import CodeSystem, ValueSet, resource_from_dict, split_canonical
from terminology_api.versions import select_version

logger = logging.getLogger(__name__)


class ResourceStore(ABC):
    """
    Read-only access to CodeSystem and ValueSet resources.

    Backends only need to answer "all versions for a url", "by id" and
    "supplements of a url"; version choice is shared.
    """

    @abstractmethod
    def find_code_systems(self, url: str) -> List[CodeSystem]:
        ...

    @abstractmethod
    def find_value_sets(self, url: str) -> List[ValueSet]:
        ...

    @abstractmethod
    def get_code_system(self, resource_id: str) -> Optional[CodeSystem]:
        ...

    @abstractmethod
    def get_value_set(self, resource_id: str) -> Optional[ValueSet]:
        ...

    @abstractmethod
    def find_supplements(self, url: str) -> List[CodeSystem]:
        ...

    def find_code_system(self, url: str, version: Optional[str] = None) -> Optional[CodeSystem]:
        return select_version(self.find_code_systems(url), version)

    def find_value_set(self, url: str, version: Optional[str] = None) -> Optional[ValueSet]:
        return select_version(self.find_value_sets(url), version)


def iter_resource_files(path) -> Iterator[Dict]:
    """
    Yield CodeSystem/ValueSet JSON dicts from a file or a directory of
    *.json files. Bundles are unpacked into their entries.
    """
    path = Path(path)
    files = sorted(path.rglob("*.json")) if path.is_dir() else [path]

    for file_path in files:
        try:
            with open(file_path, encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, ValueError) as e:
            logger.warning(f"Skipping unreadable resource file {file_path}: {e}")
            continue

        if not isinstance(data, dict):
            logger.warning(f"Skipping {file_path}: top-level JSON is not a resource")
            continue

        if data.get("resourceType") == "Bundle":
            for entry in data.get("entry", []):
                resource = entry.get("resource") or {}
                if resource.get("resourceType") in ("CodeSystem", "ValueSet"):
                    yield resource
        elif data.get("resourceType") in ("CodeSystem", "ValueSet"):
            yield data
        else:
            logger.debug(f"Skipping {file_path}: resourceType {data.get('resourceType')}")


class InMemoryResourceStore(ResourceStore):
    """Dict-backed store, used for tests and small file-based deployments."""

    def __init__(self, resources: Iterable = ()):
        self.code_systems: List[CodeSystem] = []
        self.value_sets: List[ValueSet] = []
        for resource in resources:
            self.add(resource)

    @classmethod
    def from_path(cls, path) -> "InMemoryResourceStore":
        store = cls(resource_from_dict(data) for data in iter_resource_files(path))
        logger.info(
            f"Loaded {len(store.code_systems)} code systems and {len(store.value_sets)} value sets from {path}"
        )
        return store

    def add(self, resource):
        if isinstance(resource, dict):
            resource = resource_from_dict(resource)
        if isinstance(resource, CodeSystem):
            self.code_systems.append(resource)
        elif isinstance(resource, ValueSet):
            self.value_sets.append(resource)

    def find_code_systems(self, url: str) -> List[CodeSystem]:
        return [cs for cs in self.code_systems if cs.url == url]

    def find_value_sets(self, url: str) -> List[ValueSet]:
        return [vs for vs in self.value_sets if vs.url == url]

    def get_code_system(self, resource_id: str) -> Optional[CodeSystem]:
        return next((cs for cs in self.code_systems if cs.id == resource_id), None)

    def get_value_set(self, resource_id: str) -> Optional[ValueSet]:
        return next((vs for vs in self.value_sets if vs.id == resource_id), None)

    def find_supplements(self, url: str) -> List[CodeSystem]:
        return [cs for cs in self.code_systems if split_canonical(cs.supplements)[0] == url]
