from typing import List, Optional
import logging

from terminology_api.classes import CodeSystem, ValueSet, split_canonical
from terminology_api.exceptions import (
    CodeSystemNotFoundError,
    CodeSystemVersionNotFoundError,
    InvalidRequestError,
    NotFoundError,
    StoreError,
    TerminologyError,
    ValueSetNotFoundError,
)
from terminology_api.request import ExpansionContext
from terminology_api.store import ResourceStore
from terminology_api.versions import select_version

logger = logging.getLogger(__name__)


class ResourceFinder:
    """
    Resolves canonical references to CodeSystems and ValueSets.
    tx-resources sent with the request are consulted before the store.
    """

    def __init__(self, store: ResourceStore):
        self.store = store

    def _store_call(self, description: str, func, *args):
        try:
            return func(*args)
        except TerminologyError:
            raise
        except Exception as e:
            raise StoreError(f"Error while resolving {description}: {e}") from e

    # --- CodeSystem ---

    def find_code_system(self, url: str, version: Optional[str] = None,
                         context: Optional[ExpansionContext] = None) -> CodeSystem:
        """
        Find a CodeSystem by url and exact version, wildcard version or latest.

        Raises:
            CodeSystemNotFoundError: no CodeSystem has this url
            CodeSystemVersionNotFoundError: the url exists, the version does not
        """
        if context is not None:
            local = [cs for cs in context.tx_code_systems if cs.url == url]
            found = select_version(local, version)
            if found is not None:
                return found

        candidates = self._store_call(f"CodeSystem '{url}'", self.store.find_code_systems, url)
        found = select_version(candidates, version)
        if found is not None:
            return found

        known = candidates + ([cs for cs in context.tx_code_systems if cs.url == url] if context else [])
        if not known:
            raise CodeSystemNotFoundError(url)
        available = sorted({cs.version for cs in known if cs.version})
        raise CodeSystemVersionNotFoundError(url, version, available)

    def get_code_system(self, resource_id: str, version: Optional[str] = None) -> CodeSystem:
        code_system = self._store_call(f"CodeSystem/{resource_id}", self.store.get_code_system, resource_id)
        if code_system is None:
            raise NotFoundError(f"CodeSystem not found with ID: {resource_id}")
        if version and code_system.version != version:
            raise NotFoundError(f"Version {version} not found for CodeSystem {resource_id}")
        return code_system

    def find_supplements(self, url: str, context: Optional[ExpansionContext] = None) -> List[CodeSystem]:
        """
        All CodeSystems that supplement the given system url, tx-resources
        first, de-duplicated on url|version. Store failures are logged and
        treated as "no supplements".
        """
        supplements = []
        if context is not None:
            supplements.extend(
                cs for cs in context.tx_code_systems if split_canonical(cs.supplements)[0] == url
            )

        try:
            supplements.extend(self.store.find_supplements(url))
        except Exception as e:
            logger.warning(f"Supplement lookup for {url} failed, continuing without: {e}")

        unique = []
        seen = set()
        for supplement in supplements:
            key = f"{supplement.url}|{supplement.version}"
            if key not in seen:
                seen.add(key)
                unique.append(supplement)
        return unique

    # --- ValueSet ---

    def find_value_set(self, url: str, version: Optional[str] = None,
                       context: Optional[ExpansionContext] = None) -> ValueSet:
        """Find the ValueSet a caller asked to expand."""
        if context is not None:
            found = select_version([vs for vs in context.tx_value_sets if vs.url == url], version)
            if found is not None:
                return found

        value_sets = self._store_call(f"ValueSet '{url}'", self.store.find_value_sets, url)
        found = select_version(value_sets, version)
        if found is None:
            message = f"ValueSet with URL '{url}'"
            if version:
                message += f" and version '{version}'"
            raise ValueSetNotFoundError(message + " not found.")
        return found

    def get_value_set(self, resource_id: str) -> ValueSet:
        value_set = self._store_call(f"ValueSet/{resource_id}", self.store.get_value_set, resource_id)
        if value_set is None:
            raise ValueSetNotFoundError(f"ValueSet/{resource_id} not found.")
        return value_set

    def find_value_set_by_canonical(self, canonical: str, context: ExpansionContext) -> ValueSet:
        """
        Resolve a 'url|version' reference from compose.include.valueSet,
        applying default-valueset-version when no version is pinned.
        """
        url, version = split_canonical(canonical)
        if not url or not url.strip():
            raise InvalidRequestError(f"Invalid ValueSet canonical URL format: {canonical}")

        if version is None:
            version = context.default_valueset_versions.get(url)

        found = select_version([vs for vs in context.tx_value_sets if vs.url == url], version)
        if found is None:
            value_sets = self._store_call(f"ValueSet '{canonical}'", self.store.find_value_sets, url)
            found = select_version(value_sets, version)

        if found is None:
            reference = f"{url}|{version}" if version else url
            raise ValueSetNotFoundError(f"The ValueSet '{reference}' could not be found.")
        return found
