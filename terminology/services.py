"""
Process-wide engine instances, built from Django settings on first use.
"""
from functools import lru_cache
import logging

from django.conf import settings

from config.es_config import get_es_client
from terminology_api.ES.store import ElasticsearchResourceStore
from terminology_api.expansion.service import ValueSetExpansionService
from terminology_api.finder import ResourceFinder
from terminology_api.lookup import LookupService
from terminology_api.store import InMemoryResourceStore, ResourceStore
from terminology_api.validate import ValidateCodeService

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_store() -> ResourceStore:
    if settings.TERMINOLOGY_STORE == "memory":
        logger.info(f"Using in-memory resource store from {settings.TERMINOLOGY_RESOURCE_DIR}")
        return InMemoryResourceStore.from_path(settings.TERMINOLOGY_RESOURCE_DIR)

    logger.info(f"Using Elasticsearch resource store with prefix '{settings.TERMINOLOGY_INDEX_PREFIX}'")
    return ElasticsearchResourceStore(get_es_client(), settings.TERMINOLOGY_INDEX_PREFIX)


@lru_cache(maxsize=1)
def get_resource_finder() -> ResourceFinder:
    return ResourceFinder(get_store())


@lru_cache(maxsize=1)
def get_expansion_service() -> ValueSetExpansionService:
    return ValueSetExpansionService(get_store(), resource_finder=get_resource_finder())


@lru_cache(maxsize=1)
def get_lookup_service() -> LookupService:
    return LookupService(get_resource_finder())


@lru_cache(maxsize=1)
def get_validate_service() -> ValidateCodeService:
    return ValidateCodeService(get_resource_finder(), get_expansion_service())
