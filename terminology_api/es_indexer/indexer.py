from typing import Dict, Iterable, Optional, Tuple
import logging

from elasticsearch import Elasticsearch
from elasticsearch.helpers import bulk

from terminology_api.classes import split_canonical
from terminology_api.ES.store import CODE_SYSTEM, VALUE_SET, index_names
from terminology_api.store import iter_resource_files

logger = logging.getLogger(__name__)

RESOURCE_MAPPING = {
    "mappings": {
        "properties": {
            "url": {"type": "keyword"},
            "version": {"type": "keyword"},
            "supplements": {"type": "keyword"},
            "resource_id": {"type": "keyword"},
            "name": {"type": "text"},
            "resource": {"type": "object", "enabled": False},
        }
    }
}


def document_id(resource: Dict) -> Optional[str]:
    """FHIR id when present, otherwise url|version."""
    if resource.get("id"):
        return resource["id"]
    if resource.get("url"):
        return f"{resource['url']}|{resource.get('version') or ''}"
    return None


class ResourceIndexer:
    """
    Loads CodeSystem and ValueSet JSON into the indices read by
    ElasticsearchResourceStore.
    """

    def __init__(self, es_client: Elasticsearch, index_prefix: str = "fhir", chunk_size: int = 500):
        self.es = es_client
        self.indices = index_names(index_prefix)
        self.chunk_size = chunk_size

    def create_indices(self, recreate: bool = False):
        for index_name in self.indices.values():
            if self.es.indices.exists(index=index_name):
                if not recreate:
                    continue
                logger.info(f"Deleting existing index: {index_name}")
                self.es.indices.delete(index=index_name)

            logger.info(f"Creating index: {index_name}")
            self.es.indices.create(index=index_name, mappings=RESOURCE_MAPPING["mappings"])

    def build_action(self, resource: Dict) -> Optional[Dict]:
        resource_type = resource.get("resourceType")
        if resource_type not in (CODE_SYSTEM, VALUE_SET):
            return None

        doc_id = document_id(resource)
        if doc_id is None:
            logger.warning(f"Skipping {resource_type} without id or url")
            return None

        return {
            "_index": self.indices[resource_type],
            "_id": doc_id,
            "_source": {
                "url": resource.get("url"),
                "version": resource.get("version"),
                "supplements": split_canonical(resource.get("supplements"))[0],
                "resource_id": resource.get("id"),
                "name": resource.get("name"),
                "resource": resource,
            },
        }

    def index_resources(self, resources: Iterable[Dict]) -> Tuple[int, list]:
        def action_generator():
            for resource in resources:
                action = self.build_action(resource)
                if action is not None:
                    yield action

        success_count, errors = bulk(
            self.es,
            action_generator(),
            chunk_size=self.chunk_size,
            raise_on_error=False,
        )

        for error in errors:
            logger.error(f"Failed to index resource: {error}")
        logger.info(f"Indexed {success_count} resources with {len(errors)} errors")
        return success_count, errors

    def index_path(self, path, recreate: bool = False) -> Tuple[int, list]:
        self.create_indices(recreate=recreate)
        return self.index_resources(iter_resource_files(path))
