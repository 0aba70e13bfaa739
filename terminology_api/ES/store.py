from typing import Dict, List, Optional
import logging

from elasticsearch import ApiError, Elasticsearch, NotFoundError, TransportError

from terminology_api.classes import CodeSystem, ValueSet, resource_from_dict
from terminology_api.exceptions import StoreError
from terminology_api.store import ResourceStore

logger = logging.getLogger(__name__)

CODE_SYSTEM = "CodeSystem"
VALUE_SET = "ValueSet"


def index_names(index_prefix: str) -> Dict[str, str]:
    return {
        CODE_SYSTEM: f"{index_prefix}_codesystems",
        VALUE_SET: f"{index_prefix}_valuesets",
    }


class ElasticsearchResourceStore(ResourceStore):
    """
    Resource store over two Elasticsearch indices, one per resource type.

    Each document keeps the resource JSON under `resource` plus keyword
    fields (url, version, supplements, resource_id) used for term queries.
    """

    def __init__(self, es_client: Elasticsearch, index_prefix: str = "fhir", max_results: int = 1000):
        self.es = es_client
        self.indices = index_names(index_prefix)
        self.max_results = max_results

    def _search(self, resource_type: str, field: str, value: str) -> List:
        index = self.indices[resource_type]
        try:
            response = self.es.search(
                index=index,
                query={"bool": {"filter": [{"term": {field: value}}]}},
                size=self.max_results,
            )
        except NotFoundError:
            logger.warning(f"Index {index} does not exist")
            return []
        except (ApiError, TransportError) as e:
            raise StoreError(f"Search on {index} for {field}={value} failed: {e}") from e

        resources = []
        for hit in response["hits"]["hits"]:
            resource = resource_from_dict(hit["_source"].get("resource") or {})
            if resource is not None:
                resources.append(resource)
        return resources

    def _get(self, resource_type: str, resource_id: str):
        index = self.indices[resource_type]
        try:
            response = self.es.options(ignore_status=404).get(index=index, id=resource_id)
        except (ApiError, TransportError) as e:
            raise StoreError(f"Fetching {resource_type}/{resource_id} from {index} failed: {e}") from e

        if "found" not in response or not response["found"]:
            return None
        return resource_from_dict(response["_source"].get("resource") or {})

    def find_code_systems(self, url: str) -> List[CodeSystem]:
        return self._search(CODE_SYSTEM, "url", url)

    def find_value_sets(self, url: str) -> List[ValueSet]:
        return self._search(VALUE_SET, "url", url)

    def get_code_system(self, resource_id: str) -> Optional[CodeSystem]:
        return self._get(CODE_SYSTEM, resource_id)

    def get_value_set(self, resource_id: str) -> Optional[ValueSet]:
        return self._get(VALUE_SET, resource_id)

    def find_supplements(self, url: str) -> List[CodeSystem]:
        return self._search(CODE_SYSTEM, "supplements", url)
