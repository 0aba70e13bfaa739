from unittest import TestCase
from unittest.mock import MagicMock, patch

from elasticsearch import ConnectionError as ESConnectionError
from elasticsearch import NotFoundError as ESNotFoundError

from terminology_api.ES.store import ElasticsearchResourceStore, index_names
from terminology_api.es_indexer.indexer import RESOURCE_MAPPING, ResourceIndexer, document_id
from terminology_api.exceptions import StoreError
from tests.builders import CS_URL, code_system, value_set


def search_response(*resources):
    return {"hits": {"hits": [{"_source": {"resource": resource}} for resource in resources]}}


class ElasticsearchResourceStoreTests(TestCase):
    def setUp(self):
        self.es = MagicMock()
        self.store = ElasticsearchResourceStore(self.es, index_prefix="tx", max_results=50)

    def test_index_names(self):
        self.assertEqual(index_names("tx"), {"CodeSystem": "tx_codesystems", "ValueSet": "tx_valuesets"})

    def test_find_code_systems_uses_term_query(self):
        self.es.search.return_value = search_response(code_system(version="1"), code_system(version="2"))

        found = self.store.find_code_systems(CS_URL)

        self.assertEqual([cs.version for cs in found], ["1", "2"])
        self.es.search.assert_called_once_with(
            index="tx_codesystems",
            query={"bool": {"filter": [{"term": {"url": CS_URL}}]}},
            size=50,
        )

    def test_find_supplements_searches_supplements_field(self):
        self.es.search.return_value = search_response()
        self.assertEqual(self.store.find_supplements(CS_URL), [])
        self.assertEqual(
            self.es.search.call_args.kwargs["query"],
            {"bool": {"filter": [{"term": {"supplements": CS_URL}}]}},
        )

    def test_find_value_sets_skips_unparseable_documents(self):
        self.es.search.return_value = search_response(value_set(), {"resourceType": "Patient"})
        found = self.store.find_value_sets("http://example.org/fhir/ValueSet/colors")
        self.assertEqual(len(found), 1)
        self.assertEqual(self.es.search.call_args.kwargs["index"], "tx_valuesets")

    def test_missing_index_means_nothing_found(self):
        self.es.search.side_effect = ESNotFoundError("index_not_found_exception", MagicMock(status=404), {})
        self.assertEqual(self.store.find_code_systems(CS_URL), [])

    def test_transport_failure_becomes_store_error(self):
        self.es.search.side_effect = ESConnectionError("connection refused")
        with self.assertRaises(StoreError):
            self.store.find_code_systems(CS_URL)

    def test_get_by_id(self):
        getter = self.es.options.return_value.get
        getter.return_value = {"found": True, "_source": {"resource": code_system(id="colors")}}

        found = self.store.get_code_system("colors")

        self.assertEqual(found.id, "colors")
        self.es.options.assert_called_with(ignore_status=404)
        getter.assert_called_with(index="tx_codesystems", id="colors")

    def test_get_missing(self):
        self.es.options.return_value.get.return_value = {"found": False}
        self.assertIsNone(self.store.get_value_set("nope"))


class ResourceIndexerTests(TestCase):
    def setUp(self):
        self.es = MagicMock()
        self.indexer = ResourceIndexer(self.es, index_prefix="tx", chunk_size=10)

    def test_document_id(self):
        self.assertEqual(document_id({"id": "abc", "url": "http://x"}), "abc")
        self.assertEqual(document_id({"url": "http://x", "version": "2"}), "http://x|2")
        self.assertEqual(document_id({"url": "http://x"}), "http://x|")
        self.assertIsNone(document_id({}))

    def test_build_action(self):
        supplement = code_system(
            url="http://example.org/fhir/CodeSystem/colors-fr",
            id="colors-fr",
            supplements=f"{CS_URL}|1.0.0",
            name="ColorsFr",
        )
        action = self.indexer.build_action(supplement)
        self.assertEqual(action["_index"], "tx_codesystems")
        self.assertEqual(action["_id"], "colors-fr")
        self.assertEqual(action["_source"]["supplements"], CS_URL)
        self.assertEqual(action["_source"]["resource"], supplement)

    def test_build_action_skips_other_resources(self):
        self.assertIsNone(self.indexer.build_action({"resourceType": "Patient", "id": "p"}))
        self.assertIsNone(self.indexer.build_action({"resourceType": "ValueSet"}))

    def test_create_indices(self):
        self.es.indices.exists.side_effect = [True, False]

        self.indexer.create_indices()

        self.es.indices.delete.assert_not_called()
        self.es.indices.create.assert_called_once_with(
            index="tx_valuesets", mappings=RESOURCE_MAPPING["mappings"]
        )

    def test_create_indices_recreate(self):
        self.es.indices.exists.return_value = True
        self.indexer.create_indices(recreate=True)
        self.assertEqual(self.es.indices.delete.call_count, 2)
        self.assertEqual(self.es.indices.create.call_count, 2)

    @patch("terminology_api.es_indexer.indexer.bulk")
    def test_index_resources(self, mock_bulk):
        captured = []

        def fake_bulk(client, actions, **kwargs):
            captured.extend(actions)
            return len(captured), []

        mock_bulk.side_effect = fake_bulk

        count, errors = self.indexer.index_resources([
            code_system(id="a"),
            {"resourceType": "Patient", "id": "p"},
            value_set(id="b"),
        ])

        self.assertEqual((count, errors), (2, []))
        self.assertEqual([a["_id"] for a in captured], ["a", "b"])
        self.assertEqual(mock_bulk.call_args.kwargs, {"chunk_size": 10, "raise_on_error": False})
