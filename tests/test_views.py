from unittest.mock import patch

from django.test import SimpleTestCase
from rest_framework.test import APIRequestFactory

from terminology.views.expand import expand_view
from terminology.views.lookup import lookup_view
from terminology.views.params import build_expansion_request, collect_parameters
from terminology.views.validate_code import codesystem_validate_code_view, valueset_validate_code_view
from terminology_api.exceptions import InvalidRequestError
from terminology_api.expansion.service import ValueSetExpansionService
from terminology_api.finder import ResourceFinder
from terminology_api.lookup import LookupService
from terminology_api.validate import ValidateCodeService
from tests.builders import CS_URL, VS_URL, colors_code_system, include, make_store, value_set


def services():
    store = make_store(
        colors_code_system(language="en"),
        value_set(id="colors", includes=[include(CS_URL)]),
    )
    finder = ResourceFinder(store)
    expansion = ValueSetExpansionService(store, finder)
    return expansion, LookupService(finder), ValidateCodeService(finder, expansion)


class ParamsTests(SimpleTestCase):
    def setUp(self):
        self.factory = APIRequestFactory()

    def test_query_parameters(self):
        request = expand_view.cls().initialize_request(self.factory.get(
            "/ValueSet/$expand",
            {"url": VS_URL, "count": "5", "activeOnly": "true", "property": ["a", "b"]},
        ))
        expansion_request = build_expansion_request(request)
        self.assertEqual(expansion_request.url, VS_URL)
        self.assertEqual(expansion_request.count, 5)
        self.assertTrue(expansion_request.active_only)
        self.assertEqual(expansion_request.properties, ["a", "b"])
        self.assertEqual(expansion_request.http_method, "GET")

    def test_parameters_body(self):
        request = expand_view.cls().initialize_request(self.factory.post(
            "/ValueSet/$expand",
            {"resourceType": "Parameters", "parameter": [
                {"name": "url", "valueUri": VS_URL},
                {"name": "tx-resource", "resource": {"resourceType": "ValueSet", "url": "http://x"}},
                {"name": "exclude-system", "valueCanonical": CS_URL},
            ]},
            format="json",
        ))
        params = collect_parameters(request)
        self.assertEqual(params["url"], VS_URL)
        self.assertEqual(params["tx-resource"], [{"resourceType": "ValueSet", "url": "http://x"}])
        self.assertEqual(params["exclude-system"], [CS_URL])

    def test_bad_values(self):
        request = expand_view.cls().initialize_request(self.factory.get("/ValueSet/$expand", {"count": "many"}))
        with self.assertRaises(InvalidRequestError):
            build_expansion_request(request)

        request = expand_view.cls().initialize_request(self.factory.post(
            "/ValueSet/$expand", {"resourceType": "ValueSet"}, format="json"
        ))
        with self.assertRaises(InvalidRequestError):
            collect_parameters(request)


class ExpandViewTests(SimpleTestCase):
    def setUp(self):
        self.factory = APIRequestFactory()
        patcher = patch("terminology.views.expand.get_expansion_service", return_value=services()[0])
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_get_by_url(self):
        response = expand_view(self.factory.get("/ValueSet/$expand", {"url": VS_URL, "count": "2"}))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["expansion"]["total"], 4)
        self.assertEqual([c["code"] for c in response.data["expansion"]["contains"]], ["red", "green"])

    def test_by_id(self):
        response = expand_view(self.factory.get("/ValueSet/colors/$expand"), resource_id="colors")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["url"], VS_URL)

    def test_post_with_accept_language(self):
        response = expand_view(self.factory.post(
            "/ValueSet/$expand",
            {"resourceType": "Parameters", "parameter": [{"name": "url", "valueUri": VS_URL}]},
            format="json",
            HTTP_ACCEPT_LANGUAGE="fr;q=0.9",
        ))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["expansion"]["contains"][0]["display"], "Rouge")

    def test_missing_source_is_bad_request(self):
        response = expand_view(self.factory.get("/ValueSet/$expand"))
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["resourceType"], "OperationOutcome")
        self.assertEqual(response.data["issue"][0]["code"], "invalid")

    def test_tx_resource_in_query_string_is_bad_request(self):
        response = expand_view(self.factory.get("/ValueSet/$expand", {"url": VS_URL, "tx-resource": "abc"}))
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["issue"][0]["code"], "invalid")

    def test_array_body_is_bad_request(self):
        response = expand_view(self.factory.post("/ValueSet/$expand", [{"name": "url"}], format="json"))
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["resourceType"], "OperationOutcome")

    def test_unknown_value_set_is_not_found(self):
        response = expand_view(self.factory.get("/ValueSet/$expand", {"url": "http://example.org/vs/none"}))
        self.assertEqual(response.status_code, 404)

    def test_unexpected_error_is_500(self):
        with patch("terminology.views.expand.get_expansion_service") as mock_service:
            mock_service.return_value.expand.side_effect = RuntimeError("boom")
            response = expand_view(self.factory.get("/ValueSet/$expand", {"url": VS_URL}))
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.data["issue"][0]["details"]["text"], "Internal server error: boom")


class LookupViewTests(SimpleTestCase):
    def setUp(self):
        self.factory = APIRequestFactory()
        patcher = patch("terminology.views.lookup.get_lookup_service", return_value=services()[1])
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_lookup(self):
        response = lookup_view(self.factory.get("/CodeSystem/$lookup", {"system": CS_URL, "code": "green"}))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["resourceType"], "Parameters")

    def test_lookup_unknown_code(self):
        response = lookup_view(self.factory.get("/CodeSystem/$lookup", {"system": CS_URL, "code": "black"}))
        self.assertEqual(response.status_code, 404)

    def test_lookup_with_string_coding(self):
        response = lookup_view(self.factory.post(
            "/CodeSystem/$lookup",
            {"resourceType": "Parameters", "parameter": [{"name": "coding", "valueString": "green"}]},
            format="json",
        ))
        self.assertEqual(response.status_code, 400)

    def test_lookup_without_code(self):
        response = lookup_view(self.factory.get("/CodeSystem/$lookup", {"system": CS_URL}))
        self.assertEqual(response.status_code, 400)


class ValidateCodeViewTests(SimpleTestCase):
    def setUp(self):
        self.factory = APIRequestFactory()
        patcher = patch("terminology.views.validate_code.get_validate_service", return_value=services()[2])
        patcher.start()
        self.addCleanup(patcher.stop)

    def result(self, response):
        return next(p["valueBoolean"] for p in response.data["parameter"] if p["name"] == "result")

    def test_code_system_url_stands_in_for_system(self):
        response = codesystem_validate_code_view(
            self.factory.get("/CodeSystem/$validate-code", {"url": CS_URL, "code": "red"})
        )
        self.assertEqual(response.status_code, 200)
        self.assertTrue(self.result(response))

    def test_code_system_by_id(self):
        response = codesystem_validate_code_view(
            self.factory.get("/CodeSystem/cs-colors-1.0.0/$validate-code", {"code": "black"}),
            resource_id="cs-colors-1.0.0",
        )
        self.assertEqual(response.status_code, 200)
        self.assertFalse(self.result(response))

    def test_value_set_post(self):
        response = valueset_validate_code_view(self.factory.post(
            "/ValueSet/$validate-code",
            {"resourceType": "Parameters", "parameter": [
                {"name": "url", "valueUri": VS_URL},
                {"name": "coding", "valueCoding": {"system": CS_URL, "code": "blue"}},
            ]},
            format="json",
        ))
        self.assertEqual(response.status_code, 200)
        self.assertTrue(self.result(response))

    def test_value_set_parameter_must_be_a_resource(self):
        response = valueset_validate_code_view(
            self.factory.get("/ValueSet/$validate-code", {"valueSet": "colors", "code": "red"})
        )
        self.assertEqual(response.status_code, 400)

    def test_missing_code(self):
        response = valueset_validate_code_view(self.factory.get("/ValueSet/$validate-code", {"url": VS_URL}))
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["issue"][0]["code"], "required")
