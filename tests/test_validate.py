from unittest import TestCase

from terminology_api.exceptions import MissingParameterError, ValueSetNotFoundError
from terminology_api.expansion.service import ValueSetExpansionService
from terminology_api.finder import ResourceFinder
from terminology_api.validate import ValidateCodeService, build_validation_response
from tests.builders import CS_URL, VS_URL, colors_code_system, include, make_store, output_parameter, value_set


def issue_of(response):
    issues = output_parameter(response, "issues")
    return issues["resource"]["issue"][0] if issues else None


def result_of(response):
    return output_parameter(response, "result")["valueBoolean"]


class BuildValidationResponseTests(TestCase):
    def test_parameter_order(self):
        response = build_validation_response(
            False, message="m", display="d", code="c", system="s", version="v",
            issues=[{"severity": "error", "code": "invalid", "details": {"text": "m"}}],
        )
        self.assertEqual(
            [p["name"] for p in response["parameter"]],
            ["result", "message", "display", "code", "system", "version", "issues"],
        )
        self.assertEqual(response["parameter"][-1]["resource"]["resourceType"], "OperationOutcome")

    def test_minimal(self):
        self.assertEqual(build_validation_response(True), {
            "resourceType": "Parameters",
            "parameter": [{"name": "result", "valueBoolean": True}],
        })


class ValidateCodeServiceTests(TestCase):
    def setUp(self):
        store = make_store(
            colors_code_system(language="en"),
            value_set(version="1", includes=[include(CS_URL, concepts=["red", "green"])]),
        )
        finder = ResourceFinder(store)
        self.service = ValidateCodeService(finder, ValueSetExpansionService(store, finder))

    def test_valid_code_in_code_system(self):
        response = self.service.validate_code(code="red", system=CS_URL)
        self.assertTrue(result_of(response))
        self.assertEqual(output_parameter(response, "display")["valueString"], "Red")
        self.assertEqual(output_parameter(response, "version")["valueString"], "1.0.0")

    def test_nested_code_is_found(self):
        self.assertTrue(result_of(self.service.validate_code(code="dark-green", system=CS_URL)))

    def test_unknown_code(self):
        response = self.service.validate_code(code="black", system=CS_URL)
        self.assertFalse(result_of(response))
        self.assertEqual(
            output_parameter(response, "message")["valueString"],
            f"Unknown code 'black' in the CodeSystem '{CS_URL}' version '1.0.0'",
        )
        issue = issue_of(response)
        self.assertEqual(issue["details"]["coding"][0]["code"], "invalid-code")
        self.assertEqual(issue["extension"][0]["valueString"], "Unknown_Code_in_Version")

    def test_wrong_display(self):
        response = self.service.validate_code(code="red", system=CS_URL, display="Scarlet")
        self.assertFalse(result_of(response))
        self.assertEqual(
            output_parameter(response, "message")["valueString"],
            f"Wrong Display Name 'Scarlet' for {CS_URL}#red. Valid display is 'Red'",
        )
        self.assertEqual(issue_of(response)["details"]["coding"][0]["code"], "invalid-display")

    def test_display_in_requested_language(self):
        response = self.service.validate_code(code="red", system=CS_URL, display="Rouge", display_language="fr")
        self.assertTrue(result_of(response))
        self.assertEqual(output_parameter(response, "display")["valueString"], "Rouge")

    def test_unknown_code_system_is_a_soft_failure(self):
        response = self.service.validate_code(code="red", system="http://example.org/none")
        self.assertFalse(result_of(response))
        self.assertEqual(issue_of(response)["code"], "not-found")

    def test_unknown_version_lists_valid_versions(self):
        response = self.service.validate_code(code="red", system=CS_URL, version="9")
        self.assertFalse(result_of(response))
        self.assertIn("Valid versions: 1.0.0", output_parameter(response, "message")["valueString"])

    def test_by_code_system_id(self):
        response = self.service.validate_code(code="blue", resource_id="cs-colors-1.0.0")
        self.assertTrue(result_of(response))
        response = self.service.validate_code(code="blue", resource_id="missing")
        self.assertFalse(result_of(response))

    def test_coding_and_codeable_concept(self):
        self.assertTrue(result_of(self.service.validate_code(coding={"system": CS_URL, "code": "green"})))
        response = self.service.validate_code(codeable_concept={"coding": [
            {"system": CS_URL, "code": "black"},
            {"system": CS_URL, "code": "blue"},
        ]})
        self.assertTrue(result_of(response))
        self.assertEqual(output_parameter(response, "code")["valueCode"], "blue")

    def test_first_failure_is_reported(self):
        response = self.service.validate_code(codeable_concept={"coding": [
            {"system": CS_URL, "code": "black"},
            {"system": CS_URL, "code": "white"},
        ]})
        self.assertFalse(result_of(response))
        self.assertEqual(output_parameter(response, "code")["valueCode"], "black")

    def test_missing_parameters(self):
        with self.assertRaises(MissingParameterError):
            self.service.validate_code(system=CS_URL)
        with self.assertRaises(MissingParameterError):
            self.service.validate_code(code="red")

    def test_value_set_membership(self):
        self.assertTrue(result_of(self.service.validate_code(code="green", system=CS_URL, url=VS_URL)))

        response = self.service.validate_code(code="blue", system=CS_URL, url=VS_URL)
        self.assertFalse(result_of(response))
        self.assertEqual(
            output_parameter(response, "message")["valueString"],
            f"The provided code '{CS_URL}#blue' was not found in the value set '{VS_URL}'",
        )
        self.assertEqual(issue_of(response)["details"]["coding"][0]["code"], "not-in-vs")

    def test_value_set_membership_infers_system(self):
        response = self.service.validate_code(code="red", url=VS_URL)
        self.assertTrue(result_of(response))
        self.assertEqual(output_parameter(response, "system")["valueUri"], CS_URL)

    def test_inline_value_set(self):
        inline = value_set(url="http://example.org/vs/inline", includes=[include(CS_URL, concepts=["blue"])])
        self.assertTrue(result_of(self.service.validate_code(code="blue", system=CS_URL, value_set=inline)))

    def test_unknown_value_set_propagates(self):
        with self.assertRaises(ValueSetNotFoundError):
            self.service.validate_code(code="red", system=CS_URL, url="http://example.org/vs/none")
