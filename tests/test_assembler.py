from unittest import TestCase

from terminology_api.classes import ContainsEntry, ValueSet
from terminology_api.constants import EXT_EXPANSION_PARAMETER, EXT_EXPANSION_PROPERTY
from terminology_api.exceptions import InvalidRequestError
from terminology_api.expansion.assembler import (
    ExpansionAssembler,
    compose_display_language,
    page,
    sort_parameters,
)
from terminology_api.finder import ResourceFinder
from terminology_api.request import ExpansionContext, ExpansionRequest
from tests.builders import CS_URL, code_system, colors_code_system, include, make_store, value_set


def declarations(expansion):
    result = {}
    for ext in expansion.get("extension", []):
        if ext["url"] != EXT_EXPANSION_PROPERTY:
            continue
        parts = {sub["url"]: sub for sub in ext["extension"]}
        result[parts["code"]["valueCode"]] = parts["uri"]["valueUri"]
    return result


class SortParametersTests(TestCase):
    def test_echoed_then_generated_then_unknown(self):
        params = [
            {"name": "used-valueset", "valueUri": "x"},
            {"name": "used-codesystem", "valueUri": "a"},
            {"name": "warning-draft", "valueUri": "a"},
            {"name": "count", "valueInteger": 5},
            {"name": "used-codesystem", "valueUri": "b"},
            {"name": "displayLanguage", "valueCode": "fr"},
        ]
        self.assertEqual(
            [(p["name"], next(v for k, v in p.items() if k != "name")) for p in sort_parameters(params)],
            [
                ("displayLanguage", "fr"),
                ("count", 5),
                ("used-codesystem", "a"),
                ("used-codesystem", "b"),
                ("warning-draft", "a"),
                ("used-valueset", "x"),
            ],
        )


class PageTests(TestCase):
    def test_page(self):
        items = list(range(10))
        self.assertEqual(page(items, None, None), items)
        self.assertEqual(page(items, 2, 3), [2, 3, 4])
        self.assertEqual(page(items, 8, 5), [8, 9])
        self.assertEqual(page(items, 10, 5), [])
        self.assertEqual(page(items, 3, 0), items[3:])

    def test_negative_offset(self):
        with self.assertRaises(InvalidRequestError):
            page([1], -1, None)


class ComposeDisplayLanguageTests(TestCase):
    def test_from_compose_extension(self):
        vs = ValueSet.from_dict(value_set(includes=[include(CS_URL)]))
        self.assertIsNone(compose_display_language(vs))

        data = value_set(includes=[include(CS_URL)])
        data["compose"]["extension"] = [{
            "url": EXT_EXPANSION_PARAMETER,
            "extension": [
                {"url": "name", "valueCode": "displayLanguage"},
                {"url": "value", "valueCode": "de"},
            ],
        }]
        self.assertEqual(compose_display_language(ValueSet.from_dict(data)), "de")


class BuildExpansionTests(TestCase):
    def setUp(self):
        self.store = make_store(colors_code_system(property=[
            {"code": "status", "uri": "http://example.org/props#status", "type": "code"},
        ]))
        self.assembler = ExpansionAssembler(ResourceFinder(self.store))
        self.source = ValueSet.from_dict(value_set(includes=[include(CS_URL)]))

    def entries(self, *codes):
        return [ContainsEntry(system=CS_URL, code=code, version="1.0.0") for code in codes]

    def build(self, entries, **request_args):
        context = ExpansionContext(ExpansionRequest(**request_args))
        context.record_used_version(CS_URL, "1.0.0")
        return self.assembler.build_expansion(self.source, entries, context), context

    def test_shape(self):
        expansion, _ = self.build(self.entries("red", "green"))
        self.assertTrue(expansion["identifier"].startswith("urn:uuid:"))
        self.assertRegex(expansion["timestamp"], r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\+00:00$")
        self.assertEqual(expansion["total"], 2)
        self.assertNotIn("offset", expansion)
        self.assertNotIn("parameter", expansion)
        self.assertEqual(expansion["contains"], [
            {"system": CS_URL, "code": "red"},
            {"system": CS_URL, "code": "green"},
        ])

    def test_paging_keeps_total(self):
        expansion, _ = self.build(self.entries("a", "b", "c", "d"), offset=1, count=2)
        self.assertEqual(expansion["total"], 4)
        self.assertEqual(expansion["offset"], 1)
        self.assertEqual([c["code"] for c in expansion["contains"]], ["b", "c"])

    def test_empty_page_drops_contains(self):
        expansion, _ = self.build(self.entries("a"), offset=5)
        self.assertNotIn("contains", expansion)
        self.assertEqual(expansion["total"], 1)

    def test_versions_kept_when_a_system_is_used_twice(self):
        context = ExpansionContext(ExpansionRequest())
        context.record_used_version(CS_URL, "1.0.0")
        context.record_used_version(CS_URL, "2.0.0")
        entries = [
            ContainsEntry(system=CS_URL, code="a", version="1.0.0"),
            ContainsEntry(system=CS_URL, code="a", version="2.0.0"),
        ]
        expansion = self.assembler.build_expansion(self.source, entries, context)
        self.assertEqual([c["version"] for c in expansion["contains"]], ["1.0.0", "2.0.0"])

    def test_echoed_parameters(self):
        expansion, _ = self.build(
            [],
            active_only=True,
            display_language="fr",
            count=10,
            offset=0,
            filter="gr",
            properties=["status"],
            exclude_system=["http://example.org/other"],
            force_system_version=[f"{CS_URL}|1.0.0"],
            check_system_version=[f"{CS_URL}|1.x"],
            url="http://example.org/vs",
            http_method="GET",
        )
        self.assertEqual(expansion["parameter"], [
            {"name": "activeOnly", "valueBoolean": True},
            {"name": "displayLanguage", "valueCode": "fr"},
            {"name": "exclude-system", "valueCanonical": "http://example.org/other"},
            {"name": "force-system-version", "valueUri": f"{CS_URL}|1.0.0"},
            {"name": "count", "valueInteger": 10},
            {"name": "offset", "valueInteger": 0},
            {"name": "property", "valueCode": "status"},
            {"name": "filter", "valueString": "gr"},
            {"name": "url", "valueUri": "http://example.org/vs"},
        ])

    def test_url_not_echoed_for_post(self):
        expansion, _ = self.build([], url="http://example.org/vs", http_method="POST")
        self.assertNotIn("parameter", expansion)

    def test_system_version_echoed_only_when_it_decided(self):
        request = ExpansionRequest(system_version=[f"{CS_URL}|1.0.0", "http://example.org/unused|2"])
        context = ExpansionContext(request)
        context.record_used_version(CS_URL, "1.0.0", "system-version", f"{CS_URL}|1.0.0")
        expansion = self.assembler.build_expansion(self.source, [], context)
        self.assertEqual(expansion["parameter"], [{"name": "system-version", "valueUri": f"{CS_URL}|1.0.0"}])

    def test_display_language_falls_back_to_value_set_language(self):
        self.source.language = "de"
        expansion, _ = self.build([])
        self.assertEqual(expansion["parameter"], [{"name": "displayLanguage", "valueCode": "de"}])

    def test_property_declarations(self):
        entry = ContainsEntry(system=CS_URL, code="red", extensions=[{
            "url": "http://hl7.org/fhir/5.0/StructureDefinition/extension-ValueSet.expansion.contains.property",
            "extension": [{"url": "code", "valueCode": "weight"}, {"url": "value", "valueDecimal": 1}],
        }])
        expansion, _ = self.build([entry], properties=["status", "custom"])
        self.assertEqual(declarations(expansion), {
            "custom": f"{CS_URL}#custom",
            "weight": "http://hl7.org/fhir/concept-properties#itemWeight",
        })

    def test_declared_property_uri_is_used_for_observed_codes(self):
        entry = ContainsEntry(system=CS_URL, code="green", extensions=[{
            "url": "http://hl7.org/fhir/5.0/StructureDefinition/extension-ValueSet.expansion.contains.property",
            "extension": [{"url": "code", "valueCode": "status"}, {"url": "value", "valueCode": "active"}],
        }])
        expansion, _ = self.build([entry], properties=["status"])
        self.assertEqual(declarations(expansion), {"status": "http://example.org/props#status"})

    def test_unknown_system_has_no_declared_uris(self):
        source = ValueSet.from_dict(value_set(includes=[include("http://example.org/missing")]))
        context = ExpansionContext(ExpansionRequest(properties=["definition"]))
        expansion = ExpansionAssembler(ResourceFinder(make_store(code_system()))).build_expansion(source, [], context)
        self.assertEqual(declarations(expansion), {"definition": "http://hl7.org/fhir/concept-properties#definition"})
