from unittest import TestCase

from terminology_api.language import LanguagePreference, first_language_tag, parse_language_preferences


class ParseLanguagePreferencesTests(TestCase):
    def test_empty_values_give_no_preferences(self):
        self.assertEqual(parse_language_preferences(None), [])
        self.assertEqual(parse_language_preferences("  "), [])

    def test_single_language_defaults_to_full_quality(self):
        self.assertEqual(parse_language_preferences("fr"), [LanguagePreference("fr", 1.0)])

    def test_sorted_by_quality_descending(self):
        preferences = parse_language_preferences("en;q=0.5, fr-CA, de;q=0.8")
        self.assertEqual([p.language for p in preferences], ["fr-CA", "de", "en"])

    def test_ties_keep_original_order(self):
        preferences = parse_language_preferences("nl;q=0.7, es;q=0.7, it")
        self.assertEqual([p.language for p in preferences], ["it", "nl", "es"])

    def test_invalid_quality_keeps_default(self):
        preferences = parse_language_preferences("fr;q=abc")
        self.assertEqual(preferences[0].quality, 1.0)

    def test_wildcard(self):
        preferences = parse_language_preferences("fr, *;q=0")
        self.assertTrue(preferences[-1].is_wildcard)
        self.assertEqual(preferences[-1].quality, 0.0)
        self.assertFalse(preferences[0].is_wildcard)


class FirstLanguageTagTests(TestCase):
    def test_first_tag_without_parameters(self):
        self.assertEqual(first_language_tag("de-CH;q=0.9, en"), "de-CH")

    def test_missing_header(self):
        self.assertIsNone(first_language_tag(None))
        self.assertIsNone(first_language_tag(""))
