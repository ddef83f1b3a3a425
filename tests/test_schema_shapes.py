import unittest

from statusbrief.schema_shapes import (
    ShapeUnrecognized,
    detect_shape,
    first_list,
    first_present,
    get_path,
    is_present,
    safe_get,
)


class TestPathHelpers(unittest.TestCase):
    def test_safe_get_walks_dicts_and_lists(self) -> None:
        document = {"a": {"b": [{"c": 1}, {"c": 2}]}}
        self.assertEqual(safe_get(document, ["a", "b", 1, "c"]), 2)
        self.assertIsNone(safe_get(document, ["a", "b", 5, "c"]))
        self.assertEqual(safe_get(document, ["a", "x"], default="missing"), "missing")
        self.assertIsNone(safe_get("text", ["a"]))

    def test_get_path_reads_digit_segments_as_indexes(self) -> None:
        document = {"events": [{"title": "Standup"}]}
        self.assertEqual(get_path(document, "events.0.title"), "Standup")
        self.assertIsNone(get_path(document, "events.1.title"))

    def test_is_present(self) -> None:
        self.assertFalse(is_present(None))
        self.assertFalse(is_present("   "))
        self.assertTrue(is_present(0))
        self.assertTrue(is_present(False))
        self.assertTrue(is_present("x"))

    def test_first_present_skips_blank_values(self) -> None:
        document = {"location": " ", "city": "Leeds"}
        self.assertEqual(first_present(document, ("location", "city")), "Leeds")
        self.assertIsNone(first_present(document, ("nope",)))
        self.assertEqual(first_present({"steps": 0}, ("steps",)), 0)

    def test_first_list_requires_a_list(self) -> None:
        document = {"events": "none today", "calendarEvents": [{"title": "Gym"}]}
        self.assertEqual(first_list(document, ("events", "calendarEvents")), [{"title": "Gym"}])
        self.assertEqual(first_list(document, ("news",)), [])


class TestDetectShape(unittest.TestCase):
    def test_flat_document(self) -> None:
        variant = detect_shape({"current_temperature_c": 11, "steps_today": 4000})
        self.assertEqual(variant.name, "flat")

    def test_nested_v1_document(self) -> None:
        variant = detect_shape({"weather": {"tempC": 9}, "health": {"steps": 1200}})
        self.assertEqual(variant.name, "nested_v1")

    def test_nested_v2_document(self) -> None:
        document = {
            "weather": {"tempC": 9, "tonight": {"summary": "Clear"}},
            "health": {"sleep": {"durationMinutes": 420}},
        }
        self.assertEqual(detect_shape(document).name, "nested_v2")

    def test_canonical_document(self) -> None:
        document = {
            "meta": {"briefLabel": "Morning brief", "timeOfDay": "morning"},
            "weather": {"tonight": {"summary": "Clear"}},
            "health": {"steps": {}, "sleep": {"durationMinutes": 420}},
            "events": [],
            "news": [],
        }
        self.assertEqual(detect_shape(document).name, "canonical")

    def test_loose_document(self) -> None:
        self.assertEqual(detect_shape({"location": "Leeds", "news": []}).name, "loose")

    def test_unrecognized_documents(self) -> None:
        for document in (None, {}, [], "text", 5, {"unrelated": True}):
            with self.subTest(document=document):
                with self.assertRaises(ShapeUnrecognized):
                    detect_shape(document)


if __name__ == "__main__":
    unittest.main()
