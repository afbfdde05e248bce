import math
import unittest

from lightdesk_errors import MalformedInputError
from lightdesk_fields import (
    FIELD_CHOICE,
    FIELD_JSON,
    FIELD_NUMBER,
    FIELD_TEXT,
    FIELD_TOGGLE,
    is_invalid_number,
    render_field,
)
from lightdesk_schema import ParameterSchema


def _param(data_type, **kwargs):
    return ParameterSchema(name="value", display_name="Value", data_type=data_type, **kwargs)


class FieldRoundTripTests(unittest.TestCase):
    def test_untouched_fields_extract_the_value_they_were_rendered_with(self):
        cases = [
            ("string", "hello"),
            ("integer", 42),
            ("integer", -3),
            ("integer", 12345678901234567891),
            ("float", 0.5),
            ("float", 2.0),
            ("boolean", True),
            ("boolean", False),
            ("object", {"a": [1, 2], "b": None}),
            ("object", []),
        ]
        for data_type, value in cases:
            with self.subTest(data_type=data_type, value=value):
                extracted = render_field(_param(data_type), value).extract_value()
                self.assertEqual(extracted, value)
                self.assertIs(type(extracted), type(value))

    def test_integer_field_keeps_integer_type(self):
        item = render_field(_param("integer"), 7)
        self.assertEqual(item.kind, FIELD_NUMBER)
        self.assertEqual(item.raw, "7")
        self.assertIsInstance(item.extract_value(), int)

    def test_float_field_reads_back_as_float(self):
        item = render_field(_param("float"), 3.0)
        self.assertEqual(item.raw, "3.0")
        self.assertIsInstance(item.extract_value(), float)

    def test_widget_kinds_follow_data_type(self):
        self.assertEqual(render_field(_param("string"), "").kind, FIELD_TEXT)
        self.assertEqual(render_field(_param("boolean"), False).kind, FIELD_TOGGLE)
        self.assertEqual(render_field(_param("object"), {}).kind, FIELD_JSON)
        self.assertEqual(render_field(_param("string", options=("RGB", "RGBW")), "RGB").kind, FIELD_CHOICE)

    def test_unknown_data_type_falls_back_to_json(self):
        item = render_field(_param("mystery"), {"x": 1})
        self.assertEqual(item.kind, FIELD_JSON)
        self.assertEqual(item.extract_value(), {"x": 1})

    def test_none_value_renders_empty(self):
        self.assertEqual(render_field(_param("string"), None).raw, "")
        self.assertEqual(render_field(_param("integer"), None).raw, "")


class FieldExtractionTests(unittest.TestCase):
    def test_non_numeric_text_yields_nan(self):
        item = render_field(_param("float"), 1.0)
        item.raw = "fast"
        value = item.extract_value()
        self.assertTrue(math.isnan(value))
        self.assertTrue(is_invalid_number(value))

    def test_empty_numeric_text_yields_nan(self):
        item = render_field(_param("integer"), None)
        self.assertTrue(is_invalid_number(item.extract_value()))

    def test_fractional_text_in_integer_field_yields_nan(self):
        item = render_field(_param("integer"), 1)
        item.raw = "2.5"
        self.assertTrue(is_invalid_number(item.extract_value()))

    def test_integral_text_in_integer_field_is_accepted(self):
        item = render_field(_param("integer"), 1)
        item.raw = " 4.0 "
        self.assertEqual(item.extract_value(), 4)

    def test_malformed_json_is_rejected(self):
        item = render_field(_param("object"), {"a": 1})
        item.raw = "{not json"
        with self.assertRaises(MalformedInputError) as ctx:
            item.extract_value()
        self.assertIn("Value", str(ctx.exception))

    def test_non_finite_json_constants_are_rejected(self):
        item = render_field(_param("object"), {"a": 1})
        for raw in ("NaN", "[NaN, {\"x\": Infinity}]", "{\"level\": -Infinity}"):
            with self.subTest(raw=raw):
                item.raw = raw
                with self.assertRaises(MalformedInputError):
                    item.extract_value()

    def test_large_integer_text_keeps_exact_value(self):
        item = render_field(_param("integer"), 0)
        item.raw = "9007199254740993"
        self.assertEqual(item.extract_value(), 9007199254740993)

    def test_toggle_reads_checked_state(self):
        item = render_field(_param("boolean"), False)
        item.checked = True
        self.assertIs(item.extract_value(), True)

    def test_choice_returns_selected_string(self):
        item = render_field(_param("string", options=("RGB", "RGBW")), "RGB")
        item.raw = "RGBW"
        self.assertEqual(item.extract_value(), "RGBW")


class BoundsWarningTests(unittest.TestCase):
    def test_bounds_are_soft(self):
        item = render_field(_param("integer", minimum=1.0, maximum=10.0), 5)
        self.assertIsNone(item.bounds_warning(5))
        self.assertEqual(item.bounds_warning(0), "below minimum 1.0")
        self.assertEqual(item.bounds_warning(11), "above maximum 10.0")

    def test_no_warning_for_non_numeric_fields(self):
        item = render_field(_param("string"), "x")
        self.assertIsNone(item.bounds_warning("x"))


if __name__ == "__main__":
    unittest.main()
