"""Unit tests for services.templates_service.

Tests cover:
- normalize_template never fails and always yields a complete template
- clamping and coercion of numbers, colors, enums and booleans
- legacy key mapping
- idempotence
- unknown placeholder detection
- effective template lookup and saving through a TemplateStore
"""

import pytest

from schemas import CertificateTemplate
from services.templates_service import (
    find_unknown_placeholders,
    get_effective_template,
    normalize_template,
    save_template,
)
from tests.fakes import InMemoryTemplateStore

DEFAULTS = CertificateTemplate()


@pytest.mark.unit
class TestNormalizeTemplateTotality:
    @pytest.mark.parametrize(
        "raw",
        [None, {}, "", "not json", "[1, 2]", 42, ["title"]],
    )
    def test_garbage_input_yields_defaults(self, raw):
        assert normalize_template(raw) == DEFAULTS

    def test_json_string_is_parsed(self):
        template = normalize_template('{"title": "PIAGAM"}')
        assert template.title == "PIAGAM"

    def test_existing_template_is_returned_unchanged(self):
        template = CertificateTemplate(title="SERTIFIKAT")
        assert normalize_template(template) is template

    def test_null_values_take_defaults(self):
        template = normalize_template({"title": None, "titleFontSize": None})
        assert template.title == DEFAULTS.title
        assert template.title_font_size == DEFAULTS.title_font_size

    def test_unknown_keys_are_ignored(self):
        template = normalize_template({"favouriteColour": "blue", "title": "X"})
        assert template.title == "X"

    def test_snake_case_keys_are_accepted(self):
        template = normalize_template({"title_font_size": 40, "layout_style": "modern"})
        assert template.title_font_size == 40
        assert template.layout_style == "modern"


@pytest.mark.unit
class TestNormalizeNumbers:
    def test_clamps_above_range(self):
        assert normalize_template({"titleFontSize": 500}).title_font_size == 96

    def test_clamps_below_range(self):
        assert normalize_template({"titleFontSize": 1}).title_font_size == 32

    def test_numeric_string_is_coerced(self):
        assert normalize_template({"nameFontSize": "60"}).name_font_size == 60

    def test_float_is_rounded(self):
        assert normalize_template({"bodyFontSize": 14.6}).body_font_size == 15

    @pytest.mark.parametrize("value", [True, "big", float("nan"), float("inf"), {}])
    def test_non_numbers_take_default(self, value):
        template = normalize_template({"borderWidth": value})
        assert template.border_width == DEFAULTS.border_width

    def test_spacing_allows_zero(self):
        assert normalize_template({"titleSpacing": 0}).title_spacing == 0


@pytest.mark.unit
class TestNormalizeColorsAndEnums:
    def test_hex_color_is_lowercased(self):
        template = normalize_template({"primaryColor": "#ABCDEF"})
        assert template.primary_color == "#abcdef"

    @pytest.mark.parametrize(
        "value", ["#fff", "#11223344", "rgb(1, 2, 3)", "rgba(0,0,0,0.5)"]
    )
    def test_valid_color_forms_are_kept(self, value):
        assert normalize_template({"accentColor": value}).accent_color == value

    @pytest.mark.parametrize("value", ["red", "#12", "javascript:alert(1)", 123])
    def test_invalid_color_takes_default(self, value):
        template = normalize_template({"backgroundColor": value})
        assert template.background_color == DEFAULTS.background_color

    def test_enum_is_case_insensitive(self):
        assert normalize_template({"borderStyle": "DOUBLE"}).border_style == "double"

    def test_unknown_enum_takes_default(self):
        template = normalize_template({"borderStyle": "wavy", "logoPosition": "left"})
        assert template.border_style == DEFAULTS.border_style
        assert template.logo_position == DEFAULTS.logo_position

    @pytest.mark.parametrize(
        ("value", "expected"),
        [("false", False), ("true", True), (0, False), (1, True), ("maybe", True)],
    )
    def test_boolean_coercion(self, value, expected):
        template = normalize_template({"showCornerOrnaments": value})
        assert template.show_corner_ornaments is expected


@pytest.mark.unit
class TestNormalizeText:
    def test_blank_title_takes_default(self):
        assert normalize_template({"title": "   "}).title == DEFAULTS.title

    def test_blank_subtitle_is_kept(self):
        assert normalize_template({"subtitle": "  "}).subtitle == ""

    def test_text_is_stripped(self):
        template = normalize_template({"signatureText": "  Ketua Panitia "})
        assert template.signature_text == "Ketua Panitia"

    def test_non_string_text_takes_default(self):
        template = normalize_template({"footerText": 12})
        assert template.footer_text == DEFAULTS.footer_text

    def test_xml_illegal_control_characters_are_removed(self):
        template = normalize_template(
            {
                "title": "SERTI\x01FIKAT\x0b",
                "bodyContent": "baris satu\nbaris\tdua\x1f",
            }
        )
        assert template.title == "SERTIFIKAT"
        assert template.body_content == "baris satu\nbaris\tdua"

    def test_control_characters_only_takes_default(self):
        assert normalize_template({"title": "\x01\x02 "}).title == DEFAULTS.title


@pytest.mark.unit
class TestLegacyKeys:
    def test_legacy_keys_map_to_current_fields(self):
        template = normalize_template(
            {
                "content": "Isi lama",
                "footer": "Kaki lama",
                "contentFontSize": 20,
                "templateType": "participation",
            }
        )
        assert template.body_content == "Isi lama"
        assert template.footer_text == "Kaki lama"
        assert template.body_font_size == 20
        assert template.certificate_type == "participation"

    def test_current_key_wins_over_legacy(self):
        template = normalize_template({"content": "old", "bodyContent": "new"})
        assert template.body_content == "new"


@pytest.mark.unit
class TestIdempotence:
    @pytest.mark.parametrize(
        "raw",
        [
            {},
            {"titleFontSize": 500, "primaryColor": "#ABC", "borderStyle": "SIMPLE"},
            {"content": "legacy", "subtitle": "", "showSeal": "true"},
        ],
    )
    def test_normalizing_twice_changes_nothing(self, raw):
        once = normalize_template(raw)
        assert normalize_template(once.to_wire()) == once

    def test_wire_form_uses_camel_case(self):
        wire = normalize_template({}).to_wire()
        assert "titleFontSize" in wire
        assert "title_font_size" not in wire


@pytest.mark.unit
class TestFindUnknownPlaceholders:
    def test_reports_unknown_tokens_sorted(self):
        template = normalize_template(
            {"title": "[NAMA_PESERTA] [ZEBRA]", "bodyContent": "[ALPHA] [NAMA_EVENT]"}
        )
        assert find_unknown_placeholders(template) == ["ALPHA", "ZEBRA"]

    def test_defaults_have_no_unknown_tokens(self):
        assert find_unknown_placeholders(DEFAULTS) == []


@pytest.mark.unit
class TestTemplateStoreIntegration:
    async def test_builtin_defaults_when_nothing_stored(self):
        store = InMemoryTemplateStore()
        assert await get_effective_template(store, 7) == DEFAULTS

    async def test_event_override_wins_over_default(self):
        store = InMemoryTemplateStore()
        await save_template(store, {"title": "DEFAULT"}, None)
        await save_template(store, {"title": "EVENT 7"}, 7)

        assert (await get_effective_template(store, 7)).title == "EVENT 7"
        assert (await get_effective_template(store, 8)).title == "DEFAULT"

    async def test_save_stores_normalized_wire_form(self):
        store = InMemoryTemplateStore()
        await save_template(store, {"titleFontSize": 500}, None)

        stored = store.templates[None]
        assert stored["titleFontSize"] == 96
        assert set(stored) == set(DEFAULTS.to_wire())
