import json

import pytest

from eventcert.shared.certificates_layout import (
    DEFAULT_PARTICIPATION_TEMPLATE,
    LayoutModel,
    Position,
    Size,
    resolve,
    serialize,
)


def test_empty_config_resolves_to_defaults():
    layout = resolve({})
    assert layout == LayoutModel()
    assert (layout.width, layout.height) == (2000.0, 1200.0)
    assert layout.border.color == "#1e40af"
    assert layout.title.text == "CERTIFICATE"
    assert layout.title.position == Position(50.0, 28.0)
    assert layout.name.font_family.startswith("MonteCarlo")
    assert layout.name.font_size == 48.0
    assert layout.participation.template == DEFAULT_PARTICIPATION_TEMPLATE
    assert layout.presented_to.position == Position(50.0, 38.0)
    assert layout.qr.enabled is False
    assert layout.signatures == ()


@pytest.mark.parametrize(
    "raw",
    [None, [], "nope", 42, {"width": "wide"}, {"width": 10**400}, {"height": "1e400"}],
)
def test_resolve_never_raises(raw):
    layout = resolve(raw)
    assert isinstance(layout, LayoutModel)


def test_out_of_range_numbers_fall_back_to_defaults():
    layout = resolve({"width": 10**400, "height": "1e400", "border_width": -(10**400)})
    assert (layout.width, layout.height) == (2000.0, 1200.0)
    assert layout.border.width == 5.0


def test_malformed_fields_fall_back_individually():
    layout = resolve(
        {
            "width": -5,
            "height": float("nan"),
            "border_color": "blue",
            "border_width": True,
            "title_font_size": "0",
            "title_position": {"x": 10, "y": "abc"},
            "name_config": {"font_weight": "heavy", "color": "#ABC"},
            "qr_code_enabled": "yes",
        }
    )
    assert layout.width == 100.0
    assert layout.height == 1200.0
    assert layout.border.color == "#1e40af"
    assert layout.border.width == 5.0
    assert layout.title.font_size == 56.0
    assert layout.title.position == Position(10.0, 28.0)
    assert layout.name.font_weight == "bold"
    assert layout.name.color == "#aabbcc"
    assert layout.qr.enabled is False


def test_positions_are_clamped_to_canvas_percentages():
    layout = resolve({"cert_id_position": {"x": 140, "y": -3}})
    assert layout.certificate_id.position == Position(100.0, 0.0)


def test_header_lines_are_independent():
    layout = resolve(
        {
            "header_config": {
                "university_text": "Example University",
                "university_config": {"font_size": 30, "position": {"y": 12}},
            }
        }
    )
    assert layout.header.sub_unit.text == "Example University"
    assert layout.header.sub_unit.font_size == 30.0
    assert layout.header.sub_unit.position == Position(50.0, 12.0)
    assert layout.header.sub_unit.font_weight == "bold"
    assert layout.header.organization.text == ""
    assert layout.header.location.position == Position(50.0, 14.0)


def test_logos_skip_entries_without_url_and_accept_legacy_logo():
    layout = resolve(
        {
            "logo_config": {
                "logos": [{"url": ""}, {"size": {"width": 10}}, "junk"],
                "psu_logo_url": "https://cdn.example.com/seal.png",
                "sponsor_logos": ["https://cdn.example.com/a.png", {"url": "b.png"}, 7],
            }
        }
    )
    assert len(layout.logos.logos) == 1
    assert layout.logos.logos[0].url == "https://cdn.example.com/seal.png"
    assert layout.logos.logos[0].size == Size(120.0, 120.0)
    assert layout.logos.sponsor_logos == ("https://cdn.example.com/a.png", "b.png")


def test_signature_defaults_fill_missing_fields():
    layout = resolve(
        {"signature_blocks": [{"name": "Dr. Reyes", "position": "Dean"}, None]}
    )
    (sig,) = layout.signatures
    assert sig.name == "Dr. Reyes"
    assert sig.title == "Dean"
    assert sig.position == Position(50.0, 92.0)
    assert sig.image_size == Size(300.0, 100.0)
    assert sig.image_url is None


def test_cert_id_prefix_is_trimmed():
    assert resolve({"cert_id_prefix": "  PSU  "}).certificate_id.prefix == "PSU"


def test_round_trip_of_defaults():
    layout = resolve({})
    assert resolve(serialize(layout)) == layout


def test_round_trip_through_json_of_rich_layout():
    layout = resolve(
        {
            "width": 1600,
            "height": 900,
            "background_image_url": "bg.png",
            "title_text": "AWARD",
            "title_subtitle": "",
            "name_config": {"separator_enabled": False, "font_family": "Georgia"},
            "participation_text_config": {
                "text_template": "Line one {EVENT_NAME}\nLine two {VENUE}",
                "line_height": 2,
            },
            "header_config": {"location_text": "Somewhere"},
            "logo_config": {
                "logos": [{"url": "a.png", "position": {"x": 5, "y": 5}}],
                "sponsor_logos": ["s1.png", "s2.png"],
                "sponsor_logo_spacing": 4,
            },
            "signature_blocks": [
                {"name": "A", "signature_image_url": "sig.png", "position_config": {"x": 25}},
                {"name": "B", "position": "Chair", "position_config": {"x": 75}},
            ],
            "cert_id_prefix": "EVT",
            "qr_code_enabled": True,
            "qr_code_size": 90,
        }
    )
    stored = json.loads(json.dumps(serialize(layout)))
    assert resolve(stored) == layout


def test_image_urls_and_font_families_are_deduplicated():
    layout = resolve(
        {
            "background_image_url": "bg.png",
            "logo_config": {"logos": [{"url": "bg.png"}], "sponsor_logos": ["s.png"]},
        }
    )
    assert layout.image_urls() == ("bg.png", "s.png")
    families = layout.font_families()
    assert len(families) == len(set(families))
    assert ("MonteCarlo, cursive", True) in families
