import logging

import httpx
import pytest

from conftest import png_bytes, png_data_uri
from eventcert.shared import certificate_assets
from eventcert.shared.certificate_assets import (
    AssetResolver,
    FontSource,
    primary_family,
    standard_face,
)
from eventcert.shared.certificates_layout import resolve

LOGO_URL = "https://cdn.example.com/logo.png"


@pytest.mark.parametrize(
    "family,bold,expected",
    [
        ("Libre Baskerville, serif", False, "Times-Roman"),
        ("Playfair Display", True, "Times-Bold"),
        ("Courier New, monospace", False, "Courier"),
        ("JetBrains Mono", True, "Courier-Bold"),
        ("Arial, sans-serif", False, "Helvetica"),
        ("MonteCarlo, cursive", True, "Helvetica-Bold"),
        ("", False, "Helvetica"),
    ],
)
def test_standard_face_mapping(family, bold, expected):
    assert standard_face(family, bold) == expected


def test_primary_family_strips_quotes_and_fallbacks():
    assert primary_family("'MonteCarlo', cursive") == "montecarlo"


def test_data_uri_image_resolves(assets_dir):
    resolver = AssetResolver(assets_dir=str(assets_dir))
    handle = resolver.resolve_image(png_data_uri(size=(30, 12)))
    assert handle is not None
    assert (handle.width, handle.height) == (30, 12)


def test_local_image_inside_assets_dir(assets_dir):
    (assets_dir / "seal.png").write_bytes(png_bytes())
    resolver = AssetResolver(assets_dir=str(assets_dir))
    assert resolver.resolve_image("seal.png") is not None
    assert resolver.resolve_image("/seal.png") is not None


def test_local_image_outside_assets_dir_is_refused(assets_dir, tmp_path):
    (tmp_path / "secret.png").write_bytes(png_bytes())
    resolver = AssetResolver(assets_dir=str(assets_dir))
    assert resolver.resolve_image("../secret.png") is None
    assert any("outside assets directory" in w for w in resolver.warnings)


def test_remote_image_fetched_once_per_pass(respx_mock, assets_dir):
    route = respx_mock.get(LOGO_URL).mock(
        return_value=httpx.Response(200, content=png_bytes())
    )
    layout = resolve(
        {"logo_config": {"logos": [{"url": LOGO_URL}], "sponsor_logos": [LOGO_URL]}}
    )
    resolver = AssetResolver(assets_dir=str(assets_dir))
    assets = resolver.prefetch(layout)

    first = assets.image(LOGO_URL)
    assert first is not None
    assert resolver.resolve_image(LOGO_URL) is first
    assert route.call_count == 1


def test_fresh_resolver_fetches_again(respx_mock, assets_dir):
    route = respx_mock.get(LOGO_URL).mock(
        return_value=httpx.Response(200, content=png_bytes())
    )
    AssetResolver(assets_dir=str(assets_dir)).resolve_image(LOGO_URL)
    AssetResolver(assets_dir=str(assets_dir)).resolve_image(LOGO_URL)
    assert route.call_count == 2


def test_http_error_degrades_to_none(respx_mock, assets_dir, caplog):
    respx_mock.get(LOGO_URL).mock(return_value=httpx.Response(404))
    resolver = AssetResolver(assets_dir=str(assets_dir))
    with caplog.at_level(logging.WARNING, logger="eventcert.assets"):
        assert resolver.resolve_image(LOGO_URL) is None
    assert "[CERT-ASSET]" in caplog.text
    assert "HTTP 404" in caplog.text
    assert resolver.warnings


def test_connection_error_degrades_to_none(respx_mock, assets_dir):
    respx_mock.get(LOGO_URL).mock(side_effect=httpx.ConnectError("refused"))
    resolver = AssetResolver(assets_dir=str(assets_dir))
    assert resolver.resolve_image(LOGO_URL) is None


def test_undecodable_image_degrades_to_none(respx_mock, assets_dir):
    respx_mock.get(LOGO_URL).mock(
        return_value=httpx.Response(200, content=b"definitely not a png")
    )
    resolver = AssetResolver(assets_dir=str(assets_dir))
    assert resolver.resolve_image(LOGO_URL) is None
    assert any("decode failed" in w for w in resolver.warnings)


def test_standard_family_needs_no_fetch(assets_dir):
    resolver = AssetResolver(assets_dir=str(assets_dir))
    handle = resolver.resolve_font("Libre Baskerville, serif", bold=True)
    assert handle.pdf_name == "Times-Bold"
    assert not handle.degraded
    assert handle.pdf_width("Example", 20) > 0
    assert resolver.warnings == []


def test_decorative_font_falls_back_to_bold_face(assets_dir, caplog):
    resolver = AssetResolver(assets_dir=str(assets_dir))
    with caplog.at_level(logging.WARNING, logger="eventcert.assets"):
        handle = resolver.resolve_font("MonteCarlo, cursive", bold=True)
    assert handle.degraded
    assert handle.pdf_name == "Helvetica-Bold"
    assert "[CERT-FONT] MonteCarlo, cursive→Helvetica-Bold" in caplog.text
    assert handle.raster_font(24).getlength("Ana") > 0


def test_decorative_font_uses_explicit_fallback_chain(assets_dir):
    resolver = AssetResolver(assets_dir=str(assets_dir))
    handle = resolver.resolve_font("MonteCarlo", fallback_chain=["Times-Bold"])
    assert handle.pdf_name == "Times-Bold"


def test_decorative_font_tries_mirrors_in_order(respx_mock, assets_dir, dejavu_bytes, monkeypatch):
    first = "https://fonts.example.com/TestScript.ttf"
    second = "https://mirror.example.com/TestScript.ttf"
    monkeypatch.setitem(
        certificate_assets.DECORATIVE_FONTS,
        "testscript",
        FontSource("TestScript", "fonts/TestScript-Regular.ttf", (first, second)),
    )
    down = respx_mock.get(first).mock(return_value=httpx.Response(503))
    up = respx_mock.get(second).mock(return_value=httpx.Response(200, content=dejavu_bytes))

    resolver = AssetResolver(assets_dir=str(assets_dir))
    handle = resolver.resolve_font("TestScript, cursive")
    bold = resolver.resolve_font("TestScript, cursive", bold=True)

    assert handle.pdf_name == "TestScript"
    assert not handle.degraded
    assert bold.pdf_name == "TestScript"
    assert handle.pdf_width("Ana Cruz", 48) > 0
    assert handle.raster_font(48).getlength("Ana Cruz") > 0
    assert down.call_count == 1
    assert up.call_count == 1


def test_bundled_decorative_font_wins_over_network(assets_dir, dejavu_bytes, monkeypatch):
    monkeypatch.setitem(
        certificate_assets.DECORATIVE_FONTS,
        "bundledscript",
        FontSource(
            "BundledScript",
            "fonts/BundledScript-Regular.ttf",
            ("https://unreachable.invalid/BundledScript.ttf",),
        ),
    )
    (assets_dir / "fonts" / "BundledScript-Regular.ttf").write_bytes(dejavu_bytes)
    resolver = AssetResolver(assets_dir=str(assets_dir))
    handle = resolver.resolve_font("BundledScript")
    assert handle.pdf_name == "BundledScript"
    assert not handle.degraded


def test_prefetch_marks_assets_ready(assets_dir):
    resolver = AssetResolver(assets_dir=str(assets_dir))
    assets = resolver.prefetch(resolve({}))
    assert assets.ready
    assert assets.font("MonteCarlo, cursive", True).pdf_name == "Helvetica-Bold"
    assert any("montecarlo" in w for w in assets.warnings)
