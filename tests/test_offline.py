import pytest

from hearth import Category, EngineConfig, synthesize_offline_response
from hearth._offline import parse_document_identifier, render_content_document_page, render_generic_page


@pytest.fixture()
def config() -> EngineConfig:
    return EngineConfig(origin="https://example.com", version="1", home_path="/start", listing_path="/units/")


@pytest.mark.parametrize(
    "url, identifier",
    [
        ("https://example.com/units/unit-7.html", "7"),
        ("https://example.com/units/unit-12.html?print=1", "12"),
        ("https://example.com/chapters/4/intro", "4"),
        ("https://example.com/units/intro.html", "?"),
    ],
)
def test_parse_document_identifier(config: EngineConfig, url: str, identifier: str):
    assert parse_document_identifier(url, config) == identifier


def test_custom_pattern_capture_group():
    config = EngineConfig(
        origin="https://example.com",
        version="1",
        content_document_patterns=[r"/lessons/(?P<slug>[a-z-]+)$"],
    )

    assert parse_document_identifier("https://example.com/lessons/getting-started", config) == "getting-started"


@pytest.mark.anyio
async def test_content_document_page(config: EngineConfig):
    response = synthesize_offline_response(Category.CONTENT_DOCUMENT, config, "7")

    body = (await response.aread()).decode("utf-8")

    assert response.status_code == 200
    assert response.headers["Content-Type"] == "text/html"
    assert response.headers["Cache-Control"] == "no-cache"
    assert response.headers["Content-Length"] == str(len(body.encode("utf-8")))
    assert "Unit 7" in body
    assert 'href="/units/"' in body
    assert 'href="/start"' in body
    assert response.metadata["hearth_synthesized"] is True
    assert response.metadata["hearth_from_cache"] is False


@pytest.mark.anyio
async def test_generic_page(config: EngineConfig):
    response = synthesize_offline_response(Category.DYNAMIC_OTHER, config)

    body = (await response.aread()).decode("utf-8")

    assert "You're Offline" in body
    assert "Retry" in body
    assert 'href="/start"' in body


def test_pages_are_deterministic(config: EngineConfig):
    assert render_generic_page(config) == render_generic_page(config)
    assert render_content_document_page("3", config) == render_content_document_page("3", config)


def test_identifier_is_escaped(config: EngineConfig):
    page = render_content_document_page("<script>alert(1)</script>", config)

    assert "<script>" not in page
    assert "&lt;script&gt;" in page


def test_configured_text_is_escaped():
    config = EngineConfig(origin="https://example.com", version="1", content_label="<b>Lesson</b>", home_path='/"x')

    page = render_content_document_page("1", config)

    assert "<b>" not in page
    assert "&lt;b&gt;Lesson&lt;/b&gt; 1" in page
    assert 'href="/&quot;x"' in page
