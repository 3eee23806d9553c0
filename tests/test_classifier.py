import pytest

from hearth import Category, Classifier, EngineConfig, Headers, Request
from hearth._classifier import classify

ORIGIN = "https://example.com"


@pytest.fixture()
def classifier() -> Classifier:
    return Classifier(EngineConfig(origin=ORIGIN, version="1", allowed_origins=["cdn.example.net"]))


def test_non_get_is_ignored(classifier: Classifier):
    request = Request(method="POST", url=f"{ORIGIN}/app.css")

    assert classifier.classify(request).category is Category.IGNORED


def test_method_is_compared_case_insensitively(classifier: Classifier):
    classified = classifier.classify(Request(method="get", url=f"{ORIGIN}/app.css"))

    assert classified.method == "GET"
    assert classified.category is Category.STATIC_ASSET


def test_foreign_origin_is_ignored(classifier: Classifier):
    request = Request(method="GET", url="https://tracker.example.org/pixel.png")

    assert classifier.classify(request).category is Category.IGNORED


@pytest.mark.parametrize(
    "path",
    ["/app.css", "/bundle.JS", "/img/logo.svg", "/favicon.ico", "/fonts/a.woff2", "/assets/data.json"],
)
def test_static_assets(classifier: Classifier, path: str):
    request = Request(method="GET", url=f"{ORIGIN}{path}")

    assert classifier.classify(request).category is Category.STATIC_ASSET


def test_static_suffix_wins_over_navigation(classifier: Classifier):
    request = Request(method="GET", url=f"{ORIGIN}/app.css", headers=Headers({"Accept": "text/html"}))

    assert classifier.classify(request).category is Category.STATIC_ASSET


def test_content_document(classifier: Classifier):
    request = Request(method="GET", url=f"{ORIGIN}/units/unit-7.html", headers=Headers({"Accept": "text/html"}))

    classified = classifier.classify(request)

    assert classified.category is Category.CONTENT_DOCUMENT
    assert classified.is_navigation is True


def test_navigation_by_accept_header(classifier: Classifier):
    request = Request(
        method="GET",
        url=f"{ORIGIN}/about",
        headers=Headers({"Accept": "text/html,application/xhtml+xml;q=0.9"}),
    )

    assert classifier.classify(request).category is Category.NAVIGATION_DOCUMENT


def test_navigation_by_mode(classifier: Classifier):
    request = Request(method="GET", url=f"{ORIGIN}/about", metadata={"hearth_mode": "navigate"})

    classified = classifier.classify(request)

    assert classified.category is Category.NAVIGATION_DOCUMENT
    assert classified.is_navigation is True


def test_allowed_external(classifier: Classifier):
    request = Request(method="GET", url="https://cdn.example.net/fonts?family=Inter")

    assert classifier.classify(request).category is Category.ALLOWED_EXTERNAL


def test_allowed_external_static_asset(classifier: Classifier):
    request = Request(method="GET", url="https://cdn.example.net/lib.js")

    assert classifier.classify(request).category is Category.STATIC_ASSET


def test_same_origin_api_call_is_dynamic(classifier: Classifier):
    request = Request(method="GET", url=f"{ORIGIN}/api/progress", headers=Headers({"Accept": "application/json"}))

    assert classifier.classify(request).category is Category.DYNAMIC_OTHER


def test_origin_comparison_ignores_host_case(classifier: Classifier):
    request = Request(method="GET", url="https://EXAMPLE.com/api/progress")

    assert classifier.classify(request).category is Category.DYNAMIC_OTHER


@pytest.mark.parametrize("url", ["", "not a url", "http://[::1", "/relative/path", "mailto:someone"])
def test_classification_never_raises(classifier: Classifier, url: str):
    classified = classifier.classify(Request(method="GET", url=url))

    assert isinstance(classified.category, Category)


def test_module_level_classify():
    config = EngineConfig(origin=ORIGIN, version="1")

    classified = classify(Request(method="GET", url=f"{ORIGIN}/units/unit-3.html"), config)

    assert classified.category is Category.CONTENT_DOCUMENT
    assert classified.url == f"{ORIGIN}/units/unit-3.html"
