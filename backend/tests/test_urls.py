import pytest

from app.services.crawler.errors import ConfigurationError
from app.services.crawler.urls import (
    is_skippable_href,
    normalize_url,
    page_origin,
    resolve_url,
    validate_public_url,
)


def test_normalize_url_canonicalizes_scheme_host_port_and_fragment():
    assert (
        normalize_url("HTTPS://Shop.Example.COM:443/Blog/Omega-3/?utm_source=fb&id=5#reviews")
        == "https://shop.example.com/Blog/Omega-3?id=5"
    )


def test_normalize_url_keeps_non_default_port_and_root_slash():
    assert normalize_url("http://example.com:8080/a/") == "http://example.com:8080/a"
    assert normalize_url("https://example.com/") == "https://example.com/"
    assert normalize_url("https://example.com") == "https://example.com/"


def test_normalize_url_drops_tracking_params_only():
    url = "https://example.com/p?fbclid=x&gclid=y&ref=nav&utm_custom=1&color=red&size=m"
    assert normalize_url(url) == "https://example.com/p?color=red&size=m"


def test_normalize_url_treats_variants_as_equal():
    a = normalize_url("https://example.com/post/1?utm_campaign=spring")
    b = normalize_url("https://EXAMPLE.com/post/1/#top")
    assert a == b


def test_normalize_url_leaves_unparseable_input():
    assert normalize_url("not a url") == "not a url"
    assert normalize_url("  ") == ""


def test_resolve_url_variants():
    page = "https://shop.example.com/posts/omega-3?page=2"
    assert resolve_url("//cdn.example.com/a.jpg", page) == "https://cdn.example.com/a.jpg"
    assert resolve_url("/img/a.jpg", page) == "https://shop.example.com/img/a.jpg"
    assert resolve_url("img/a.jpg", page) == "https://shop.example.com/img/a.jpg"
    assert resolve_url("https://other.example.com/x.png", page) == "https://other.example.com/x.png"
    assert resolve_url("data:image/png;base64,AAA", page) == "data:image/png;base64,AAA"
    assert resolve_url("", page) == ""
    assert resolve_url(None, page) == ""


def test_resolve_url_without_base_keeps_relative_href():
    assert resolve_url("/img/a.jpg", "") == "/img/a.jpg"


def test_page_origin_keeps_port():
    assert page_origin("http://localhost:8000/a/b?c=1") == "http://localhost:8000"


def test_is_skippable_href():
    assert is_skippable_href("#top")
    assert is_skippable_href("javascript:void(0)")
    assert is_skippable_href("JavaScript:open()")
    assert is_skippable_href("mailto:sales@example.com")
    assert is_skippable_href("")
    assert is_skippable_href(None)
    assert not is_skippable_href("/products/tea")


def test_validate_public_url_rejects_local_and_malformed():
    blocked = ["localhost", "127.0.0.1"]
    assert validate_public_url(" https://shop.example.com/a ", blocked) == "https://shop.example.com/a"
    for url in ["http://localhost:3000/x", "http://127.0.0.1/", "ftp://example.com/a", "example.com/a", ""]:
        with pytest.raises(ConfigurationError):
            validate_public_url(url, blocked)


def test_validate_public_url_turns_unparseable_host_into_configuration_error():
    with pytest.raises(ConfigurationError, match="Invalid URL"):
        validate_public_url("http://[bad", [])
