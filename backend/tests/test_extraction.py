import pytest

from app.services.crawler.errors import ConfigurationError, MissingTitleError
from app.services.crawler.extraction import (
    extract_from_html,
    extract_seo_metadata,
    parse_price,
    inspect_selector,
    split_attr_selector,
    test_selectors,
)
from app.services.crawler.models import CrawlKind, ExtractedArticle, ExtractedProduct, load_source_config
from app.services.crawler.sanitizer import parse_document

PAGE_URL = "https://shop.example.com/posts/omega-3?utm_source=newsletter"

PRODUCT_HTML = """
<html><head><title>Vitamin C | Shop</title></head><body>
<div class="product">
  <h1 class="name">Vitamin C 1000mg</h1>
  <span class="price">1.250.000 ₫</span>
  <span class="old">Giá: 1,500,000đ</span>
  <span class="sku">VC-1000</span>
  <div class="desc"><p>Good for <b>you</b></p><img src="/d.jpg"></div>
  <ul class="gallery">
    <li><img src="/g1.jpg"></li>
    <li><img data-src="/g2.jpg"></li>
    <li><img src="/g1.jpg"></li>
  </ul>
</div>
</body></html>
"""

PRODUCT_PROFILE = {
    "selectors": {
        "product": {
            "name": ".name",
            "description": ".desc",
            "price": ".price",
            "originalPrice": ".old",
            "sku": ".sku",
            "images": ".gallery img",
        }
    }
}


def test_split_attr_selector():
    assert split_attr_selector("meta[property='og:image']::attr(content)") == ("meta[property='og:image']", "content")
    assert split_attr_selector("a.more::attr('href')") == ("a.more", "href")
    assert split_attr_selector(".title") == (".title", None)


def test_extract_article_fields(article_html, article_profile):
    config = load_source_config(article_profile)
    article = extract_from_html(article_html(), config, CrawlKind.article, PAGE_URL)

    assert isinstance(article, ExtractedArticle)
    assert article.title == "Omega 3 Benefits"
    assert article.excerpt == "Meta desc"
    assert article.author == "Lan"
    assert article.featured_image == "https://shop.example.com/og.jpg"
    assert "<p>Intro <b>bold</b></p>" in article.content
    assert "track()" not in article.content
    assert 'src="//cdn.example.com/2.jpg"' in article.content


def test_article_images_resolve_dedupe_and_skip_trackers(article_html, article_profile):
    config = load_source_config(article_profile)
    article = extract_from_html(article_html(), config, CrawlKind.article, PAGE_URL)

    assert article.images == [
        "https://shop.example.com/img/1.jpg",
        "https://cdn.example.com/2.jpg",
    ]


def test_article_meta_prefers_page_seo_tags(article_html, article_profile):
    config = load_source_config(article_profile)
    article = extract_from_html(article_html(), config, CrawlKind.article, PAGE_URL)

    assert article.meta_title == "OG Title"
    assert article.meta_description == "Meta desc"


def test_article_meta_falls_back_to_title_and_excerpt(article_html, article_profile):
    config = load_source_config({**article_profile, "seoConfig": {"extractMeta": False}})
    long_title = "Omega 3 " + "very " * 20 + "long"
    article = extract_from_html(article_html(long_title), config, CrawlKind.article, PAGE_URL)

    assert article.meta_title == article.title[:60]
    assert article.meta_description == "Meta desc"


def test_explicit_meta_selector_wins(article_html, article_profile):
    profile = {"selectors": {"article": {**article_profile["selectors"]["article"], "metaTitle": ".author"}}}
    article = extract_from_html(article_html(), load_source_config(profile), CrawlKind.article, PAGE_URL)
    assert article.meta_title == "Lan"


def test_missing_title_raises(article_profile):
    config = load_source_config(article_profile)
    with pytest.raises(MissingTitleError) as info:
        extract_from_html("<html><body><div class='entry'>Body</div></body></html>", config, CrawlKind.article, PAGE_URL)
    assert str(info.value).startswith("missing title")
    assert info.value.field == "title"


def test_missing_content_is_not_an_error(article_profile):
    config = load_source_config(article_profile)
    article = extract_from_html('<h1 class="title">Only a title</h1>', config, CrawlKind.article, PAGE_URL)
    assert article.title == "Only a title"
    assert article.content == ""
    assert article.images == []


def test_title_override_replaces_selector():
    config = load_source_config({"selectors": {"article": {"content": ".entry"}}})
    article = extract_from_html(
        '<div class="entry"><p>Pasted</p></div>', config, CrawlKind.article, "", title_override="Pasted Post"
    )
    assert article.title == "Pasted Post"
    assert "<p>Pasted</p>" in article.content


def test_field_transforms_are_applied(article_html, article_profile):
    config = load_source_config({**article_profile, "transforms": {"title": [{"type": "toUpper"}]}})
    article = extract_from_html(article_html(), config, CrawlKind.article, PAGE_URL)
    assert article.title.strip() == "OMEGA 3 BENEFITS"


def test_custom_remove_elements_apply_before_extraction(article_html, article_profile):
    config = load_source_config({**article_profile, "removeElements": [".author"]})
    article = extract_from_html(article_html(), config, CrawlKind.article, PAGE_URL)
    assert article.author is None


def test_extract_product_fields():
    config = load_source_config(PRODUCT_PROFILE)
    product = extract_from_html(PRODUCT_HTML, config, CrawlKind.product, "https://shop.example.com/p/vitamin-c")

    assert isinstance(product, ExtractedProduct)
    assert product.name == "Vitamin C 1000mg"
    assert product.price == 1250000
    assert product.original_price == 1500000
    assert product.sku == "VC-1000"
    assert "<b>you</b>" in product.description
    assert product.images == [
        "https://shop.example.com/g1.jpg",
        "https://shop.example.com/g2.jpg",
    ]
    assert product.meta_title == "Vitamin C | Shop"
    assert product.meta_description == "Good for you"


def test_product_images_default_to_description():
    profile = {"selectors": {"product": {"name": ".name", "description": ".desc"}}}
    product = extract_from_html(PRODUCT_HTML, load_source_config(profile), CrawlKind.product, "https://shop.example.com/p/1")
    assert product.images == ["https://shop.example.com/d.jpg"]
    assert product.price is None


def test_parse_price():
    assert parse_price("1.250.000 ₫") == 1250000
    assert parse_price("Liên hệ") is None
    assert parse_price("") is None
    assert parse_price(None) is None


def test_missing_selectors_is_configuration_error():
    with pytest.raises(ConfigurationError):
        extract_from_html("<h1>x</h1>", load_source_config({}), CrawlKind.article, PAGE_URL)
    with pytest.raises(ConfigurationError):
        extract_from_html(
            "<h1>x</h1>", load_source_config({"selectors": {"product": {"name": "h1"}}}), CrawlKind.product, PAGE_URL
        )


def test_extract_seo_metadata_falls_back_to_title_tag():
    tree = parse_document("<html><head><title> Plain  Title </title></head><body><h1>H</h1></body></html>")
    assert extract_seo_metadata(tree, None) == {"meta_title": "Plain Title", "meta_description": None}


def test_selector_report(article_html):
    results = test_selectors(
        article_html(),
        {
            "title": ".title",
            "image": "meta[property='og:image']::attr(content)",
            "missing": ".nope",
            "images": ".entry img",
        },
    )
    assert results["title"] == {"found": True, "value": "Omega 3 Benefits", "count": 1}
    assert results["image"]["value"] == "/og.jpg"
    assert results["missing"] == {"found": False, "value": "", "count": 0}
    assert results["images"]["count"] == 4


def test_inspect_selector_single_reports_html_images_and_links():
    html = """
    <div class="card">
      <p>Read <a href="/posts/1">the post</a> <a href="#top">top</a></p>
      <img data-src="/thumb.jpg">
    </div>
    """
    report = inspect_selector(html, ".card", "https://shop.example.com/list")
    payload = report.to_dict()

    assert payload["success"] is True
    assert payload["count"] == 1
    assert payload["value"].startswith("Read the post")
    assert "<a href=\"/posts/1\">" in payload["html_content"]
    assert payload["images"] == ["https://shop.example.com/thumb.jpg"]
    assert payload["links"] == [{"url": "https://shop.example.com/posts/1", "text": "the post"}]
    assert payload["char_count"] == len(payload["value"])


def test_inspect_selector_multiple_mode():
    html = '<ul><li>One</li><li> Two </li><li></li></ul><img src="/a.jpg"><img src="/b.jpg">'
    assert inspect_selector(html, "li", "https://x.example.com/", multiple=True).values == ["One", "Two"]

    images = inspect_selector(html, "img", "https://x.example.com/", multiple=True)
    assert images.images == ["https://x.example.com/a.jpg", "https://x.example.com/b.jpg"]


def test_inspect_selector_without_match():
    assert inspect_selector("<p>x</p>", ".nope", "https://x.example.com/").to_dict()["success"] is False
    with pytest.raises(ConfigurationError):
        inspect_selector("<p>x</p>", "  ", "https://x.example.com/")
