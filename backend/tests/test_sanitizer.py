from app.services.crawler.sanitizer import (
    inner_html,
    lazy_source,
    parse_document,
    prepare_document,
    resolve_lazy_images,
)


def test_prepare_document_removes_chrome_and_caller_selectors():
    html = """
    <html><body>
      <nav>menu</nav>
      <div class="post">
        <p onclick="track()" data-ga="hit" class="lead">Hello</p>
        <script>evil()</script>
        <div class="ads">buy now</div>
        <div class="promo">promo</div>
      </div>
      <footer>footer</footer>
    </body></html>
    """
    tree = prepare_document(html, [".promo"])

    assert tree.css_first("script") is None
    assert tree.css_first("nav") is None
    assert tree.css_first("footer") is None
    assert tree.css_first(".ads") is None
    assert tree.css_first(".promo") is None

    paragraph = tree.css_first("p")
    assert paragraph.text() == "Hello"
    assert "onclick" not in paragraph.attributes
    assert "data-ga" not in paragraph.attributes
    assert paragraph.attributes.get("class") == "lead"


def test_prepare_document_ignores_blank_and_unmatched_selectors():
    tree = prepare_document("<div><p>kept</p></div>", ["", "  ", ".missing"])
    assert tree.css_first("p").text() == "kept"


def test_nested_removed_elements_are_handled():
    tree = prepare_document('<div class="ads"><div class="ads"><p>x</p></div></div><p>y</p>')
    assert tree.css_first(".ads") is None
    assert [node.text() for node in tree.css("p")] == ["y"]


def test_resolve_lazy_images_promotes_by_priority():
    tree = parse_document(
        """
        <img id="a" src="data:image/gif;base64,R0lGOD" data-src="/a.jpg">
        <img id="b" data-lazy-srcset="/b-400.jpg 400w, /b-800.jpg 800w">
        <img id="c" src="/real.jpg" data-src="/other.jpg">
        <img id="d" data-original="/o.jpg" data-src="/s.jpg">
        <img id="e" src="">
        """
    )
    promoted = resolve_lazy_images(tree)

    assert promoted == 3
    assert tree.css_first("#a").attributes["src"] == "/a.jpg"
    assert tree.css_first("#b").attributes["src"] == "/b-400.jpg"
    assert tree.css_first("#c").attributes["src"] == "/real.jpg"
    assert tree.css_first("#d").attributes["src"] == "/s.jpg"
    assert not tree.css_first("#e").attributes.get("src")


def test_lazy_source_skips_data_uri_candidates():
    node = parse_document('<img data-src="data:image/png;base64,AA" data-original="/o.jpg">').css_first("img")
    assert lazy_source(node) == "/o.jpg"


def test_inner_html_excludes_own_tag():
    node = parse_document('<div id="x"><p>One <b>two</b></p>tail</div>').css_first("#x")
    html = inner_html(node)
    assert html.startswith("<p>One <b>two</b></p>")
    assert "tail" in html
    assert 'id="x"' not in html
    assert inner_html(None) == ""
