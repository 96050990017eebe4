"""Constants for the content crawler."""

# Default browser-like headers for outbound fetches
DEFAULT_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8"

# Elements removed before any extraction
DEFAULT_REMOVE_ELEMENTS = [
    "script", "style", "noscript", "template",
    "iframe", "form", "input", "button", "select", "textarea",
    "nav", "header", "footer", "aside",
    '[role="navigation"]', '[role="banner"]', '[role="complementary"]',
    "video", "audio", "canvas", "object", "embed", "svg",
    ".advertisement", ".ads", ".ad-container", "[data-ad]",
    ".social-share", ".share-buttons", ".like-buttons",
    ".comment-section", ".comments", ".fb-comments",
    ".related-posts", ".related-articles",
    ".breadcrumb", ".pagination",
    ".newsletter-signup", ".popup", ".modal",
]

# Inline handlers and tracking hooks stripped from every element
REMOVE_ATTRIBUTES = [
    "onclick", "onload", "onerror", "onmouseover", "onmouseout",
    "onfocus", "onblur", "onsubmit", "onchange", "onkeydown", "onkeyup",
    "data-ga", "data-gtm", "data-analytics", "data-tracking",
    "data-action", "data-controller", "data-target", "data-toggle",
]

# Lazy-load attributes, in priority order
LAZY_LOAD_ATTRS = [
    "data-src", "data-lazy-src", "data-original",
    "data-srcset", "data-lazy-srcset",
    "data-bg", "data-background-image",
    "nitro-lazy-src",
]

# Tracker / spacer images dropped from content image lists
DEFAULT_SKIP_IMAGE_PATTERNS = [
    r"1x1\.", r"pixel\.", r"beacon\.", r"spacer\.", r"blank\.",
    r"doubleclick", r"googlesyndication", r"scorecardresearch",
    r"facebook\.com/tr",
]

# Query parameters dropped during URL normalization
TRACKING_PARAMS = [
    "utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content",
    "fbclid", "gclid", "msclkid", "ref", "mc_cid", "mc_eid",
]

# Anchors never followed from list pages
SKIP_HREF_PREFIXES = ("#", "javascript:", "mailto:")

# Default selector profile when a job has no source attached
FALLBACK_SELECTORS = {
    "article": {
        "title": "h1",
        "content": "article, .article-content, .post-content, main",
        "excerpt": "meta[name='description']::attr(content)",
        "featured_image": "meta[property='og:image']::attr(content)",
    },
    "product": {
        "name": "h1",
        "description": ".description, .product-description",
        "price": ".price, [class*='price']",
    },
}

# Field limits
SLUG_MAX_LENGTH = 100
META_TITLE_MAX = 60
META_DESCRIPTION_MAX = 160
SEO_TITLE_MAX = 200
SEO_DESCRIPTION_MAX = 500
LINK_TITLE_MAX = 200
INSPECT_VALUE_MAX = 200
INSPECT_LINKS_MAX = 20
