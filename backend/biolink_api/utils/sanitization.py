"""
HTML sanitization for tenant-supplied bundles.

This is a permissive allow-list for semi-trusted tenant admins: media,
iframes and <script> are allowed so analytics snippets keep working.
What it blocks is script-executing URL schemes, event-handler attributes
and anything not listed in the policy. Inline <script>/<style> bodies are
passed through untouched.

The policy is a static table (SanitizePolicy); bleach does the parsing and
allow-listing, and RewriteFilter applies the per-tag rewrite rules on the
already-sanitized token stream. Inline <script>/<style> bodies are set
aside by RawTextSanitizerFilter and restored verbatim after serialization.
"""

import html
import logging
import re
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Dict, FrozenSet, List, Mapping, Optional, Tuple
from uuid import uuid4

import bleach
from bleach.css_sanitizer import CSSSanitizer
from bleach.html5lib_shim import Filter
from bleach.sanitizer import BleachSanitizerFilter

logger = logging.getLogger(__name__)

POLICY_VERSION = "4.6"

# Attributes whose values are URLs and must pass a per-tag scheme rule
URL_ATTRIBUTES = frozenset({"href", "src", "srcset", "poster"})

# Same normalization bleach applies before checking a scheme
_URL_JUNK = re.compile(r"[`\000-\040\177-\240\s�]+")
_SCHEME = re.compile(r"^[a-z][a-z0-9+.\-]*$")
_SRCSET_URL = re.compile(r"[\s,]*([^\s,]\S*)")


class TagKind(str, Enum):
    """Tags that carry a post-filter rewrite rule"""
    ANCHOR = "a"
    IMAGE = "img"
    SOURCE = "source"
    VIDEO = "video"
    AUDIO = "audio"
    SCRIPT = "script"


@dataclass(frozen=True)
class UrlRule:
    """Allowed schemes for one tag; data: URIs need an allowed MIME family"""
    schemes: FrozenSet[str]
    data_types: FrozenSet[str] = frozenset()

    def allows(self, url: str) -> bool:
        normalized = _URL_JUNK.sub("", html.unescape(url or "")).lower()
        scheme, sep, rest = normalized.partition(":")
        if not sep or not _SCHEME.match(scheme):
            # Relative and scheme-less URLs are not accepted
            return False
        if scheme == "data":
            return any(rest.startswith(mime + "/") for mime in self.data_types)
        return scheme in self.schemes


def srcset_urls(value: str) -> List[str]:
    """Candidate URLs of a srcset value (descriptors dropped)"""
    value = html.unescape(value or "")
    urls = []
    pos = 0
    while pos < len(value):
        match = _SRCSET_URL.match(value, pos)
        if not match:
            break
        url = match.group(1)
        pos = match.end()
        if url.endswith(","):
            urls.append(url.rstrip(","))
            continue
        urls.append(url)
        # Skip descriptors up to the next candidate
        next_comma = value.find(",", pos)
        if next_comma == -1:
            break
        pos = next_comma + 1
    return urls


_WEB = frozenset({"http", "https"})
_MEDIA = _WEB | {"blob"}

STANDARD_TAGS = frozenset({
    "address", "article", "aside", "footer", "header", "h1", "h2", "h3", "h4",
    "h5", "h6", "hgroup", "main", "nav", "section", "blockquote", "dd", "div",
    "dl", "dt", "hr", "li", "ol", "p", "pre", "ul", "abbr", "b", "bdi", "bdo",
    "br", "cite", "code", "data", "dfn", "em", "i", "kbd", "mark", "q", "rb",
    "rp", "rt", "rtc", "ruby", "s", "samp", "small", "span", "strong", "sub",
    "sup", "time", "u", "var", "wbr", "caption", "col", "colgroup", "table",
    "tbody", "td", "tfoot", "th", "thead", "tr",
})

MEDIA_TAGS = frozenset({
    "img", "picture", "source", "video", "audio", "track", "figure",
    "figcaption", "script", "style", "iframe", "svg", "path", "a",
})


@dataclass(frozen=True)
class SanitizePolicy:
    """Static, versioned sanitizer configuration"""
    version: str
    allowed_tags: FrozenSet[str]
    allowed_attributes: Mapping[str, FrozenSet[str]]
    wildcard_attribute_prefixes: FrozenSet[str]
    url_rules: Mapping[str, UrlRule]
    rewrite_rules: Mapping[str, TagKind]
    css_properties: Optional[FrozenSet[str]] = None

    @property
    def protocols(self) -> FrozenSet[str]:
        """Union of every scheme a URL rule can accept (bleach's global check)"""
        schemes = set()
        for rule in self.url_rules.values():
            schemes |= rule.schemes
            if rule.data_types:
                schemes.add("data")
        return frozenset(schemes)

    def allows_attribute(self, tag: str, name: str, value: str) -> bool:
        name = name.lower()
        permitted = (
            name in self.allowed_attributes.get("*", frozenset())
            or name in self.allowed_attributes.get(tag, frozenset())
            or any(name.startswith(prefix) for prefix in self.wildcard_attribute_prefixes)
        )
        if not permitted:
            return False
        if name in URL_ATTRIBUTES:
            return self.allows_url(tag, name, value)
        return True

    def allows_url(self, tag: str, name: str, value: str) -> bool:
        # poster is an image whatever element carries it
        rule = self.url_rules.get("img" if name == "poster" else tag)
        if rule is None:
            return False
        if name == "srcset":
            urls = srcset_urls(value)
            return bool(urls) and all(rule.allows(url) for url in urls)
        return rule.allows(value)


DEFAULT_POLICY = SanitizePolicy(
    version=POLICY_VERSION,
    allowed_tags=STANDARD_TAGS | MEDIA_TAGS,
    allowed_attributes={
        "*": frozenset({
            "style", "class", "id", "title", "role", "width", "height", "loading",
        }),
        "a": frozenset({"href", "target", "rel", "download"}),
        "iframe": frozenset({
            "src", "frameborder", "allow", "allowfullscreen", "referrerpolicy",
        }),
        "img": frozenset({"src", "alt", "srcset", "sizes", "decoding", "referrerpolicy"}),
        "source": frozenset({"src", "srcset", "type", "sizes", "media"}),
        "video": frozenset({
            "src", "poster", "controls", "autoplay", "muted", "loop",
            "playsinline", "preload", "crossorigin",
        }),
        "audio": frozenset({"src", "controls", "autoplay", "loop", "muted", "preload", "crossorigin"}),
        "track": frozenset({"kind", "src", "srclang", "label", "default"}),
        "script": frozenset({"src", "async", "defer"}),
        "svg": frozenset({"viewbox", "xmlns", "fill", "stroke", "stroke-width", "preserveaspectratio"}),
        "path": frozenset({"d", "fill", "stroke", "stroke-width", "stroke-linecap", "stroke-linejoin", "fill-rule", "clip-rule"}),
    },
    wildcard_attribute_prefixes=frozenset({"data-", "aria-"}),
    url_rules={
        "a": UrlRule(_WEB | {"mailto", "tel"}),
        "img": UrlRule(_MEDIA, frozenset({"image"})),
        "source": UrlRule(_MEDIA, frozenset({"image", "video", "audio"})),
        "video": UrlRule(_MEDIA, frozenset({"video"})),
        "audio": UrlRule(_MEDIA, frozenset({"audio"})),
        "track": UrlRule(_MEDIA),
        "script": UrlRule(_WEB),
        "iframe": UrlRule(_WEB),
    },
    rewrite_rules={kind.value: kind for kind in TagKind},
)

ANCHOR_REL = "nofollow noopener noreferrer"
IMAGE_DEFAULTS = (
    ("loading", "lazy"),
    ("decoding", "async"),
    ("referrerpolicy", "no-referrer"),
)


def _rewrite_anchor(attrs: Dict) -> None:
    if (None, "href") not in attrs:
        return
    if not attrs.get((None, "target")):
        attrs[(None, "target")] = "_blank"
    attrs[(None, "rel")] = ANCHOR_REL


def _rewrite_image(attrs: Dict) -> None:
    if (None, "src") not in attrs:
        attrs.pop((None, "srcset"), None)
    for name, default in IMAGE_DEFAULTS:
        if not attrs.get((None, name)):
            attrs[(None, name)] = default


def _rewrite_video(attrs: Dict) -> None:
    if (None, "autoplay") in attrs:
        attrs[(None, "playsinline")] = "playsinline"


def _no_rewrite(attrs: Dict) -> None:
    """Keep the attributes exactly as allow-listing left them"""


REWRITERS = {
    TagKind.ANCHOR: _rewrite_anchor,
    TagKind.IMAGE: _rewrite_image,
    TagKind.SOURCE: _no_rewrite,
    TagKind.VIDEO: _rewrite_video,
    TagKind.AUDIO: _no_rewrite,
    TagKind.SCRIPT: _no_rewrite,
}


class RewriteFilter(Filter):
    """Applies per-tag rewrite rules to start tags after bleach allow-listing"""

    def __init__(self, source, policy: SanitizePolicy):
        super().__init__(source)
        self.policy = policy

    def __iter__(self):
        for token in super().__iter__():
            if token["type"] in ("StartTag", "EmptyTag"):
                kind = self.policy.rewrite_rules.get(token["name"])
                if kind is not None:
                    attrs = dict(token.get("data") or {})
                    REWRITERS[kind](attrs)
                    token["data"] = attrs
            yield token


# Elements whose body is raw text in the HTML namespace
RAWTEXT_TAGS = frozenset({"script", "style"})
_HTML_NAMESPACES = (None, "http://www.w3.org/1999/xhtml")


class RawTextSanitizerFilter(BleachSanitizerFilter):
    """
    BleachSanitizerFilter that sets inline script/style bodies aside.

    The body of a kept HTML <script> or <style> is replaced by a placeholder
    and recorded in `raw_bodies`; PolicyCleaner puts it back after
    serialization. Only HTML-namespace elements qualify: an <svg><style>
    body is parsed as markup and keeps the normal escaping.
    """

    def __init__(self, source, raw_bodies: List[Tuple[str, str]], nonce: str, **kwargs):
        super().__init__(source, **kwargs)
        self.raw_bodies = raw_bodies
        self.nonce = nonce
        self._in_rawtext = False

    def sanitize_token(self, token):
        if self._in_rawtext and token["type"] == "Characters":
            placeholder = f"rawtext{self.nonce}x{len(self.raw_bodies)}x"
            self.raw_bodies.append((placeholder, token["data"]))
            return {"type": "Characters", "data": placeholder}

        result = super().sanitize_token(token)
        if (
            token["type"] in ("StartTag", "EndTag")
            and token["name"] in RAWTEXT_TAGS
            and token.get("namespace") in _HTML_NAMESPACES
        ):
            self._in_rawtext = token["type"] == "StartTag" and result is not None
        return result


class PolicyCleaner(bleach.Cleaner):
    """bleach Cleaner that keeps inline script/style bodies byte-for-byte"""

    def clean(self, text: str) -> str:
        if not text:
            return ""
        raw_bodies: List[Tuple[str, str]] = []
        dom = self.parser.parseFragment(text)
        filtered = RawTextSanitizerFilter(
            source=self.walker(dom),
            raw_bodies=raw_bodies,
            nonce=uuid4().hex,
            allowed_tags=self.tags,
            attributes=self.attributes,
            strip_disallowed_tags=self.strip,
            strip_html_comments=self.strip_comments,
            css_sanitizer=self.css_sanitizer,
            allowed_protocols=self.protocols,
        )
        for filter_class in self.filters:
            filtered = filter_class(source=filtered)
        rendered = self.serializer.render(filtered)

        for placeholder, body in raw_bodies:
            rendered = rendered.replace(placeholder, body, 1)
        return rendered


def build_cleaner(policy: SanitizePolicy = DEFAULT_POLICY) -> PolicyCleaner:
    """Create a Cleaner enforcing the given policy"""
    if policy.css_properties is None:
        css_sanitizer = CSSSanitizer()
    else:
        css_sanitizer = CSSSanitizer(allowed_css_properties=policy.css_properties)
    return PolicyCleaner(
        tags=policy.allowed_tags,
        attributes=policy.allows_attribute,
        protocols=policy.protocols,
        strip=True,
        strip_comments=True,
        filters=[partial(RewriteFilter, policy=policy)],
        css_sanitizer=css_sanitizer,
    )


_cleaner = build_cleaner(DEFAULT_POLICY)


def sanitize(raw_html: Optional[str]) -> str:
    """
    Sanitize untrusted tenant HTML.

    Total over all inputs: empty/None gives "", plain text comes back
    escaped, malformed markup is dropped rather than rejected.
    """
    if not raw_html:
        return ""
    if not isinstance(raw_html, str):
        raw_html = str(raw_html)
    try:
        return _cleaner.clean(raw_html)
    except Exception:
        # html5lib should not fail on any string; never let a bundle save crash on it
        logger.exception("[SANITIZE] Cleaner failed, falling back to escaped text")
        return html.escape(raw_html)


def escape_html(text: str) -> str:
    """Escape HTML entities"""
    return bleach.clean(text or "", tags=set(), attributes={}, strip=False)
