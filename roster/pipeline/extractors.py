"""
Roster Extraction Engine - turn one HTML document into candidate PersonRecords

Applies an ordered list of strategies and concatenates every non-empty result
(no short-circuit after the first success) so that the deduplicator sees the
widest candidate set:

1. StructuredDataStrategy  - JSON-LD / microdata "Person" entities
2. SelectorCascadeStrategy - member-card containers + per-field sub-selectors
3. FreeTextStrategy        - "Name, Title" text lines; only when 1-2 found nothing

New site patterns are added by appending selectors or strategies, never by
branching on site identity.
"""

from __future__ import annotations

import html as html_lib
import json
import re
from typing import Any, Dict, Iterable, List, Optional, Set
from urllib.parse import urljoin, urlparse

from selectolax.parser import HTMLParser, Node

from ..schemas import PersonRecord, clean_email


# Priority used when merging records of one identity (lower wins)
STRATEGY_PRIORITY: Dict[str, int] = {
    "structured": 0,
    "cascade": 1,
    "harvest": 2,
    "free_text": 3,
}

# Navigation labels, generic headings and slogans that look like "Capitalized Words"
NAME_DENYLIST = [
    "our team", "the team", "meet the team", "team members", "our people", "leadership team",
    "load more", "show more", "view more", "see more", "read more", "learn more",
    "view profile", "view bio", "full bio", "get in touch", "contact us", "about us",
    "toggle categories", "privacy policy", "terms of use", "cookie settings", "accept all",
    "all rights reserved", "sign up", "log in", "join us", "our portfolio", "our story",
    "the future", "what we do", "who we are", "case studies", "press releases",
    "mailing address", "office hours", "board of directors", "advisory board",
    "investment team", "executive team", "management team", "seed early", "growth operator",
]

# Tokens that mark a job title or section heading rather than a person's name
ROLE_WORDS = {
    "partner", "partners", "director", "directors", "manager", "officer", "president",
    "founder", "co-founder", "cofounder", "chief", "head", "associate", "analyst",
    "principal", "counsel", "advisor", "adviser", "chairman", "chair", "vp", "ceo", "cfo",
    "coo", "cto", "cmo", "team", "our", "members", "people", "staff", "leadership",
    "investments", "portfolio", "careers", "contact", "about", "news", "insights",
    "operations", "venture", "ventures", "capital", "group", "company", "inc", "llc",
}

_LEADING_STOPWORDS = {"the", "meet", "view", "read", "learn", "see", "load", "show", "join", "get", "all"}

_HONORIFIC_RE = re.compile(r"^(?:dr|mr|mrs|ms|mx|prof|sir|dame)\.?\s+", re.IGNORECASE)
_CREDENTIALS_RE = re.compile(r",?\s+(?:ph\.?d|m\.?d|mba|cfa|cpa|jd|esq|j\.?d)\.?$", re.IGNORECASE)
_WS_RE = re.compile(r"\s+")

SKIP_TEXT_TAGS = {"script", "style", "noscript", "template", "head", "nav", "footer", "svg"}


def _clean_text(text: Optional[str]) -> str:
    if not text:
        return ""
    return _WS_RE.sub(" ", html_lib.unescape(str(text))).strip()


def clean_name(text: Optional[str]) -> Optional[str]:
    """First line of a candidate, honorifics/credentials stripped, ALL CAPS title-cased."""
    if not text:
        return None
    first = str(text).strip().splitlines()[0] if str(text).strip() else ""
    name = _clean_text(first)
    name = _HONORIFIC_RE.sub("", name)
    name = _CREDENTIALS_RE.sub("", name).strip(" ,;|-")
    if name and name.isupper():
        name = name.title()
    return name or None


def is_plausible_name(name: Optional[str]) -> bool:
    """Minimal shape check for a person's name.

    Accepts 2-5 tokens with at least two capitalized, bounded length, no digits;
    rejects denylisted boilerplate and headings built from role words.
    """
    if not name:
        return False
    name = name.strip()
    if len(name) < 4 or len(name) > 60:
        return False
    if any(ch.isdigit() for ch in name) or any(ch in name for ch in "@/:|()[]{}<>#=+*"):
        return False
    low = name.lower()
    if any(phrase in low for phrase in NAME_DENYLIST):
        return False
    tokens = [t for t in name.split(" ") if t]
    if len(tokens) < 2 or len(tokens) > 5:
        return False
    if tokens[0].lower() in _LEADING_STOPWORDS:
        return False
    for tok in tokens:
        if tok.lower().strip(".,'") in ROLE_WORDS:
            return False
    capitalized = sum(1 for t in tokens if t[0].isalpha() and t[0].isupper())
    if capitalized < 2:
        return False
    return all(any(ch.isalpha() for ch in t) for t in tokens)


def _abs_url(base_url: str, href: Optional[str]) -> Optional[str]:
    if not href:
        return None
    h = str(href).strip()
    if not h or h.startswith(("#", "javascript:", "data:", "mailto:", "tel:")):
        return None
    try:
        u = urljoin(base_url, h)
    except ValueError:
        return None
    return u if u.startswith(("http://", "https://")) else None


def classify_link(url: Optional[str]) -> Optional[str]:
    """Map a URL to the PersonRecord field it belongs in (social/contact links)."""
    if not url:
        return None
    low = url.strip().lower()
    if low.startswith("mailto:"):
        return "email"
    if low.startswith("tel:"):
        return "phone"
    host = urlparse(low).netloc
    if host.startswith("www."):
        host = host[4:]
    if host.endswith("linkedin.com"):
        return "linkedin_url"
    if host in ("twitter.com", "x.com", "mobile.twitter.com"):
        return "twitter_url"
    if host == "github.com":
        return "github_url"
    return None


def _same_site(base_url: str, url: str) -> bool:
    def host(u: str) -> str:
        h = urlparse(u).netloc.lower()
        return h[4:] if h.startswith("www.") else h
    return host(base_url) == host(url)


def _phone_from_tel(href: str) -> Optional[str]:
    raw = href[4:] if href.lower().startswith("tel:") else href
    raw = raw.strip()
    digits = re.sub(r"\D", "", raw)
    if not (7 <= len(digits) <= 15):
        return None
    return raw


def _image_src(img: Node, base_url: str) -> Optional[str]:
    attrs = img.attrs or {}
    for key in ("src", "data-src", "data-lazy-src", "data-original"):
        val = attrs.get(key)
        if val and not str(val).startswith("data:"):
            return _abs_url(base_url, val)
    srcset = attrs.get("srcset") or attrs.get("data-srcset")
    if srcset:
        first = str(srcset).split(",")[0].strip().split(" ")[0]
        return _abs_url(base_url, first)
    return None


class ExtractionStrategy:
    """One way of finding people in a parsed document."""

    name = "base"
    # Run only when all earlier strategies produced nothing
    fallback_only = False

    def try_extract(self, parser: HTMLParser, base_url: str) -> List[PersonRecord]:
        raise NotImplementedError


# -------------------------
# 1. Structured data
# -------------------------
class StructuredDataStrategy(ExtractionStrategy):
    """Maps embedded schema.org Person entities (JSON-LD and microdata)."""

    name = "structured"

    def try_extract(self, parser: HTMLParser, base_url: str) -> List[PersonRecord]:
        out: List[PersonRecord] = []
        for script in parser.css('script[type="application/ld+json"]'):
            raw = script.text(deep=True) or ""
            try:
                data = json.loads(raw.strip())
            except (ValueError, TypeError):
                continue
            for item in self._iter_persons(data):
                rec = self._record_from_jsonld(item, base_url, len(out))
                if rec is not None:
                    out.append(rec)
        for node in parser.css("[itemscope][itemtype*='schema.org/Person']"):
            rec = self._record_from_microdata(node, base_url, len(out))
            if rec is not None:
                out.append(rec)
        return out

    def _iter_persons(self, data: Any) -> Iterable[Dict[str, Any]]:
        if isinstance(data, list):
            for x in data:
                yield from self._iter_persons(x)
        elif isinstance(data, dict):
            t = data.get("@type")
            types = t if isinstance(t, list) else [t]
            if "Person" in types:
                yield data
            for key, val in data.items():
                if key.startswith("@") and key != "@graph":
                    continue
                if isinstance(val, (list, dict)):
                    yield from self._iter_persons(val)

    @staticmethod
    def _first_str(val: Any) -> Optional[str]:
        if isinstance(val, list):
            val = val[0] if val else None
        if isinstance(val, dict):
            val = val.get("url") or val.get("contentUrl") or val.get("name")
        if val is None:
            return None
        s = _clean_text(str(val))
        return s or None

    def _record_from_jsonld(self, item: Dict[str, Any], base_url: str, idx: int) -> Optional[PersonRecord]:
        name = self._first_str(item.get("name"))
        if not name:
            given = self._first_str(item.get("givenName")) or ""
            family = self._first_str(item.get("familyName")) or ""
            name = f"{given} {family}".strip()
        name = clean_name(name)
        if not name or not is_plausible_name(name):
            return None
        fields: Dict[str, Any] = {
            "name": name,
            "title": self._first_str(item.get("jobTitle")),
            "bio": self._first_str(item.get("description")),
            "image_url": _abs_url(base_url, self._first_str(item.get("image"))),
            "order_index": idx,
            "source": self.name,
        }
        url = _abs_url(base_url, self._first_str(item.get("url")))
        if url and classify_link(url):
            fields[classify_link(url)] = url
        elif url:
            fields["profile_url"] = url
        email = self._first_str(item.get("email"))
        if email:
            fields["email"] = clean_email(email)
        phone = self._first_str(item.get("telephone"))
        if phone:
            fields["phone"] = phone
        addr = item.get("address") or item.get("workLocation")
        if isinstance(addr, dict):
            fields["location"] = self._first_str(addr.get("addressLocality") or addr.get("name"))
        elif isinstance(addr, str):
            fields["location"] = _clean_text(addr)
        same_as = item.get("sameAs") or []
        if isinstance(same_as, str):
            same_as = [same_as]
        for link in same_as:
            link_url = _abs_url(base_url, str(link))
            kind = classify_link(link_url)
            if kind and not fields.get(kind):
                fields[kind] = link_url
            elif link_url and not kind and not fields.get("personal_website"):
                fields["personal_website"] = link_url
        return PersonRecord(**fields)

    def _record_from_microdata(self, node: Node, base_url: str, idx: int) -> Optional[PersonRecord]:
        def prop(name: str) -> Optional[Node]:
            return node.css_first(f"[itemprop='{name}']")

        def prop_text(name: str) -> Optional[str]:
            n = prop(name)
            if n is None:
                return None
            content = (n.attrs or {}).get("content")
            return _clean_text(content if content else n.text(deep=True)) or None

        name = clean_name(prop_text("name"))
        if not name or not is_plausible_name(name):
            return None
        fields: Dict[str, Any] = {
            "name": name,
            "title": prop_text("jobTitle"),
            "bio": prop_text("description"),
            "phone": prop_text("telephone"),
            "order_index": idx,
            "source": self.name,
        }
        img = prop("image")
        if img is not None:
            fields["image_url"] = _image_src(img, base_url) or _abs_url(base_url, (img.attrs or {}).get("content"))
        url_node = prop("url")
        if url_node is not None:
            url = _abs_url(base_url, (url_node.attrs or {}).get("href") or (url_node.attrs or {}).get("content"))
            kind = classify_link(url)
            fields[kind or "profile_url"] = url
        email = prop_text("email")
        if email:
            fields["email"] = clean_email(email)
        return PersonRecord(**fields)


# -------------------------
# 2. Selector cascade
# -------------------------
class SelectorCascadeStrategy(ExtractionStrategy):
    """Container patterns believed to be one member card, with per-field sub-selectors."""

    name = "cascade"

    # Most specific first; attribute-fragment heuristics last
    container_selectors = [
        ".team-member, .team-card, .person-card, .member-card, .profile-card, .bio-card",
        ".staff-member, .people-card, .employee, .person",
        ".team-members__grid .grid__instance, .grid__instance",
        ".elementor-team-member, .our-team .team-item, .team-grid article",
        "[data-person], [data-team-member], [data-member]",
        "[class*='team-member']", "[class*='member-card']", "[class*='person-card']",
        "[class*='person']", "[class*='member']", "[class*='profile']",
        "[class*='team']", "[class*='people']", "[class*='staff']", "[class*='bio']",
    ]

    name_selectors = [
        "[itemprop='name']",
        ".name, .person-name, .member-name, .full-name, .profile-name",
        ".card-title, .ink__title",
        "h1, h2, h3, h4, h5",
        "[class*='name']",
        "strong, b",
        "a",
    ]

    title_selectors = [
        "[itemprop='jobTitle']",
        ".title, .job-title, .position, .role, .position-title, .designation",
        ".subtitle, .card-subtitle, .ink__subtitle",
        "[class*='title'], [class*='position'], [class*='role']",
        "h4, h5, h6, em, small",
        "p",
    ]

    bio_selectors = [
        "[itemprop='description']",
        ".bio, .biography, .description, .summary, .excerpt",
        "[class*='bio'], [class*='description']",
        "p",
    ]

    max_title_len = 120
    max_bio_len = 1000

    def try_extract(self, parser: HTMLParser, base_url: str) -> List[PersonRecord]:
        out: List[PersonRecord] = []
        taken: List[Node] = []
        taken_ids: Set[int] = set()
        for selector in self.container_selectors:
            for node in parser.css(selector):
                root = self._choose_card_root_by_repetition(node)
                if self._inside_taken(root, taken_ids) or self._contains_taken(root, taken):
                    continue
                if self._looks_like_wrapper(root):
                    continue
                rec = self._record_from_card(root, base_url, len(out))
                if rec is None:
                    continue
                taken.append(root)
                taken_ids.add(root.mem_id)
                out.append(rec)
        return out

    # card root helpers
    @staticmethod
    def _signature(n: Node) -> str:
        cls = ((n.attrs or {}).get("class", "") or "").lower()
        tokens = re.split(r"[\s_-]+", cls) if cls else []
        return (n.tag or "") + ":" + "|".join(tokens[:2])

    def _choose_card_root_by_repetition(self, node: Node) -> Node:
        """Ascend to a node whose siblings repeat its structure (>=3 alike)."""
        cur = node
        for _ in range(3):
            if cur is None or cur.parent is None:
                break
            parent = cur.parent
            counts: Dict[str, int] = {}
            ch = parent.child
            while ch is not None:
                if ch.tag not in (None, "-text", "-comment", "script", "style"):
                    s = self._signature(ch)
                    counts[s] = counts.get(s, 0) + 1
                ch = ch.next
            if counts.get(self._signature(cur), 0) >= 3:
                return cur
            cur = parent
        return node

    @staticmethod
    def _inside_taken(node: Node, taken: Set[int]) -> bool:
        cur = node
        while cur is not None:
            if cur.mem_id in taken:
                return True
            cur = cur.parent
        return False

    @staticmethod
    def _contains_taken(node: Node, taken: List[Node]) -> bool:
        """True when an accepted card sits below ``node``."""
        for card in taken:
            cur = card.parent
            while cur is not None:
                if cur.mem_id == node.mem_id:
                    return True
                cur = cur.parent
        return False

    def _looks_like_wrapper(self, node: Node) -> bool:
        """A section holding several cards rather than one card.

        Counts distinct plausible names under the explicit name selectors;
        fragment matches such as ``[class*='name']`` are left out since a
        single card may carry a company or team name there.
        """
        names: Set[str] = set()
        for selector in self.name_selectors[:4]:
            for n in node.css(selector):
                name = clean_name(n.text(deep=True, separator="\n"))
                if name and is_plausible_name(name):
                    names.add(name.lower())
                    if len(names) >= 2:
                        return True
        return False

    # field helpers
    def _find_name(self, root: Node) -> Optional[str]:
        for selector in self.name_selectors:
            for n in root.css(selector):
                name = clean_name(n.text(deep=True, separator="\n"))
                if name and is_plausible_name(name):
                    return name
        # headshot alt text is often the person's name
        for img in root.css("img[alt]"):
            name = clean_name((img.attrs or {}).get("alt"))
            if name and is_plausible_name(name):
                return name
        return None

    def _find_title(self, root: Node, name: str) -> Optional[str]:
        low_name = name.lower()
        for selector in self.title_selectors:
            for n in root.css(selector):
                txt = _clean_text(n.text(deep=True))
                if not txt or len(txt) < 2 or len(txt) > self.max_title_len:
                    continue
                if low_name in txt.lower():
                    continue
                return txt
        return None

    def _find_bio(self, root: Node, name: str, title: Optional[str]) -> Optional[str]:
        skip = {name.lower(), (title or "").lower()}
        for selector in self.bio_selectors:
            for n in root.css(selector):
                txt = _clean_text(n.text(deep=True))
                if len(txt) < 40 or txt.lower() in skip:
                    continue
                return txt[: self.max_bio_len]
        return None

    def _record_from_card(self, root: Node, base_url: str, idx: int) -> Optional[PersonRecord]:
        name = self._find_name(root)
        if not name:
            return None
        title = self._find_title(root, name)
        fields: Dict[str, Any] = {
            "name": name,
            "title": title,
            "bio": self._find_bio(root, name, title),
            "order_index": idx,
            "source": self.name,
        }
        img = root.css_first("img")
        if img is not None:
            fields["image_url"] = _image_src(img, base_url)
        # the card itself may be the link
        anchors = list(root.css("a[href]"))
        if root.tag == "a" and (root.attrs or {}).get("href"):
            anchors.insert(0, root)
        for a in anchors:
            href = ((a.attrs or {}).get("href") or "").strip()
            if not href:
                continue
            kind = classify_link(href if href.lower().startswith(("mailto:", "tel:")) else _abs_url(base_url, href))
            if kind == "email":
                fields.setdefault("email", clean_email(href))
            elif kind == "phone":
                fields.setdefault("phone", _phone_from_tel(href))
            elif kind:
                fields.setdefault(kind, _abs_url(base_url, href))
            else:
                url = _abs_url(base_url, href)
                if not url:
                    continue
                if _same_site(base_url, url):
                    fields.setdefault("profile_url", url)
                elif re.search(r"\b(website|blog|homepage)\b", _clean_text(a.text(deep=True)), re.I):
                    fields.setdefault("personal_website", url)
        fields = {k: v for k, v in fields.items() if v is not None}
        return PersonRecord(**fields)


# -------------------------
# 3. Free text fallback
# -------------------------
_NAME_PART = r"[A-Z][\w'’\-]+(?:\s+(?:[A-Z][\w'’\-\.]+|[a-z]{1,3}\s+[A-Z][\w'’\-]+)){1,3}"
_NAME_TITLE_RE = re.compile(rf"^(?P<name>{_NAME_PART})\s*(?:,|\s[-–—|]\s)\s*(?P<title>[^\n]{{2,100}})$")
_BARE_NAME_RE = re.compile(rf"^(?P<name>{_NAME_PART})$")


class FreeTextStrategy(ExtractionStrategy):
    """Scans visible text for "Capitalized Words, optional title" lines.

    A known source of false positives (slogans, headings); the name filter is a
    tunable denylist, not a classifier.
    """

    name = "free_text"
    fallback_only = True
    max_records = 200

    def try_extract(self, parser: HTMLParser, base_url: str) -> List[PersonRecord]:
        doc = HTMLParser(parser.html or "")
        doc.strip_tags(list(SKIP_TEXT_TAGS))
        for hidden in doc.css("[hidden], [aria-hidden='true']"):
            hidden.decompose()
        out: List[PersonRecord] = []
        seen: Set[str] = set()

        def add(name: Optional[str], title: Optional[str]) -> None:
            name = clean_name(name)
            if not name or not is_plausible_name(name):
                return
            key = name.lower()
            if key in seen or len(out) >= self.max_records:
                return
            seen.add(key)
            fields: Dict[str, Any] = {"name": name, "order_index": len(out), "source": self.name}
            if title and _clean_text(title):
                fields["title"] = _clean_text(title)
            out.append(PersonRecord(**fields))

        for h in doc.css("h1, h2, h3, h4, h5, h6"):
            txt = _clean_text(h.text(deep=True))
            m = _BARE_NAME_RE.match(txt)
            if m:
                add(m.group("name"), None)
        body = doc.body or doc.root
        text = body.text(deep=True, separator="\n") if body is not None else ""
        for line in text.splitlines():
            line = _clean_text(line)
            if not line or len(line) > 160:
                continue
            m = _NAME_TITLE_RE.match(line)
            if m:
                add(m.group("name"), m.group("title"))
        return out


DEFAULT_STRATEGIES = (StructuredDataStrategy, SelectorCascadeStrategy, FreeTextStrategy)


class ExtractionEngine:
    """Runs the ordered strategies over one HTML document."""

    def __init__(self, strategies: Optional[List[ExtractionStrategy]] = None) -> None:
        self.strategies: List[ExtractionStrategy] = (
            list(strategies) if strategies is not None else [cls() for cls in DEFAULT_STRATEGIES]
        )

    def extract(self, html: Optional[str], base_url: str) -> List[PersonRecord]:
        if not html:
            return []
        parser = HTMLParser(html)
        records: List[PersonRecord] = []
        for strategy in self.strategies:
            if strategy.fallback_only and records:
                continue
            try:
                found = strategy.try_extract(parser, base_url)
            except Exception as e:
                # One broken strategy must not lose the others' results
                print(f"extract: strategy {strategy.name} failed on {base_url}: {e}")
                continue
            records.extend(found)
        return records
