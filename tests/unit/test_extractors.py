from __future__ import annotations

import pytest

from roster.pipeline.dedupe import dedupe
from roster.pipeline.extractors import (
    ExtractionEngine,
    FreeTextStrategy,
    SelectorCascadeStrategy,
    StructuredDataStrategy,
    classify_link,
    clean_name,
    is_plausible_name,
)
from roster.schemas import ExtractionMethod


BASE = "https://example.com/team"

CARDS_HTML = """
<html><body>
<nav><a href="/about">About Us</a><a href="/team">Our Team</a></nav>
<section class="team-grid">
  <div class="team-member">
    <img data-src="/img/jane.jpg?v=2" alt="Jane Doe">
    <h3 class="name">Jane Doe</h3>
    <p class="title">Managing Partner</p>
    <a href="https://www.linkedin.com/in/janedoe/">LinkedIn</a>
    <a href="mailto:Jane@Example.com">Email</a>
  </div>
  <div class="team-member">
    <h3 class="name">John Smith</h3>
    <p class="title">Principal</p>
    <a href="/team/john-smith">Bio</a>
  </div>
  <div class="team-member">
    <h3 class="name">Ana María López</h3>
  </div>
</section>
</body></html>
"""

JSONLD_HTML = """
<html><head>
<script type="application/ld+json">
{"@context": "https://schema.org", "@graph": [
  {"@type": "Organization", "name": "Acme Ventures", "employee": [
    {"@type": "Person", "name": "Jane Doe", "jobTitle": "Managing Partner",
     "image": {"@type": "ImageObject", "url": "/img/jane.jpg"},
     "sameAs": ["https://www.linkedin.com/in/janedoe", "https://twitter.com/janedoe"]}
  ]},
  {"@type": "Person", "name": "Raj Patel", "email": "mailto:raj@acme.vc",
   "address": {"@type": "PostalAddress", "addressLocality": "London"}}
]}
</script>
<script type="application/ld+json">{not valid json</script>
</head><body><h1>Team</h1></body></html>
"""

MICRODATA_HTML = """
<html><body>
<div itemscope itemtype="https://schema.org/Person">
  <span itemprop="name">Li Wei</span>
  <span itemprop="jobTitle">Associate</span>
  <a itemprop="url" href="/people/li-wei">Profile</a>
</div>
</body></html>
"""

FREE_TEXT_HTML = """
<html><body><main>
<h2>Leadership</h2>
<p>Jane Doe, Managing Partner</p>
<p>John Smith – Principal</p>
<p>We Invest Early</p>
<script>var x = "Fake Person, CEO";</script>
<footer>Contact Us - Privacy Policy</footer>
</main></body></html>
"""


@pytest.mark.parametrize(
    "name",
    ["Jane Doe", "Ana María López", "Mary-Jane O'Neil", "Jean de la Fontaine", "Li Wei"],
)
def test_plausible_names(name):
    assert is_plausible_name(name)


@pytest.mark.parametrize(
    "name",
    [
        "Our Team", "Load More", "View Profile", "Get In Touch", "Contact Us", "Read More",
        "Managing Partner", "jane doe", "Jane", "Jane Doe 2", "info@acme.com",
        "The Future of Observability", "One Two Three Four Five Six", "",
    ],
)
def test_implausible_names(name):
    assert not is_plausible_name(name)


def test_clean_name_strips_honorific_and_credentials():
    assert clean_name("Dr. Jane Doe, PhD") == "Jane Doe"
    assert clean_name("JANE DOE\nManaging Partner") == "Jane Doe"
    assert clean_name("   ") is None


@pytest.mark.parametrize(
    "url,field",
    [
        ("https://www.linkedin.com/in/janedoe", "linkedin_url"),
        ("https://x.com/janedoe", "twitter_url"),
        ("https://twitter.com/janedoe", "twitter_url"),
        ("https://github.com/janedoe", "github_url"),
        ("mailto:jane@acme.com", "email"),
        ("tel:+1 555 123 4567", "phone"),
        ("https://acme.com/team/jane", None),
    ],
)
def test_classify_link(url, field):
    assert classify_link(url) == field


class TestSelectorCascade:
    def test_cards_with_fields(self):
        recs = ExtractionEngine([SelectorCascadeStrategy()]).extract(CARDS_HTML, BASE)
        assert [r.name for r in recs] == ["Jane Doe", "John Smith", "Ana María López"]

        jane = recs[0]
        assert jane.title == "Managing Partner"
        assert jane.image_url == "https://example.com/img/jane.jpg?v=2"
        assert jane.linkedin_url == "https://www.linkedin.com/in/janedoe/"
        assert jane.email == "jane@example.com"
        assert jane.source == "cascade"
        assert jane.order_index == 0

        john = recs[1]
        assert john.profile_url == "https://example.com/team/john-smith"
        assert john.title == "Principal"

    def test_card_without_optional_fields_yields_name_only(self):
        recs = ExtractionEngine([SelectorCascadeStrategy()]).extract(CARDS_HTML, BASE)
        ana = recs[2]
        assert ana.title is None
        assert ana.image_url is None
        assert ana.email is None

    def test_navigation_labels_not_extracted(self):
        recs = ExtractionEngine([SelectorCascadeStrategy()]).extract(CARDS_HTML, BASE)
        names = {r.name for r in recs}
        assert "About Us" not in names
        assert "Our Team" not in names

    def test_boilerplate_card_rejected(self):
        html = """
        <div class="team-card"><h3>Load More</h3></div>
        <div class="team-card"><h3>View Profile</h3></div>
        """
        assert ExtractionEngine([SelectorCascadeStrategy()]).extract(html, BASE) == []

    def test_section_wrapping_cards_not_extracted(self):
        html = """
        <section class="team-section">
          <div class="team-member"><div class="name">Alice Smith</div><p class="title">Partner</p></div>
          <div class="team-member"><div class="name">Bob Jones</div>
            <a href="https://www.linkedin.com/in/bobjones">LinkedIn</a></div>
          <div class="team-member"><div class="name">Carol White</div></div>
        </section>
        """
        recs = ExtractionEngine([SelectorCascadeStrategy()]).extract(html, BASE)
        assert [r.name for r in recs] == ["Alice Smith", "Bob Jones", "Carol White"]
        assert recs[0].linkedin_url is None
        assert recs[1].linkedin_url == "https://www.linkedin.com/in/bobjones"

        snap = dedupe(recs, target_id="acme", method=ExtractionMethod.STATIC)
        by_name = {r.name: r for r in snap.records}
        assert set(by_name) == {"Alice Smith", "Bob Jones", "Carol White"}
        assert by_name["Alice Smith"].title == "Partner"
        assert by_name["Bob Jones"].title is None

    def test_card_with_company_name_field_is_kept(self):
        html = """
        <div class="team-member"><h3>Jane Doe</h3><span class="company-name">Acme Ventures</span></div>
        <div class="team-member"><h3>John Smith</h3><span class="company-name">Acme Ventures</span></div>
        <div class="team-member"><h3>Raj Patel</h3><span class="company-name">Acme Ventures</span></div>
        """
        recs = ExtractionEngine([SelectorCascadeStrategy()]).extract(html, BASE)
        assert [r.name for r in recs] == ["Jane Doe", "John Smith", "Raj Patel"]


class TestStructuredData:
    def test_jsonld_graph_and_nested_employees(self):
        recs = ExtractionEngine([StructuredDataStrategy()]).extract(JSONLD_HTML, BASE)
        by_name = {r.name: r for r in recs}
        assert set(by_name) == {"Jane Doe", "Raj Patel"}

        jane = by_name["Jane Doe"]
        assert jane.title == "Managing Partner"
        assert jane.image_url == "https://example.com/img/jane.jpg"
        assert jane.linkedin_url == "https://www.linkedin.com/in/janedoe"
        assert jane.twitter_url == "https://twitter.com/janedoe"
        assert jane.source == "structured"

        raj = by_name["Raj Patel"]
        assert raj.email == "raj@acme.vc"
        assert raj.location == "London"

    def test_microdata_person(self):
        recs = ExtractionEngine([StructuredDataStrategy()]).extract(MICRODATA_HTML, BASE)
        assert len(recs) == 1
        assert recs[0].name == "Li Wei"
        assert recs[0].title == "Associate"
        assert recs[0].profile_url == "https://example.com/people/li-wei"


class TestFreeText:
    def test_name_title_lines(self):
        recs = ExtractionEngine([FreeTextStrategy()]).extract(FREE_TEXT_HTML, BASE)
        by_name = {r.name: r for r in recs}
        assert set(by_name) == {"Jane Doe", "John Smith"}
        assert by_name["Jane Doe"].title == "Managing Partner"
        assert by_name["John Smith"].title == "Principal"
        assert all(r.source == "free_text" for r in recs)

    def test_skips_script_and_footer(self):
        recs = ExtractionEngine([FreeTextStrategy()]).extract(FREE_TEXT_HTML, BASE)
        names = {r.name for r in recs}
        assert "Fake Person" not in names
        assert "Contact Us" not in names


class TestEngine:
    def test_all_strategies_concatenated(self):
        html = JSONLD_HTML.replace("<body><h1>Team</h1></body>", CARDS_HTML.split("<html>")[1].split("</html>")[0])
        recs = ExtractionEngine().extract(html, BASE)
        sources = {r.source for r in recs}
        assert sources == {"structured", "cascade"}
        assert sum(1 for r in recs if r.name == "Jane Doe") == 2

    def test_free_text_only_as_fallback(self):
        html = CARDS_HTML.replace("</section>", "</section><p>Maria Rossi, Partner</p>")
        recs = ExtractionEngine().extract(html, BASE)
        assert "Maria Rossi" not in {r.name for r in recs}

    def test_free_text_used_when_nothing_else(self):
        recs = ExtractionEngine().extract(FREE_TEXT_HTML, BASE)
        assert {r.name for r in recs} == {"Jane Doe", "John Smith"}

    def test_empty_html(self):
        assert ExtractionEngine().extract("", BASE) == []
        assert ExtractionEngine().extract(None, BASE) == []

    def test_broken_strategy_does_not_lose_others(self):
        class Boom(StructuredDataStrategy):
            name = "boom"

            def try_extract(self, parser, base_url):
                raise RuntimeError("boom")

        recs = ExtractionEngine([Boom(), SelectorCascadeStrategy()]).extract(CARDS_HTML, BASE)
        assert len(recs) == 3
