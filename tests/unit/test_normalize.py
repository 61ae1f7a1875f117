import pytest

from roster.pipeline.normalize import (
    identity_key_for,
    is_name_key,
    normalize,
    normalize_email,
    normalize_name,
    profile_id_from_url,
)
from roster.schemas import PersonRecord, StoredMember


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("  Jane   Doe ", "jane doe"),
        ("Jane O’Brien-Smith, Jr.", "jane o'brien-smith jr"),
        ("José Álvarez", "josé álvarez"),
        ("Dr. John  Smith", "dr john smith"),
        ("A . B", "a b"),
        ("", ""),
        (None, ""),
    ],
)
def test_normalize_name(raw, expected):
    assert normalize_name(raw) == expected


@pytest.mark.parametrize(
    "raw",
    ["  Jane   Doe ", "Jane O’Brien-Smith, Jr.", "ÉLODIE  d'Arc", "x_y z", "  -- ", "Zoë (Zo) Park"],
)
def test_normalize_name_idempotent(raw):
    once = normalize_name(raw)
    assert normalize_name(once) == once


@pytest.mark.parametrize(
    "url,expected",
    [
        ("https://www.linkedin.com/in/Jane-Doe-123/", "jane-doe-123"),
        ("https://linkedin.com/in/janedoe?trk=profile", "janedoe"),
        ("https://uk.linkedin.com/in/j%C3%B6rg-m#about", "jörg-m"),
        ("https://www.linkedin.com/pub/john-smith/1/2/3", "john-smith"),
        ("https://www.linkedin.com/company/acme", None),
        ("https://example.com/in/janedoe", None),
        (None, None),
    ],
)
def test_profile_id_from_url(url, expected):
    assert profile_id_from_url(url) == expected


def test_normalize_email():
    assert normalize_email(" Jane@Example.com ") == "jane@example.com"
    assert normalize_email("mailto:jane@example.com?subject=x") == "jane@example.com"
    assert normalize_email("jane at example") is None


class TestIdentityPrecedence:
    def test_linkedin_beats_email(self):
        rec = PersonRecord(
            name="Jane Doe",
            linkedin_url="https://www.linkedin.com/in/janedoe/",
            email="jane@acme.com",
        )
        assert normalize(rec).identity_key == "linkedin:janedoe"

    def test_linkedin_found_in_profile_url(self):
        rec = PersonRecord(name="Jane Doe", profile_url="https://linkedin.com/in/JaneDoe")
        assert normalize(rec).identity_key == "linkedin:janedoe"

    def test_email_beats_name(self):
        rec = PersonRecord(name="Jane Doe", email="Jane@Acme.com")
        assert normalize(rec).identity_key == "email:jane@acme.com"

    @pytest.mark.parametrize("raw", ["a@b", "jane@acme.com", "mailto:Jane@Acme.com?subject=hi", "jane@"])
    def test_record_email_and_key_agree(self, raw):
        rec = PersonRecord(name="Jane Doe", email=raw)
        key = normalize(rec).identity_key
        if rec.email is None:
            assert key == "name:jane doe"
        else:
            assert key == "email:" + rec.email
        assert normalize_email(raw) == rec.email

    def test_name_fallback(self):
        rec = PersonRecord(name="Jane  Doe", profile_url="https://acme.com/team/jane")
        ident = normalize(rec)
        assert ident.identity_key == "name:jane doe"
        assert ident.normalized_name == "jane doe"

    def test_same_inputs_same_identity(self):
        a = PersonRecord(name="Jane Doe", email="jane@acme.com", title="Partner")
        b = PersonRecord(name="Jane Doe", email="jane@acme.com", title="Principal")
        assert normalize(a) == normalize(b)


def test_normalize_accepts_stored_member_and_string():
    m = StoredMember(
        id="m1", target_id="t", identity_key="email:jane@acme.com", name="Jane Doe",
        normalized_name="jane doe", email="jane@acme.com",
    )
    assert normalize(m).identity_key == "email:jane@acme.com"
    assert normalize("Jane Doe").identity_key == "name:jane doe"


def test_identity_key_for_and_is_name_key():
    assert identity_key_for("Jane Doe") == "name:jane doe"
    assert is_name_key("name:jane doe")
    assert not is_name_key("email:jane@acme.com")
    assert not is_name_key("linkedin:janedoe")
