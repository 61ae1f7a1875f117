from datetime import datetime, timedelta, timezone

from roster.db.memory import InMemoryStore
from roster.pipeline.differ import MUTABLE_FIELDS, diff, member_id_for
from roster.schemas import (
    ChangeType,
    ExtractionMethod,
    PersonRecord,
    RosterSnapshot,
    StoredMember,
)


T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)
T1 = T0 + timedelta(days=1)
T2 = T0 + timedelta(days=2)


def _member(mid, key, name, **kw):
    kw.setdefault("first_seen", T0)
    kw.setdefault("last_seen", T0)
    return StoredMember(
        id=mid, target_id="acme", identity_key=key, name=name,
        normalized_name=name.lower(), **kw,
    )


def _snapshot(*records, at=T1):
    return RosterSnapshot(target_id="acme", records=list(records),
                          method=ExtractionMethod.STATIC, captured_at=at)


def _apply(store, result):
    for m in result.deactivated:
        store.deactivate_member(m.id)
    for m in result.upserts:
        store.upsert_member(m)
    for e in result.events:
        store.append_change_event(e)


def _types(result):
    return [e.change_type for e in result.events]


def test_one_removed_one_added_nothing_updated():
    previous = [
        _member("m1", "email:a@acme.com", "Amy Able", email="a@acme.com"),
        _member("m2", "email:b@acme.com", "Ben Brown", email="b@acme.com"),
    ]
    snap = _snapshot(
        PersonRecord(name="Amy Able", email="a@acme.com"),
        PersonRecord(name="Cat Cole", email="c@acme.com"),
    )
    result = diff("acme", previous, snap)

    assert result.counts() == {"added": 1, "removed": 1, "updated": 0}
    added = [e for e in result.events if e.change_type == ChangeType.ADDED][0]
    removed = [e for e in result.events if e.change_type == ChangeType.REMOVED][0]
    assert added.member_name == "Cat Cole"
    assert added.previous_data is None
    assert added.new_data["email"] == "c@acme.com"
    assert removed.member_name == "Ben Brown"
    assert removed.member_id == "m2"
    assert removed.previous_data["name"] == "Ben Brown"
    assert removed.new_data is None
    assert [m.id for m in result.deactivated] == ["m2"]
    assert all(not m.is_active for m in result.deactivated)


def test_unchanged_roster_is_idempotent():
    store = InMemoryStore()
    snap = _snapshot(
        PersonRecord(name="Amy Able", title="Partner", email="a@acme.com", order_index=0),
        PersonRecord(name="Ben Brown", title="Principal", order_index=1),
    )
    first = diff("acme", store.get_active_roster("acme"), snap)
    assert _types(first) == [ChangeType.ADDED, ChangeType.ADDED]
    _apply(store, first)

    again = _snapshot(*snap.records, at=T2)
    second = diff("acme", store.get_active_roster("acme"), again)
    assert second.events == []
    assert second.deactivated == []
    assert {m.last_seen for m in second.upserts} == {T2}
    # first_seen survives the refresh
    assert {m.first_seen for m in second.upserts} == {T1}


def test_counts_conserved():
    previous = [
        _member("m1", "name:amy able", "Amy Able"),
        _member("m2", "name:ben brown", "Ben Brown"),
        _member("m3", "name:cat cole", "Cat Cole"),
    ]
    snap = _snapshot(
        PersonRecord(name="Amy Able"),
        PersonRecord(name="Dan Dole"),
        PersonRecord(name="Eve East"),
        PersonRecord(name="Fay Fox"),
    )
    result = diff("acme", previous, snap)
    counts = result.counts()
    matched = len(result.upserts) - counts["added"]
    assert matched + counts["added"] == len(snap)
    assert matched + counts["removed"] == len(previous)


def test_order_of_inputs_does_not_change_events():
    previous = [
        _member("m1", "email:a@acme.com", "Amy Able", email="a@acme.com", title="Partner"),
        _member("m2", "name:ben brown", "Ben Brown"),
        _member("m3", "name:cat cole", "Cat Cole"),
    ]
    records = [
        PersonRecord(name="Amy Able", email="a@acme.com", title="General Partner"),
        PersonRecord(name="Dan Dole"),
        PersonRecord(name="Ben Brown"),
    ]
    a = diff("acme", previous, _snapshot(*records))
    b = diff("acme", list(reversed(previous)), _snapshot(*reversed(records)))
    assert [e.model_dump() for e in a.events] == [e.model_dump() for e in b.events]
    assert [m.id for m in a.upserts] == [m.id for m in b.upserts]


def test_changed_field_emits_before_and_after():
    previous = [_member("m1", "email:a@acme.com", "Amy Able", email="a@acme.com", title="Partner")]
    snap = _snapshot(PersonRecord(name="Amy Able", email="a@acme.com", title="Managing Partner"))
    result = diff("acme", previous, snap)

    assert _types(result) == [ChangeType.UPDATED]
    event = result.events[0]
    assert event.member_id == "m1"
    assert event.previous_data == {"title": "Partner"}
    assert event.new_data == {"title": "Managing Partner"}
    assert result.upserts[0].title == "Managing Partner"
    assert result.upserts[0].id == "m1"


def test_missing_field_keeps_stored_value():
    previous = [_member("m1", "name:amy able", "Amy Able", title="Partner", bio="Seed investor.")]
    result = diff("acme", previous, _snapshot(PersonRecord(name="Amy Able")))
    assert result.events == []
    assert result.upserts[0].title == "Partner"
    assert result.upserts[0].bio == "Seed investor."


def test_image_query_string_is_not_a_change():
    previous = [_member("m1", "name:amy able", "Amy Able", image_url="https://cdn.acme.com/amy.jpg?w=400")]
    snap = _snapshot(PersonRecord(name="Amy Able", image_url="https://cdn.acme.com/amy.jpg?w=800"))
    assert diff("acme", previous, snap).events == []


def test_new_photo_is_a_change():
    previous = [_member("m1", "name:amy able", "Amy Able", image_url="https://cdn.acme.com/amy.jpg")]
    snap = _snapshot(PersonRecord(name="Amy Able", image_url="https://cdn.acme.com/amy-2024.jpg"))
    result = diff("acme", previous, snap)
    assert _types(result) == [ChangeType.UPDATED]
    assert set(result.events[0].new_data) == {"image_url"}


def test_name_keyed_member_upgraded_when_email_appears():
    previous = [_member("m1", "name:amy able", "Amy Able")]
    snap = _snapshot(PersonRecord(name="Amy Able", email="amy@acme.com"))
    result = diff("acme", previous, snap)

    assert _types(result) == [ChangeType.UPDATED]
    assert result.events[0].new_data == {"email": "amy@acme.com"}
    upserted = result.upserts[0]
    assert upserted.id == "m1"
    assert upserted.identity_key == "email:amy@acme.com"


def test_keyed_member_matches_name_only_record():
    previous = [_member("m1", "email:amy@acme.com", "Amy Able", email="amy@acme.com")]
    result = diff("acme", previous, _snapshot(PersonRecord(name="Amy Able")))
    assert result.events == []
    assert result.upserts[0].identity_key == "email:amy@acme.com"


def test_email_keyed_member_upgraded_when_linkedin_appears():
    previous = [_member("m1", "email:amy@acme.com", "Amy Able", email="amy@acme.com")]
    snap = _snapshot(PersonRecord(name="Amy Able", email="amy@acme.com",
                                  linkedin_url="https://www.linkedin.com/in/amyable"))
    result = diff("acme", previous, snap)

    assert _types(result) == [ChangeType.UPDATED]
    assert result.events[0].new_data == {"linkedin_url": "https://www.linkedin.com/in/amyable"}
    assert result.upserts[0].id == "m1"
    assert result.upserts[0].identity_key == "linkedin:amyable"
    assert result.deactivated == []


def test_different_keys_same_name_not_matched():
    previous = [_member("m1", "email:amy@acme.com", "Amy Able", email="amy@acme.com")]
    snap = _snapshot(PersonRecord(name="Amy Able", email="amy.able@acme.com"))
    result = diff("acme", previous, snap)
    assert result.counts() == {"added": 1, "removed": 1, "updated": 0}


def test_duplicate_active_members_collapse_to_oldest():
    previous = [
        _member("m2", "name:amy able", "Amy Able", first_seen=T0 + timedelta(hours=1)),
        _member("m1", "name:amy able", "Amy Able"),
    ]
    result = diff("acme", previous, _snapshot(PersonRecord(name="Amy Able")))
    assert [m.id for m in result.upserts] == ["m1"]
    assert [m.id for m in result.deactivated] == ["m2"]
    assert _types(result) == [ChangeType.REMOVED]


def test_empty_snapshot_removes_everyone():
    previous = [_member("m1", "name:amy able", "Amy Able"), _member("m2", "name:ben brown", "Ben Brown")]
    result = diff("acme", previous, _snapshot())
    assert result.counts()["removed"] == 2
    assert result.upserts == []


def test_member_ids_are_stable():
    a = member_id_for("acme", "name:amy able", T1)
    assert a == member_id_for("acme", "name:amy able", T1)
    assert a != member_id_for("acme", "name:amy able", T2)
    assert a != member_id_for("other", "name:amy able", T1)


def test_mutable_fields_exclude_identity_and_timestamps():
    for f in ("name", "identity_key", "first_seen", "last_seen", "is_active", "order_index"):
        assert f not in MUTABLE_FIELDS
