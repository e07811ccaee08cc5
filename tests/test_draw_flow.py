import datetime

from app.services.assignment import DrawStatus, Reason, validate
from app.services.draw_flow import DrawFlow
from app.services.shared_state import format_timestamp

from conftest import BrokenSessionFactory, FailingSaveStore


def test_record_manual_persists_entry(flow, store):
    result = flow.record_manual("ana", "erin")
    assert result.ok
    assert result.persisted
    assert store.load()["assignments"] == {"ana": "erin"}


def test_record_manual_rejection_is_not_persisted(flow, store):
    flow.record_manual("erin", "ana")
    result = flow.record_manual("thomas", "ana")
    assert not result.ok
    assert result.reason == Reason.RECIPIENT_TAKEN
    assert result.message == "Ana is already assigned to Erin."
    assert store.load()["assignments"] == {"erin": "ana"}


def test_draw_remaining_completes_and_persists(flow, store, family_roster):
    flow.record_manual("michele", "ana")
    result = flow.draw_remaining(seed=42)
    assert result.ok
    assert result.persisted
    assert result.status == DrawStatus.COMPLETED

    saved = store.load()["assignments"]
    assert saved["michele"] == "ana"
    assert len(saved) == len(family_roster.participants)
    assert validate(family_roster.participants, saved).ok


def test_draw_remaining_twice_reports_already_complete(flow):
    first = flow.draw_remaining(seed=1)
    second = flow.draw_remaining()
    assert second.ok
    assert second.status == DrawStatus.ALREADY_COMPLETE
    assert second.assignments == first.assignments
    assert not second.persisted


def test_draw_remaining_infeasible_leaves_state_alone(store, couple_roster):
    flow = DrawFlow(store, couple_roster)
    result = flow.draw_remaining(seed=3)
    assert not result.ok
    assert result.status == DrawStatus.INFEASIBLE
    assert "valid combination" in result.message
    assert store.load()["assignments"] == {}


def test_clear_assignments(flow, store):
    flow.draw_remaining(seed=9)
    result = flow.clear_assignments()
    assert result.ok
    assert result.assignments == {}
    assert store.load()["assignments"] == {}


def test_reveal_for_unassigned_and_assigned(flow):
    pending = flow.reveal_for("ana")
    assert pending.recipient_id is None
    assert "No assignment found yet" in pending.message

    flow.record_manual("ana", "erin")
    view = flow.reveal_for("ana")
    assert view.recipient_id == "erin"
    assert view.recipient_name == "Erin"
    assert view.ideas == ["Spa day gift certificate"]
    assert view.message == "You are shopping for Erin."


def test_status_lists_unassigned_and_rules(flow):
    flow.record_manual("ana", "erin")
    status = flow.status()
    assert "ana" not in {p.id for p in status.unassigned}
    assert len(status.unassigned) == 10
    assert {rule.name for rule in status.rules} >= {"Erin", "Thomas"}
    assert not status.offline


def test_load_failure_blocks_mutation(family_roster):
    store = FailingSaveStore(session_factory=BrokenSessionFactory())
    flow = DrawFlow(store, family_roster)
    result = flow.record_manual("ana", "erin")
    assert not result.ok
    assert result.offline
    assert flow.draw_remaining().offline


def test_offline_reads_use_last_known_state(flow, store):
    flow.record_manual("ana", "erin")
    store._session_factory = BrokenSessionFactory()

    view = flow.reveal_for("ana")
    assert view.recipient_id == "erin"
    assert view.offline


def test_save_failure_reports_unpersisted_mutation(engine, family_roster):
    store = FailingSaveStore()
    store.ensure_table()
    flow = DrawFlow(store, family_roster)

    result = flow.record_manual("ana", "erin")
    assert result.ok
    assert not result.persisted
    assert result.offline
    assert result.assignments == {"ana": "erin"}
    assert "Saving changes failed" in result.message


def test_wishlist_edits(flow):
    assert flow.add_wishlist_entry("wes", "idea", "Bike bell").ok
    assert flow.add_wishlist_entry("wes", "link", "https://example.com/bell").ok
    wishlist = flow.wishlist_for("wes")
    assert wishlist["ideas"] == ["Cycling accessories", "Bike bell"]
    assert wishlist["links"][-1] == "https://example.com/bell"

    assert flow.clear_wishlist("wes").ok
    assert flow.wishlist_for("wes") == {"ideas": [], "links": []}
    assert flow.wishlist_for("ana")["ideas"] == ["Cooking class with Ana"]


def test_wishlist_edits_validate_input(flow):
    assert not flow.add_wishlist_entry("nobody", "idea", "x").ok
    assert not flow.add_wishlist_entry("wes", "poem", "x").ok
    assert not flow.add_wishlist_entry("wes", "idea", "   ").ok


def test_message_board_prunes_old_messages(flow, store):
    now = datetime.datetime(2025, 12, 1, tzinfo=datetime.timezone.utc)
    store.save(
        {
            "messages": [
                {
                    "id": "old",
                    "author": "Ana",
                    "text": "Last year",
                    "createdAt": format_timestamp(now - datetime.timedelta(days=40)),
                }
            ]
        }
    )

    result = flow.post_message("erin", "Party at our place!", now=now)
    assert result.ok
    messages = flow.list_messages(now=now)
    assert [entry["text"] for entry in messages] == ["Party at our place!"]
    assert messages[0]["author"] == "Erin"


def test_post_message_requires_author_and_text(flow):
    assert not flow.post_message(None, "hi").ok
    assert not flow.post_message("ana", "  ").ok
    assert not flow.post_message("ana", "x" * 501).ok


def test_remove_wishlist_entry_by_position(flow):
    flow.add_wishlist_entry("wes", "idea", "Bike bell")
    flow.add_wishlist_entry("wes", "idea", "Rain jacket")

    result = flow.remove_wishlist_entry("wes", "idea", 1)
    assert result.ok
    assert result.message == "Idea removed."
    assert flow.wishlist_for("wes")["ideas"] == ["Cycling accessories", "Rain jacket"]
    assert flow.wishlist_for("wes")["links"] == ["https://example.com/wes-bike-light"]

    assert flow.remove_wishlist_entry("wes", "link", 0).ok
    assert flow.wishlist_for("wes")["links"] == []


def test_remove_wishlist_entry_rejects_bad_input(flow):
    missing = flow.remove_wishlist_entry("wes", "link", 5)
    assert not missing.ok
    assert missing.message == "There is no link number 6 on your wishlist."
    assert not flow.remove_wishlist_entry("wes", "idea", -1).ok
    assert not flow.remove_wishlist_entry("wes", "poem", 0).ok
    assert not flow.remove_wishlist_entry(None, "idea", 0).ok
    assert flow.wishlist_for("wes")["ideas"] == ["Cycling accessories"]


NEW_YEAR = datetime.date(2025, 1, 1)
SUMMER = datetime.date(2025, 6, 1)


def test_list_events_starts_from_roster_defaults(flow):
    events = flow.list_events(today=NEW_YEAR)
    assert [event["id"] for event in events] == [
        "erin-birthday",
        "thomas-birthday",
        "family-reunion",
        "michele-birthday",
        "holiday-party",
    ]
    assert events[0]["location"] == "Denver, CO"


def test_list_events_filters_by_type_and_date(flow):
    assert [event["id"] for event in flow.list_events("party", today=NEW_YEAR)] == [
        "family-reunion",
        "holiday-party",
    ]
    assert [event["id"] for event in flow.list_events(today=SUMMER)] == [
        "michele-birthday",
        "holiday-party",
    ]
    assert len(flow.list_events("all", include_past=True, today=SUMMER)) == 5
    assert flow.list_events("other", today=NEW_YEAR) == []


def test_upcoming_birthdays(flow):
    assert [event["id"] for event in flow.upcoming_birthdays(today=NEW_YEAR)] == [
        "erin-birthday",
        "thomas-birthday",
        "michele-birthday",
    ]
    assert [event["id"] for event in flow.upcoming_birthdays(today=SUMMER)] == ["michele-birthday"]


def test_add_event_persists_with_author(flow, store):
    now = datetime.datetime(2025, 5, 1, 9, 30, tzinfo=datetime.timezone.utc)
    result = flow.add_event("ana", " Summer BBQ ", "2025-08-02", "party", "Ana's backyard", now=now)
    assert result.ok
    assert result.persisted
    assert result.message == "Event added to the shared calendar."

    saved = {event["title"]: event for event in store.load()["events"]}
    assert "Holiday Kickoff Party" in saved
    bbq = saved["Summer BBQ"]
    assert bbq["id"].startswith("event-")
    assert bbq["createdByName"] == "Ana"
    assert bbq["updatedAt"] == "2025-05-01T09:30:00.000Z"

    titles = [event["title"] for event in flow.list_events(today=SUMMER)]
    assert titles == ["Michele's Birthday", "Summer BBQ", "Holiday Kickoff Party"]


def test_add_event_validates_input(flow, store):
    assert not flow.add_event(None, "Picnic", "2025-08-02").ok
    assert not flow.add_event("ana", "   ", "2025-08-02").ok
    assert not flow.add_event("ana", "Picnic", "next saturday").ok
    assert store.load()["events"] == []

    assert flow.add_event("ana", "Picnic", "2025-08-02", "potluck").ok
    picnic = next(event for event in store.load()["events"] if event["title"] == "Picnic")
    assert picnic["type"] == "other"


def test_add_event_note_updates_default_event(flow):
    now = datetime.datetime(2025, 11, 1, tzinfo=datetime.timezone.utc)
    result = flow.add_event_note("wes", "holiday-party", " Bring ornaments ", now=now)
    assert result.ok
    assert result.message == "Note updated."

    party = flow.list_events("party", today=SUMMER)[-1]
    assert party["id"] == "holiday-party"
    assert party["note"] == "Bring ornaments"
    assert party["updatedByName"] == "Wes"
    assert party["location"] == "Wes & Michele's home"


def test_add_event_note_rejects_unknown_event(flow):
    result = flow.add_event_note("wes", "nope", "hi")
    assert not result.ok
    assert "nope" in result.message
    assert not flow.add_event_note(None, "holiday-party", "hi").ok
