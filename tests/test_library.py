from __future__ import annotations

import json

import pytest

from pdfformkit.library import (
    NOT_ASSIGNED_ID,
    NOT_ASSIGNED_NAME,
    SESSION_KEY,
    CategoryBoard,
    LibraryError,
    TemplateLibrary,
    apply_defaults,
    build_profile,
    clear_session,
    file_key,
    load_field_values,
    match_score,
    parse_profile,
    profile_filename,
    restore_session,
    save_field_values,
    save_session,
    suggest_value,
)
from pdfformkit.parser import extract_fields
from pdfformkit.storage import MemoryStore

FIELDS = ["Name", "Email", "Phone", "Notes"]


@pytest.fixture
def store():
    return MemoryStore()


def test_templates_newest_first_and_export(store):
    library = TemplateLibrary(store)

    older = library.save("Home", {"Name": "Ann", "Notes": ""}, "intake.pdf")
    newer = library.save("  Work ", {"Name": "Ann Smith"}, "intake.pdf")

    listed = library.list()
    assert [t.id for t in listed] == [newer.id, older.id]
    assert listed[0].name == "Work"
    assert listed[1].fields == {"Name": "Ann", "Notes": ""}

    filename, text = library.export(older.id)
    assert filename == "Home_template.json"
    assert json.loads(text)["documentName"] == "intake.pdf"

    library.delete(older.id)
    assert [t.id for t in library.list()] == [newer.id]
    with pytest.raises(LibraryError):
        library.get(older.id)


def test_template_name_required(store):
    with pytest.raises(LibraryError):
        TemplateLibrary(store).save("   ", {}, "x.pdf")


def test_profile_round_trip(store):
    board = CategoryBoard(store, "intake", FIELDS)
    profile = build_profile({"Name": "Ann"}, board.categories)

    parsed = parse_profile(profile.to_json())

    assert parsed.defaults == {"Name": "Ann"}
    assert parsed.field_organization == {NOT_ASSIGNED_NAME: FIELDS}
    assert profile_filename("My Profile!") == "My Profile__profile.json"


@pytest.mark.parametrize("text", ["not json", "[]", json.dumps({"aliases": {}})])
def test_parse_profile_rejects(text):
    with pytest.raises(LibraryError):
        parse_profile(text)


def test_suggest_value_order():
    defaults = {"Full Name": "Ann", "Father Name": "Bob", "Email": "a@example.com"}

    assert suggest_value("Email", defaults) == "a@example.com"
    assert suggest_value("Mail", defaults, aliases={"Mail": "Email"}) == "a@example.com"
    assert suggest_value("full name", defaults) == "Ann"
    assert suggest_value("Zip Code", defaults) is None


def test_match_score_penalizes_different_people():
    assert match_score("Mother Name", "Father Name") < 30
    assert match_score("Phone", "Phone Number") >= 85


def test_apply_defaults_only_touches_known_names():
    values = {"Name": "", "Email": ""}

    updated = apply_defaults(values, {"Name": "Ann", "Extra": "x"}, fuzzy=False)

    assert updated == {"Name": "Ann", "Email": ""}


def test_category_board_operations(store):
    board = CategoryBoard(store, "intake", FIELDS)
    contact = board.create("Contact")

    board.move_fields(["Email", "Phone"], contact.id)
    assert board.category_of("Email") == "Contact"
    assert board.get(NOT_ASSIGNED_ID).fields == ["Name", "Notes"]

    board.move_down(contact.id, "Email")
    assert board.get(contact.id).fields == ["Phone", "Email"]
    board.move_up(contact.id, "Email")
    assert board.get(contact.id).fields == ["Email", "Phone"]

    board.rename(contact.id, "Reach")
    reloaded = CategoryBoard(store, "intake", FIELDS)
    assert reloaded.category_of("Phone") == "Reach"

    assert reloaded.delete(NOT_ASSIGNED_ID) is False
    assert reloaded.delete(contact.id) is True
    assert sorted(reloaded.get(NOT_ASSIGNED_ID).fields) == sorted(FIELDS)


def test_organization_models(store):
    board = CategoryBoard(store, "intake", FIELDS)
    board.move_fields(["Name"], board.create("Person").id)
    model = board.save_model("v1")

    other = CategoryBoard(MemoryStore(), "intake", FIELDS + ["Signature"])
    other.load_model(board.saved_models()[0])
    assert other.organization() == {
        NOT_ASSIGNED_NAME: ["Email", "Phone", "Notes", "Signature"],
        "Person": ["Name"],
    }

    stranger = CategoryBoard(MemoryStore(), "lease", FIELDS)
    with pytest.raises(LibraryError, match="different PDF"):
        stranger.load_model(model)

    filename, text = board.export_model()
    assert filename == "intake_organization.json"
    imported = CategoryBoard(MemoryStore(), "intake", FIELDS).import_model(text)
    assert imported.organization["Person"] == ["Name"]

    with pytest.raises(LibraryError):
        board.import_model("{broken")


def test_session_round_trip(store, name_form):
    result = extract_fields(name_form, "form.pdf")
    save_session(store, "form.pdf", name_form, result)

    restored = restore_session(store)

    assert restored is not None
    record, data = restored
    assert data == name_form
    assert record.file_name == "form.pdf"
    assert record.file_size == len(name_form)
    assert record.pdf_data == result

    clear_session(store)
    assert restore_session(store) is None
    assert store.get(file_key("form.pdf")) is None


def test_session_without_file_is_discarded(store, name_form):
    save_session(store, "form.pdf", name_form, extract_fields(name_form))
    store.remove(file_key("form.pdf"))

    assert restore_session(store) is None
    assert store.get(SESSION_KEY) is None


def test_field_values_per_file(store):
    save_field_values(store, "a.pdf", {"Name": "Ann"})

    assert load_field_values(store, "a.pdf") == {"Name": "Ann"}
    assert load_field_values(store, "b.pdf") == {}
