from datetime import datetime, timedelta, timezone

import pytest

from cloudvault import directory
from cloudvault.errors import DuplicateName, NotFound, ValidationError

from conftest import make_file, make_user, principal_of


@pytest.fixture
def alice(db):
    return principal_of(make_user(db, "alice"))


@pytest.fixture
def bob(db):
    return principal_of(make_user(db, "bob"))


# ---------- Folders ----------

def test_create_and_list_root_folders_sorted(db, alice):
    for name in ("Photos", "Archive", "Music"):
        directory.create_folder(db, alice, name)

    names = [f.name for f in directory.list_folders(db, alice)]
    assert names == ["Archive", "Music", "Photos"]


def test_list_folders_by_parent(db, alice):
    parent = directory.create_folder(db, alice, "Work")
    directory.create_folder(db, alice, "2024", parent.id)
    directory.create_folder(db, alice, "Home")

    children = directory.list_folders(db, alice, parent.id)
    assert [f.name for f in children] == ["2024"]
    assert [f.name for f in directory.list_folders(db, alice)] == ["Home", "Work"]


def test_duplicate_sibling_name_rejected(db, alice):
    directory.create_folder(db, alice, "Docs")
    with pytest.raises(DuplicateName):
        directory.create_folder(db, alice, "Docs")
    # name is trimmed before the check
    with pytest.raises(DuplicateName):
        directory.create_folder(db, alice, "  Docs ")


def test_same_name_allowed_elsewhere(db, alice, bob):
    parent = directory.create_folder(db, alice, "Docs")
    nested = directory.create_folder(db, alice, "Docs", parent.id)
    other_user = directory.create_folder(db, bob, "Docs")
    different_case = directory.create_folder(db, alice, "docs")

    assert nested.parent_id == parent.id
    assert other_user.user_id == "bob"
    assert different_case.name == "docs"


def test_create_folder_requires_name(db, alice):
    with pytest.raises(ValidationError):
        directory.create_folder(db, alice, "   ")


def test_create_folder_under_foreign_parent(db, alice, bob):
    parent = directory.create_folder(db, bob, "Private")
    with pytest.raises(NotFound):
        directory.create_folder(db, alice, "Sneaky", parent.id)


def test_breadcrumb(db, alice):
    a = directory.create_folder(db, alice, "A")
    b = directory.create_folder(db, alice, "B", a.id)
    c = directory.create_folder(db, alice, "C", b.id)

    crumbs = directory.folder_breadcrumb(db, alice, c.id)
    assert [c["name"] for c in crumbs] == ["Root", "A", "B", "C"]
    assert crumbs[-1]["path"] == "/A/B/C"
    assert crumbs[0]["id"] is None


# ---------- Files ----------

def test_search_is_case_insensitive_substring(db, alice):
    owner = make_user(db, "carol")
    make_file(db, owner, name="Report_1_abc.PDF", original_name="Report.PDF", type="application/pdf")
    make_file(db, owner, name="notes_1_abc.txt", original_name="notes.txt")

    page = directory.list_files(db, principal_of(owner), search="report")
    assert [f.original_name for f in page.items] == ["Report.PDF"]


def test_search_matches_stored_or_original_name(db):
    owner = make_user(db, "dave")
    make_file(db, owner, name="renamed.txt", original_name="draft.txt")

    assert directory.list_files(db, principal_of(owner), search="DRAFT").total == 1
    assert directory.list_files(db, principal_of(owner), search="renamed").total == 1
    assert directory.list_files(db, principal_of(owner), search="missing").total == 0


def test_search_treats_wildcards_literally(db):
    owner = make_user(db, "erin")
    make_file(db, owner, name="100%_done.txt")
    make_file(db, owner, name="1000 things.txt")

    page = directory.list_files(db, principal_of(owner), search="100%")
    assert [f.name for f in page.items] == ["100%_done.txt"]


def test_root_listing_is_not_recursive(db, alice):
    owner = make_user(db, "frank")
    p = principal_of(owner)
    folder = directory.create_folder(db, p, "Inbox")
    make_file(db, owner, name="root.txt")
    make_file(db, owner, name="nested.txt", folder_id=folder.id)

    assert [f.name for f in directory.list_files(db, p).items] == ["root.txt"]
    assert [f.name for f in directory.list_files(db, p, folder_id=folder.id).items] == ["nested.txt"]


def test_listing_only_shows_own_files(db, alice, bob):
    make_file(db, make_user(db, "gina"), name="g.txt")
    assert directory.list_files(db, alice).total == 0


def test_category_filter(db):
    owner = make_user(db, "hank")
    p = principal_of(owner)
    make_file(db, owner, name="a.png", type="image/png")
    make_file(db, owner, name="b.pdf", type="application/pdf")
    make_file(db, owner, name="c.txt", type="text/plain")
    make_file(db, owner, name="d.zip", type="application/zip")

    assert {f.name for f in directory.list_files(db, p, category="image").items} == {"a.png"}
    assert {f.name for f in directory.list_files(db, p, category="document").items} == {"b.pdf", "c.txt"}
    assert {f.name for f in directory.list_files(db, p, category="other").items} == {"d.zip"}
    assert directory.list_files(db, p, category="all").total == 4

    with pytest.raises(ValidationError):
        directory.list_files(db, p, category="spreadsheet")


@pytest.mark.parametrize("sort_by,sort_order,expected", [
    ("size", "asc", ["small", "medium", "large"]),
    ("size", "desc", ["large", "medium", "small"]),
    ("name", "asc", ["large", "medium", "small"]),
    ("date", "desc", ["small", "large", "medium"]),
    ("type", "asc", ["medium", "large", "small"]),
])
def test_sorting(db, sort_by, sort_order, expected):
    owner = make_user(db, "ivy")
    base = datetime(2026, 1, 1, tzinfo=timezone.utc)
    make_file(db, owner, name="medium", size=200, type="application/pdf", created_at=base)
    make_file(db, owner, name="large", size=300, type="image/png", created_at=base + timedelta(days=1))
    make_file(db, owner, name="small", size=100, type="text/plain", created_at=base + timedelta(days=2))

    page = directory.list_files(db, principal_of(owner), sort_by=sort_by, sort_order=sort_order)
    assert [f.name for f in page.items] == expected


def test_invalid_sort_rejected(db, alice):
    with pytest.raises(ValidationError):
        directory.list_files(db, alice, sort_by="owner")
    with pytest.raises(ValidationError):
        directory.list_files(db, alice, sort_order="up")


def test_pagination_metadata(db):
    owner = make_user(db, "jack")
    for i in range(5):
        make_file(db, owner, name=f"f{i}.txt")
    p = principal_of(owner)

    first = directory.list_files(db, p, page=1, page_size=2)
    assert len(first.items) == 2
    assert (first.total, first.total_pages, first.has_next, first.has_prev) == (5, 3, True, False)

    last = directory.list_files(db, p, page=3, page_size=2)
    assert len(last.items) == 1
    assert (last.has_next, last.has_prev) == (False, True)

    with pytest.raises(ValidationError):
        directory.list_files(db, p, page=0)


def test_date_range_filter(db):
    owner = make_user(db, "kim")
    now = datetime(2026, 6, 15, 12, 0, tzinfo=timezone.utc)
    make_file(db, owner, name="today.txt", created_at=now - timedelta(hours=1))
    make_file(db, owner, name="lastweek.txt", created_at=now - timedelta(days=5))
    make_file(db, owner, name="old.txt", created_at=now - timedelta(days=200))
    p = principal_of(owner)

    def names(date_range):
        return {f.name for f in directory.list_files(db, p, date_range=date_range, now=now).items}

    assert names("today") == {"today.txt"}
    assert names("week") == {"today.txt", "lastweek.txt"}
    assert names("year") == {"today.txt", "lastweek.txt", "old.txt"}
    assert names("all") == {"today.txt", "lastweek.txt", "old.txt"}


def test_rename_and_move(db):
    owner = make_user(db, "liam")
    p = principal_of(owner)
    folder = directory.create_folder(db, p, "Target")
    f = make_file(db, owner, name="old.txt")

    renamed = directory.rename_file(db, p, f.id, "new.txt")
    assert renamed.name == "new.txt"
    assert renamed.folder_id is None

    moved = directory.move_file(db, p, f.id, folder.id)
    assert moved.folder_id == folder.id
    assert moved.name == "new.txt"

    back = directory.move_file(db, p, f.id, None)
    assert back.folder_id is None


def test_update_without_fields_keeps_values(db):
    owner = make_user(db, "mia")
    p = principal_of(owner)
    folder = directory.create_folder(db, p, "Keep")
    f = make_file(db, owner, name="keep.txt", folder_id=folder.id)

    updated = directory.update_file(db, p, f.id)
    assert (updated.name, updated.folder_id) == ("keep.txt", folder.id)


def test_update_rejects_foreign_file_and_folder(db, alice, bob):
    owner = make_user(db, "noah")
    p = principal_of(owner)
    f = make_file(db, owner, name="mine.txt")
    foreign_folder = directory.create_folder(db, bob, "Bob's")

    with pytest.raises(NotFound):
        directory.rename_file(db, alice, f.id, "stolen.txt")
    with pytest.raises(NotFound):
        directory.move_file(db, p, f.id, foreign_folder.id)
    with pytest.raises(ValidationError):
        directory.rename_file(db, p, f.id, "  ")


def test_delete_file_record(db, alice):
    owner = make_user(db, "olga")
    p = principal_of(owner)
    f = make_file(db, owner, name="bye.txt")

    with pytest.raises(NotFound):
        directory.delete_file_record(db, alice, f.id)

    directory.delete_file_record(db, p, f.id)
    assert directory.list_files(db, p).total == 0
    with pytest.raises(NotFound):
        directory.delete_file_record(db, p, f.id)
