"""Tests du CodeStore sur SQLite en mémoire."""

import math
import threading
from datetime import datetime, timezone
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from errors import ConflictError, NotFound, StorageError, ValidationError
from models import as_utc


def _fill(store, count):
    return [store.create({"code": str(10000 + i), "availability": "available"}) for i in range(count)]


class TestCreate:
    """create / get_by_id / get_by_code."""

    def test_create_then_get(self, store):
        created = store.create({"code": " k1a 0b1 ", "availability": "available", "message": "Next day"})
        fetched = store.get_by_id(created.id)

        assert fetched.code == "K1A 0B1"
        assert fetched.availability == "available"
        assert fetched.message == "Next day"
        assert fetched.id == created.id
        assert fetched.created_at == fetched.updated_at

    def test_timestamps_are_utc(self, store):
        before = datetime.now(timezone.utc)
        created = store.create({"code": "90210", "availability": "available"})
        updated = store.update(created.id, {"message": "x"})

        assert as_utc(created.created_at) >= before.replace(microsecond=0)
        assert as_utc(updated.updated_at).utcoffset().total_seconds() == 0
        assert as_utc(updated.updated_at) > as_utc(created.updated_at)

    def test_first_id_is_one_then_increments(self, store):
        a = store.create({"code": "90210", "availability": "available"})
        b = store.create({"code": "90211", "availability": "unavailable"})
        assert (a.id, b.id) == (1, 2)

    def test_message_is_optional(self, store):
        created = store.create({"code": "90210", "availability": "unavailable"})
        assert created.message == ""

    @pytest.mark.parametrize("data,field", [
        ({"availability": "available"}, "code"),
        ({"code": "90210"}, "availability"),
        ({"code": "!!", "availability": "available"}, "code"),
        ({"code": "90210", "availability": "maybe"}, "availability"),
    ])
    def test_invalid_data(self, store, data, field):
        with pytest.raises(ValidationError) as exc:
            store.create(data)
        assert field in exc.value.fields
        assert store.list().total == 0

    def test_duplicate_code_case_insensitive(self, store):
        store.create({"code": "ab1234", "availability": "available", "message": "first"})
        with pytest.raises(ConflictError):
            store.create({"code": "  AB1234 ", "availability": "unavailable"})

        page = store.list()
        assert page.total == 1
        assert page.items[0].message == "first"

    def test_get_by_id_missing(self, store):
        with pytest.raises(NotFound):
            store.get_by_id(42)

    def test_get_by_code_normalizes(self, store):
        store.create({"code": "K1A 0B1", "availability": "available"})
        assert store.get_by_code(" k1a 0b1").code == "K1A 0B1"
        assert store.get_by_code("00000") is None
        assert store.get_by_code("") is None


class TestUpdate:
    """update."""

    def test_message_only(self, store):
        created = store.create({"code": "90210", "availability": "available", "message": "old"})
        updated = store.update(created.id, {"message": "new"})

        assert updated.code == "90210"
        assert updated.availability == "available"
        assert updated.message == "new"
        assert updated.updated_at > created.updated_at
        assert updated.created_at == created.created_at

    def test_updated_at_strictly_later_with_frozen_clock(self, store):
        frozen = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        with patch("repository.utcnow", return_value=frozen):
            created = store.create({"code": "90210", "availability": "available"})
            updated = store.update(created.id, {"availability": "unavailable"})
        assert updated.updated_at > created.updated_at

    def test_missing_id(self, store):
        with pytest.raises(NotFound):
            store.update(7, {"message": "x"})

    def test_validates_supplied_fields(self, store):
        created = store.create({"code": "90210", "availability": "available"})
        with pytest.raises(ValidationError):
            store.update(created.id, {"availability": "soon"})
        with pytest.raises(ValidationError):
            store.update(created.id, {"code": ""})
        assert store.get_by_id(created.id).availability == "available"

    def test_code_change_conflict(self, store):
        a = store.create({"code": "90210", "availability": "available"})
        store.create({"code": "90211", "availability": "available"})
        with pytest.raises(ConflictError):
            store.update(a.id, {"code": "90211"})

    def test_same_code_is_not_a_conflict(self, store):
        a = store.create({"code": "AB1234", "availability": "available"})
        updated = store.update(a.id, {"code": "ab1234", "availability": "unavailable"})
        assert updated.code == "AB1234"
        assert updated.availability == "unavailable"

    def test_concurrent_updates_last_write_wins(self, store):
        created = store.create({"code": "90210", "availability": "available", "message": "initial"})
        barrier = threading.Barrier(2)
        results = []

        def writer(data):
            barrier.wait()
            results.append(store.update(created.id, data))

        threads = [
            threading.Thread(target=writer, args=({"message": "from A"},)),
            threading.Thread(target=writer, args=({"message": "from B", "availability": "unavailable"},)),
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        latest = max(results, key=lambda r: r.updated_at)
        final = store.get_by_id(created.id)
        assert final.message == latest.message
        assert final.updated_at == latest.updated_at
        if latest.message == "from A":
            # B a écrit avant : sa disponibilité reste, son message est écrasé
            assert final.availability == "unavailable"


class TestDelete:
    """delete."""

    def test_delete_then_get(self, store):
        created = store.create({"code": "90210", "availability": "available"})
        assert store.delete(created.id) is True
        with pytest.raises(NotFound):
            store.get_by_id(created.id)

    def test_delete_missing(self, store):
        with pytest.raises(NotFound):
            store.delete(99)

    def test_id_not_reused_after_deleting_highest(self, store):
        store.create({"code": "90210", "availability": "available"})
        second = store.create({"code": "90211", "availability": "available"})
        store.delete(second.id)

        third = store.create({"code": "90212", "availability": "available"})
        assert third.id > second.id


class TestList:
    """list : recherche, filtre, tri, pagination."""

    def test_defaults(self, store):
        _fill(store, 12)
        page = store.list()
        assert page.total == 12
        assert page.page_count == 2
        assert len(page.items) == 10
        # tri par défaut : id décroissant
        assert [r.id for r in page.items] == list(range(12, 2, -1))

    @pytest.mark.parametrize("per_page", [1, 4, 5, 7, 23, 50])
    def test_pages_cover_everything(self, store, per_page):
        _fill(store, 23)
        first = store.list(orderby="code", order="asc", page=1, per_page=per_page)
        assert first.page_count == math.ceil(23 / per_page)

        ids = []
        for page in range(1, first.page_count + 1):
            ids += [r.id for r in store.list(orderby="code", order="asc", page=page, per_page=per_page).items]
        assert len(ids) == 23
        assert len(set(ids)) == 23

    def test_page_past_end_is_empty(self, store):
        _fill(store, 3)
        page = store.list(page=5)
        assert page.items == []
        assert page.total == 3

    def test_empty_store(self, store):
        page = store.list()
        assert (page.total, page.page_count, page.items) == (0, 0, [])

    def test_search_code_and_message(self, store):
        store.create({"code": "90210", "availability": "available", "message": "Beverly Hills"})
        store.create({"code": "K1A 0B1", "availability": "unavailable", "message": "Ottawa"})
        store.create({"code": "75001", "availability": "available", "message": "Paris 1er"})

        assert [r.code for r in store.list(search="k1a").items] == ["K1A 0B1"]
        assert [r.code for r in store.list(search="HILLS").items] == ["90210"]
        assert store.list(search="%").total == 0

    def test_availability_filter(self, store):
        store.create({"code": "90210", "availability": "available"})
        store.create({"code": "90211", "availability": "unavailable"})
        page = store.list(availability="unavailable")
        assert [r.code for r in page.items] == ["90211"]

    def test_invalid_availability_filter(self, store):
        with pytest.raises(ValidationError):
            store.list(availability="sometimes")

    def test_tie_break_is_id_ascending(self, store):
        frozen = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        with patch("repository.utcnow", return_value=frozen):
            _fill(store, 4)
        for order in ("asc", "desc"):
            page = store.list(orderby="created_at", order=order)
            assert [r.id for r in page.items] == [1, 2, 3, 4]

    def test_sort_by_availability(self, store):
        store.create({"code": "90210", "availability": "unavailable"})
        store.create({"code": "90211", "availability": "available"})
        store.create({"code": "90212", "availability": "unavailable"})
        page = store.list(orderby="availability", order="ASC")
        assert [r.id for r in page.items] == [2, 1, 3]

    def test_bad_params(self, store):
        with pytest.raises(ValidationError):
            store.list(orderby="message")
        with pytest.raises(ValidationError):
            store.list(per_page=0)


class TestImportAndClear:
    """import_records / clear."""

    def test_import_skips_invalid_and_existing(self, store):
        store.create({"code": "90210", "availability": "available", "message": "keep"})
        counts = store.import_records([
            {"code": "90210", "availability": "unavailable"},
            {"code": "90211", "availability": "unavailable", "message": "new"},
            {"code": "90211", "availability": "available"},
            {"code": "bad code!", "availability": "available"},
            {"availability": "available"},
            "not a row",
        ])
        assert counts == {"imported": 1, "skipped": 5}
        assert store.get_by_code("90210").message == "keep"
        assert store.get_by_code("90211").availability == "unavailable"

    def test_import_overwrite_replaces_collection(self, store):
        store.create({"code": "90210", "availability": "available"})
        store.create({"code": "90211", "availability": "available"})
        counts = store.import_records([{"code": "90210", "availability": "unavailable"}], overwrite=True)

        assert counts == {"imported": 1, "skipped": 0}
        page = store.list()
        assert page.total == 1
        assert page.items[0].availability == "unavailable"
        assert page.items[0].id > 2

    def test_clear(self, store):
        _fill(store, 3)
        assert store.clear() == 3
        assert store.list().total == 0


class TestStorageFailure:
    """Échec d'écriture → StorageError, rien n'est persisté."""

    def test_commit_failure(self, store):
        boom = OperationalError("INSERT", {}, Exception("disk full"))
        with patch("repository.Session.commit", side_effect=boom):
            with pytest.raises(StorageError):
                store.create({"code": "90210", "availability": "available"})
        assert store.get_by_code("90210") is None
