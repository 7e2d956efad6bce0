"""
SQLAlchemyStore filter translation and error mapping
"""
from uuid import uuid4

import pytest

from core.exceptions import ConflictException, NotFoundException
from core.store import SQLAlchemyStore
from models.category import Category


@pytest.fixture
async def store(db_session):
    store = SQLAlchemyStore(db_session, Category)
    for index, (name, slug) in enumerate([
        ("Koi", "koi"),
        ("Koi_1", "koi_1"),
        ("Koi 2", "koi-2"),
        ("Goldfish", "goldfish"),
    ]):
        await store.insert({"name": name, "slug": slug, "sort_order": index})
    return store


class TestFilters:
    async def test_equality_and_none(self, store):
        assert len(await store.find({"parent_id": None})) == 4
        assert (await store.find_one({"slug": "goldfish"})).name == "Goldfish"

    async def test_startswith_escapes_wildcards(self, store):
        found = await store.find({"slug": {"$startswith": "koi_"}}, order_by=["sort_order"])
        assert [c.slug for c in found] == ["koi_1"]

    async def test_operators(self, store):
        assert await store.count({"sort_order": {"$gte": 2}}) == 2
        assert await store.count({"sort_order": {"$lt": 1}}) == 1
        assert await store.count({"slug": {"$in": ["koi", "goldfish"]}}) == 2
        assert await store.count({"slug": {"$nin": ["koi", "goldfish"]}}) == 2
        assert await store.count({"slug": {"$ne": "koi"}}) == 3
        assert await store.count({"name": {"$contains": "KOI"}}) == 3

    async def test_or(self, store):
        found = await store.find({"$or": [{"slug": "koi"}, {"slug": "goldfish"}]}, order_by=["-sort_order"])
        assert [c.slug for c in found] == ["goldfish", "koi"]

    async def test_paging(self, store):
        found = await store.find({}, order_by=["sort_order"], skip=1, limit=2)
        assert [c.slug for c in found] == ["koi_1", "koi-2"]

    async def test_unknown_field(self, store):
        with pytest.raises(ValueError):
            await store.find({"colour": "red"})


class TestWrites:
    async def test_unique_violation_is_conflict(self, store):
        with pytest.raises(ConflictException):
            await store.insert({"name": "Another", "slug": "koi"})
        # session is usable after the rollback
        assert await store.count() == 4

    async def test_update_missing(self, store):
        with pytest.raises(NotFoundException):
            await store.update(uuid4(), {"name": "x"})

    async def test_update_and_delete(self, store):
        koi = await store.find_one({"slug": "koi"})
        updated = await store.update(koi.id, {"description": "Nishikigoi"})
        assert updated.description == "Nishikigoi"
        assert updated.updated_at is not None

        assert await store.delete(koi.id) is True
        assert await store.delete(koi.id) is False
        assert await store.count() == 3
