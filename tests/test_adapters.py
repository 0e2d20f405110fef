from __future__ import annotations

import pytest
import pytest_asyncio

from populus.adapters import MemoryAdapter, SqliteAdapter
from populus.adapters.base import compare, like_to_regex, sort_rows
from populus.errors import UniquenessError
from populus.query import ComparisonFilter, Criteria, LogicalFilter, SortSpec
from populus.schema import SchemaRegistry
from tests.helpers.models import PET, USER


def _make_pandas():
    pytest.importorskip("pandas")
    from populus.adapters.pandas import PandasAdapter

    return PandasAdapter()


FACTORIES = {
    "memory": MemoryAdapter,
    "sqlite": SqliteAdapter,
    "pandas": _make_pandas,
}


@pytest_asyncio.fixture(params=sorted(FACTORIES))
async def adapter(request):
    instance = FACTORIES[request.param]()
    registry = SchemaRegistry.build([USER, PET])
    for identity, schema in registry.items():
        await instance.define(identity, schema)
    for name, age in [("neil", 40), ("buzz", 39), ("sally", None), ("mae", 33)]:
        await instance.create("user", {"username": name, "password": "pw", "age": age})
    yield instance
    await instance.teardown()


def _where(**kwargs) -> Criteria:
    field, value = next(iter(kwargs.items()))
    return Criteria(where=ComparisonFilter(field=field, op="=", value=value))


def _names(rows):
    return [row["username"] for row in rows]


@pytest.mark.asyncio
async def test_create_assigns_sequential_integer_keys(adapter):
    row = await adapter.create("user", {"username": "yuri", "password": None, "age": 27})
    assert row["id"] == 5
    assert row["username"] == "yuri"


@pytest.mark.asyncio
async def test_find_filters_sorts_and_windows(adapter):
    criteria = Criteria(
        where=ComparisonFilter(field="age", op=">", value=30),
        sort=[SortSpec(field="age", direction="desc")],
        limit=2,
        skip=1,
    )
    assert _names(await adapter.find("user", criteria)) == ["buzz", "mae"]


@pytest.mark.asyncio
async def test_sort_ascending_puts_missing_values_first(adapter):
    rows = await adapter.find("user", Criteria(sort=[SortSpec(field="age")]))
    assert _names(rows) == ["sally", "mae", "buzz", "neil"]


@pytest.mark.asyncio
async def test_membership_and_logical_filters(adapter):
    criteria = Criteria(
        where=LogicalFilter(
            op="or",
            clauses=[
                ComparisonFilter(field="id", op="in", value=[1, 2]),
                ComparisonFilter(field="username", op="starts_with", value="SA"),
            ],
        ),
        sort=[SortSpec(field="id")],
    )
    assert _names(await adapter.find("user", criteria)) == ["neil", "buzz", "sally"]

    empty_in = Criteria(where=ComparisonFilter(field="id", op="in", value=[]))
    assert await adapter.find("user", empty_in) == []


@pytest.mark.asyncio
async def test_text_operators_are_case_insensitive(adapter):
    contains = Criteria(where=ComparisonFilter(field="username", op="contains", value="UZ"))
    assert _names(await adapter.find("user", contains)) == ["buzz"]
    like = Criteria(where=ComparisonFilter(field="username", op="like", value="n%l"))
    assert _names(await adapter.find("user", like)) == ["neil"]


@pytest.mark.asyncio
async def test_null_equality(adapter):
    rows = await adapter.find("user", _where(age=None))
    assert _names(rows) == ["sally"]


@pytest.mark.asyncio
async def test_unique_attribute_enforced_on_create(adapter):
    with pytest.raises(UniquenessError) as exc:
        await adapter.create("user", {"username": "neil", "password": "x", "age": 1})
    assert exc.value.attribute == "username"
    assert await adapter.count("user", _where(username="neil")) == 1


@pytest.mark.asyncio
async def test_unique_attribute_enforced_on_update(adapter):
    with pytest.raises(UniquenessError):
        await adapter.update("user", _where(username="buzz"), {"username": "neil"})
    # rewriting a row's own value is not a conflict
    rows = await adapter.update("user", _where(username="neil"), {"username": "neil", "age": 41})
    assert [(r["username"], r["age"]) for r in rows] == [("neil", 41)]


@pytest.mark.asyncio
async def test_update_returns_changed_rows(adapter):
    rows = await adapter.update("user", Criteria(where=ComparisonFilter(field="age", op="<", value=40)), {"password": "new"})
    assert sorted(_names(rows)) == ["buzz", "mae"]
    assert await adapter.count("user", _where(password="new")) == 2
    assert await adapter.update("user", _where(username="nobody"), {"age": 1}) == []


@pytest.mark.asyncio
async def test_destroy_and_count(adapter):
    assert await adapter.count("user", Criteria()) == 4
    removed = await adapter.destroy("user", Criteria(where=ComparisonFilter(field="age", op=">=", value=39)))
    assert removed == 2
    assert sorted(_names(await adapter.find("user", Criteria()))) == ["mae", "sally"]


@pytest.mark.asyncio
async def test_undefined_collection_raises(adapter):
    with pytest.raises(KeyError):
        await adapter.find("ghost", Criteria())


def test_compare_handles_missing_and_mismatched_values():
    assert compare(None, ">", 1) is False
    assert compare("a", "<", 1) is False
    assert compare("Hello  World", "contains", "o w") is True
    assert compare(None, "starts_with", "x") is False


def test_like_pattern_translation():
    rx = like_to_regex("a_c%")
    assert rx.match("abcdef")
    assert not rx.match("ac")


def test_sort_rows_is_stable_across_keys():
    rows = [{"a": 1, "b": 2}, {"a": 1, "b": 1}, {"a": 0, "b": 3}]
    ordered = sort_rows(rows, [SortSpec(field="a"), SortSpec(field="b", direction="desc")])
    assert ordered == [{"a": 0, "b": 3}, {"a": 1, "b": 2}, {"a": 1, "b": 1}]
