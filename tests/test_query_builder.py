from __future__ import annotations

import pytest

from populus.errors import InvalidCriteriaError, UnknownAttributeError, UnresolvedAssociationError
from populus.query import (
    ComparisonFilter,
    LogicalFilter,
    SortSpec,
    build_criteria,
    compile_populate,
    compile_sort,
    compile_where,
)
from populus.schema import SchemaRegistry
from tests.helpers.models import PET, USER


@pytest.fixture
def registry() -> SchemaRegistry:
    return SchemaRegistry.build([USER, PET])


def test_equality_and_membership(registry):
    user = registry["user"]
    assert compile_where(user, {"username": "Neil"}) == ComparisonFilter(field="username", op="=", value="Neil")
    assert compile_where(user, {"id": [1, 2]}) == ComparisonFilter(field="id", op="in", value=[1, 2])


def test_bare_value_means_primary_key(registry):
    assert compile_where(registry["user"], 7) == ComparisonFilter(field="id", op="=", value=7)


def test_modifiers_combine_with_and(registry):
    clause = compile_where(registry["user"], {"age": {">": 3, "<=": 9}})
    assert isinstance(clause, LogicalFilter)
    assert clause.op == "and"
    assert [(c.op, c.value) for c in clause.clauses] == [(">", 3), ("<=", 9)]


@pytest.mark.parametrize(
    "modifier, expected",
    [
        ("lessThan", "<"),
        ("!", "!="),
        ("not", "!="),
        ("nin", "not_in"),
        ("startsWith", "starts_with"),
        ("endsWith", "ends_with"),
        ("contains", "contains"),
        ("like", "like"),
    ],
)
def test_modifier_aliases(registry, modifier, expected):
    value = ["a"] if expected == "not_in" else "a"
    clause = compile_where(registry["user"], {"username": {modifier: value}})
    assert clause.op == expected


def test_not_equal_list_becomes_not_in(registry):
    clause = compile_where(registry["user"], {"username": {"!=": ["a", "b"]}})
    assert clause == ComparisonFilter(field="username", op="not_in", value=["a", "b"])


def test_or_clause(registry):
    clause = compile_where(registry["user"], {"or": [{"username": "a"}, {"age": {">=": 30}}]})
    assert clause.op == "or"
    assert len(clause.clauses) == 2


def test_unknown_field_rejected(registry):
    with pytest.raises(UnknownAttributeError) as exc:
        compile_where(registry["user"], {"nickname": "x"})
    assert "username" in exc.value.candidates


def test_collection_attribute_is_not_filterable(registry):
    with pytest.raises(UnknownAttributeError):
        compile_where(registry["user"], {"pets": 1})


def test_unknown_modifier_rejected(registry):
    with pytest.raises(InvalidCriteriaError):
        compile_where(registry["user"], {"age": {"between": [1, 2]}})


def test_in_requires_list(registry):
    with pytest.raises(InvalidCriteriaError):
        compile_where(registry["user"], {"age": {"in": 3}})


def test_sort_forms(registry):
    user = registry["user"]
    assert compile_sort(user, "username DESC") == [SortSpec(field="username", direction="desc")]
    assert compile_sort(user, {"age": -1, "username": 1}) == [
        SortSpec(field="age", direction="desc"),
        SortSpec(field="username", direction="asc"),
    ]
    assert compile_sort(user, ["age", "username desc"]) == [
        SortSpec(field="age", direction="asc"),
        SortSpec(field="username", direction="desc"),
    ]
    with pytest.raises(InvalidCriteriaError):
        compile_sort(user, {"age": "sideways"})


def test_populate_must_name_association(registry):
    with pytest.raises(UnresolvedAssociationError) as exc:
        compile_populate(registry["user"], registry, "username")
    assert isinstance(exc.value, UnknownAttributeError)
    assert exc.value.candidates == ["pets"]


def test_populate_where_is_compiled_against_target(registry):
    request = compile_populate(registry["user"], registry, "pets", where={"breed": "beagle"}, sort="name")
    assert request.where == ComparisonFilter(field="breed", op="=", value="beagle")
    assert request.sort == [SortSpec(field="name", direction="asc")]
    with pytest.raises(UnknownAttributeError):
        compile_populate(registry["user"], registry, "pets", where={"username": "x"})


def test_negative_window_rejected(registry):
    with pytest.raises(InvalidCriteriaError):
        build_criteria(registry["user"], limit=-1)
    with pytest.raises(InvalidCriteriaError):
        build_criteria(registry["user"], skip=-2)


def test_storage_view_drops_population(registry):
    user = registry["user"]
    criteria = build_criteria(
        user,
        where={"age": 3},
        limit=5,
        populate=[compile_populate(user, registry, "pets")],
    )
    view = criteria.storage_view()
    assert view.populate == []
    assert view.where == criteria.where
    assert view.limit == 5
