from __future__ import annotations

import pytest

from populus.errors import DuplicateIdentityError, InvalidAssociationError, UnknownModelError
from populus.schema import CollectionAssociation, ModelAssociation, ModelDefinition, ScalarAttribute, SchemaRegistry
from tests.helpers.models import PET, USER


def test_registry_normalizes_attribute_specs():
    registry = SchemaRegistry.build([USER, PET])

    user = registry["user"]
    assert user.primary_key == "id"
    assert user.attributes["id"] == ScalarAttribute(type="integer", unique=True)
    assert user.attributes["username"] == ScalarAttribute(type="string", unique=True)
    assert user.attributes["pets"] == CollectionAssociation(collection="pet", via="owner")
    assert registry["pet"].attributes["owner"] == ModelAssociation(model="user")
    assert "toJSON" not in user.attributes
    assert user.to_json is not None


def test_identity_lookup_is_case_insensitive():
    registry = SchemaRegistry.build([{**USER, "identity": "User"}, PET])
    assert "USER" in registry
    assert registry["uSeR"].identity == "user"
    assert registry.get("missing") is None


def test_duplicate_identity_rejected():
    with pytest.raises(DuplicateIdentityError) as exc:
        SchemaRegistry.build([USER, PET, {"identity": "USER", "attributes": {}}])
    assert exc.value.identity == "user"


def test_association_to_unknown_model_rejected():
    with pytest.raises(UnknownModelError) as exc:
        SchemaRegistry.build([PET])
    assert exc.value.identity == "user"
    assert exc.value.referenced_by == "pet.owner"


def test_collection_via_must_exist_on_target():
    broken_pet = {"identity": "pet", "attributes": {"name": "string"}}
    with pytest.raises(InvalidAssociationError) as exc:
        SchemaRegistry.build([USER, broken_pet])
    assert exc.value.attribute == "pets"


def test_collection_via_must_point_back_at_owner():
    other = {"identity": "shelter", "attributes": {}}
    pet = {"identity": "pet", "attributes": {"owner": {"model": "shelter"}}}
    with pytest.raises(InvalidAssociationError):
        SchemaRegistry.build([USER, pet, other])


def test_collection_without_via_is_invalid():
    bad = {"identity": "user", "attributes": {"pets": {"collection": "pet"}}}
    with pytest.raises(ValueError):
        SchemaRegistry.build([bad, PET])


def test_unsupported_scalar_type_is_invalid():
    with pytest.raises(ValueError):
        ModelDefinition.model_validate({"identity": "x", "attributes": {"blob": "bytes"}})


def test_declared_string_primary_key_is_kept_unique():
    registry = SchemaRegistry.build([{"identity": "token", "primary_key": "code", "attributes": {"code": "string"}}])
    schema = registry["token"]
    assert schema.key_type == "string"
    assert schema.unique_attributes() == ["code"]


def test_auto_timestamps_add_datetime_attributes():
    registry = SchemaRegistry.build([{"identity": "note", "auto_created_at": True, "auto_updated_at": True}])
    schema = registry["note"]
    assert schema.attributes["created_at"].type == "datetime"
    assert schema.attributes["updated_at"].type == "datetime"


def test_adapter_key_is_accepted_as_connection_name():
    definition = ModelDefinition.model_validate({"identity": "log", "adapter": "archive"})
    assert definition.connection == "archive"


def test_storable_attributes_exclude_collections():
    schema = SchemaRegistry.build([USER, PET])["user"]
    assert "pets" not in schema.storable_attributes()
    assert set(schema.associations()) == {"pets"}
    assert registry_connections([USER, PET]) == ["default"]


def registry_connections(definitions):
    return SchemaRegistry.build(definitions).connections()


def test_target_of_follows_both_association_kinds():
    registry = SchemaRegistry.build([USER, PET])
    assert registry.target_of("user", "pets").identity == "pet"
    assert registry.target_of("pet", "owner").identity == "user"
    with pytest.raises(KeyError):
        registry.target_of("user", "username")
