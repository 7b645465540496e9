"""Tests for the key & filter compiler and update expressions."""

import pytest

from tablespine.core.errors import InvalidQueryError
from tablespine.metadata import MetadataRegistry, SchemaBuilder
from tablespine.query import (
    ExpressionAttributes,
    QueryCompiler,
    build_update_expression,
    compile_query,
    included_relationships_filter,
)
from tests._support.models import Customer, Order


# ── Helpers ──────────────────────────────────────────────────────────────


@pytest.fixture
def flat():
    """An entity with plain single-letter attributes."""
    registry = MetadataRegistry()
    schema = SchemaBuilder(registry)
    schema.table("t")
    schema.entity("Flat", table="t").number("a").number("b").number("c").string("name-x")
    return registry.lookup("Flat")


class TestExpressionAttributes:
    def test_per_alias_sequences(self):
        attrs = ExpressionAttributes()
        assert attrs.value("status", "a") == ":status1"
        assert attrs.value("status", "b") == ":status2"
        assert attrs.value("total", 1) == ":total1"
        assert attrs.values == {":status1": "a", ":status2": "b", ":total1": 1}

    def test_unsafe_characters_are_replaced(self):
        attrs = ExpressionAttributes()
        assert attrs.name("order-date") == "#order_date"
        assert attrs.names == {"#order_date": "order-date"}

    def test_sequence_skips_placeholder_taken_by_longer_alias(self):
        attrs = ExpressionAttributes()
        line = [attrs.value("line", n) for n in range(11)]
        assert line[-1] == ":line11"
        assert attrs.value("line1", "other") == ":line12"
        assert len(attrs.values) == 12
        assert attrs.values[":line11"] == 10

    def test_longer_alias_first_pushes_sequence_past_it(self):
        attrs = ExpressionAttributes()
        assert attrs.value("line1", "other") == ":line11"
        placeholders = [attrs.value("line", n) for n in range(11)]
        assert ":line11" not in placeholders
        assert placeholders[-1] == ":line12"
        assert attrs.values[":line11"] == "other"

    def test_sanitized_names_do_not_collide(self):
        attrs = ExpressionAttributes()
        assert attrs.name("a-b") == "#a_b"
        assert attrs.name("a.b") == "#a_b_2"
        assert attrs.name("a-b") == "#a_b"
        assert attrs.names == {"#a_b": "a-b", "#a_b_2": "a.b"}

    def test_helpers(self):
        attrs = ExpressionAttributes()
        assert attrs.exists("PK") == "attribute_exists(#PK)"
        assert attrs.not_exists("PK") == "attribute_not_exists(#PK)"
        assert attrs.begins_with("SK", "Order") == "begins_with(#SK, :SK1)"
        assert attrs.is_in("type", ["A", "B"]) == "#type IN (:type1, :type2)"


class TestKeyConditions:
    def test_partition_key_only(self, registry):
        compiled = compile_query(registry.lookup(Customer), {"pk": "Customer#1"})
        assert compiled.key_condition == "#PK = :PK1"
        assert compiled.filter_expression is None
        assert compiled.names == {"#PK": "PK"}
        assert compiled.values == {":PK1": "Customer#1"}

    def test_sort_key_begins_with(self, registry):
        compiled = compile_query(
            registry.lookup(Customer), {"pk": "Customer#1", "sk": {"$beginsWith": "Order"}}
        )
        assert compiled.key_condition == "#PK = :PK1 AND begins_with(#SK, :SK1)"
        assert not compiled.key_condition.endswith("AND")
        assert compiled.key_condition.count("(") == compiled.key_condition.count(")")

    def test_index_query_without_partition_key(self, registry):
        compiled = compile_query(registry.lookup(Order), {"status": "shipped"}, index_name="ByStatus")
        assert compiled.key_condition == "#status = :status1"
        assert compiled.index_name == "ByStatus"

    def test_missing_partition_key(self, registry):
        with pytest.raises(InvalidQueryError, match="partition key"):
            compile_query(registry.lookup(Order), {"status": "shipped"})

    def test_empty_key_condition(self, registry):
        with pytest.raises(InvalidQueryError):
            compile_query(registry.lookup(Order), {})

    def test_to_request(self, registry):
        request = compile_query(registry.lookup(Customer), {"pk": "Customer#1"}).to_request(
            "app", consistent_read=True
        )
        assert request.table == "app"
        assert request.key_condition == "#PK = :PK1"
        assert request.consistent_read is True


class TestFilters:
    def test_or_of_and_branches(self, flat):
        compiled = compile_query(
            flat, {"pk": "Flat#1"}, {"$or": [{"a": 1, "b": 2}, {"c": 3}]}
        )
        assert compiled.filter_expression == "(#a = :a1 AND #b = :b1) OR #c = :c1"
        assert compiled.values[":a1"] == 1
        assert compiled.values[":c1"] == 3

    def test_implicit_and(self, flat):
        compiled = compile_query(flat, {"pk": "Flat#1"}, {"a": 1, "b": 2})
        assert compiled.filter_expression == "#a = :a1 AND #b = :b1"

    def test_or_combined_with_and(self, flat):
        compiled = compile_query(flat, {"pk": "Flat#1"}, {"$or": [{"a": 1}, {"b": 2}], "c": 3})
        assert compiled.filter_expression == "(#a = :a1 OR #b = :b1) AND (#c = :c1)"

    def test_in_list(self, flat):
        compiled = compile_query(flat, {"pk": "Flat#1"}, {"a": [1, 2, 3]})
        assert compiled.filter_expression == "#a IN (:a1, :a2, :a3)"
        assert compiled.values == {":PK1": "Flat#1", ":a1": 1, ":a2": 2, ":a3": 3}

    def test_same_attribute_twice_never_collides(self, flat):
        compiled = compile_query(flat, {"pk": "Flat#1"}, {"$or": [{"a": 1}, {"a": 2}]})
        assert compiled.filter_expression == "#a = :a1 OR #a = :a2"

    def test_alias_suffixed_with_digit_never_collides(self):
        registry = MetadataRegistry()
        schema = SchemaBuilder(registry)
        schema.table("t")
        schema.entity("Address", table="t").string("line").string("line1")
        entity = registry.lookup("Address")

        values = [f"v{n}" for n in range(11)]
        compiled = compile_query(entity, {"pk": "Address#1"}, {"line": values, "line1": "other"})

        assert len(compiled.values) == 13
        assert compiled.filter_expression.endswith("AND #line1 = :line12")
        assert compiled.values[":line11"] == "v10"
        assert compiled.values[":line12"] == "other"

    def test_begins_with_in_filter(self, flat):
        compiled = compile_query(flat, {"pk": "Flat#1"}, {"name-x": {"$beginsWith": "Ad"}})
        assert compiled.filter_expression == "begins_with(#name_x, :name_x1)"
        assert compiled.names["#name_x"] == "name-x"

    def test_table_default_names_are_accepted(self, registry):
        compiled = compile_query(
            registry.lookup(Customer),
            {"pk": "Customer#1"},
            {"type": "BelongsToLink", "foreign_entity_type": ["Order"]},
        )
        assert compiled.filter_expression == (
            "#type = :type1 AND #foreignEntityType IN (:foreignEntityType1)"
        )

    def test_values_are_encoded(self, registry):
        compiled = compile_query(registry.lookup(Order), {"pk": "Order#1"}, {"total": 5})
        assert compiled.values[":total1"] == 5

    def test_shared_compiler_continues_sequences(self, flat):
        compiler = QueryCompiler(flat)
        compiler.compile({"pk": "Flat#1"}, {"a": 1})
        compiled = compiler.compile({"pk": "Flat#1"}, {"a": 2})
        assert compiled.filter_expression == "#a = :a2"
        assert compiled.key_condition == "#PK = :PK2"

    @pytest.mark.parametrize(
        "filter, message",
        [
            ({"a": {"$gt": 1}}, "Unsupported operator"),
            ({"$and": [{"a": 1}]}, "Unsupported operator"),
            ({"a": []}, "at least one value"),
            ({"unknown": 1}, "not an attribute"),
            ({"a": None}, "null"),
            ({"a": "one"}, "Invalid value"),
            ({"$or": {"a": 1}}, "list of filters"),
            ({"$or": [{}]}, "non-empty mapping"),
        ],
    )
    def test_invalid_filters(self, flat, filter, message):
        with pytest.raises(InvalidQueryError, match=message):
            compile_query(flat, {"pk": "Flat#1"}, filter)


class TestUpdateExpressions:
    def test_set_and_remove(self):
        attrs = ExpressionAttributes()
        expression = build_update_expression(attrs, {"name": "Ada", "nick": None, "age": 3})
        assert expression == "SET #name = :name1, #age = :age1 REMOVE #nick"
        assert attrs.values == {":name1": "Ada", ":age1": 3}
        assert attrs.names == {"#name": "name", "#nick": "nick", "#age": "age"}

    def test_remove_only(self):
        assert build_update_expression(ExpressionAttributes(), {"a": None}) == "REMOVE #a"

    def test_shares_sequences_with_conditions(self):
        attrs = ExpressionAttributes()
        build_update_expression(attrs, {"customer_id": "c2"})
        assert attrs.equals("customer_id", "c1") == "#customer_id = :customer_id2"

    def test_empty(self):
        with pytest.raises(ValueError):
            build_update_expression(ExpressionAttributes(), {})


class TestIncludeFilters:
    def test_owning_relationships_need_only_the_entity(self, registry):
        order = registry.lookup(Order)
        assert included_relationships_filter(order, [order.relationships["customer"]]) == {
            "type": "Order"
        }

    def test_linked_relationships_pull_links(self, registry):
        customer = registry.lookup(Customer)
        relationships = [
            customer.relationships["orders"],
            customer.relationships["contact_information"],
        ]
        assert included_relationships_filter(customer, relationships) == {
            "$or": [
                {"type": "Customer"},
                {
                    "type": "BelongsToLink",
                    "foreign_entity_type": ["Order", "ContactInformation"],
                },
            ]
        }
