"""Tests for MotorPredicateCompiler."""

import pytest

from specscans.errors import QueryParseError
from specscans.query.motor_compiler import MotorPositionQuery, MotorPredicateCompiler
from specscans.query.router import FieldRouter
from specscans.query.routing import Backend, default_routing_table


@pytest.fixture
def compiler():
    return MotorPredicateCompiler()


class TestCompile:
    def test_nested_literal(self, compiler):
        assert compiler.compile({"motors": {"samx": 1.0}}) == [
            MotorPositionQuery("samx", exact=(1.0,)),
        ]

    def test_dotted_key(self, compiler):
        assert compiler.compile({"motors.samx": 2}) == [MotorPositionQuery("samx", exact=(2.0,))]

    def test_list_is_exact_set(self, compiler):
        assert compiler.compile({"motors.samx": [1, 2.5]}) == [
            MotorPositionQuery("samx", exact=(1.0, 2.5)),
        ]

    def test_in_operator(self, compiler):
        assert compiler.compile({"motors": {"samx": {"$in": [1, 2]}}}) == [
            MotorPositionQuery("samx", exact=(1.0, 2.0)),
        ]

    def test_bounds_are_exclusive(self, compiler):
        [query] = compiler.compile({"motors.samx": {"$gt": 0, "$lt": 5}})
        assert (query.minimum, query.maximum) == (0.0, 5.0)
        assert not query.min_inclusive and not query.max_inclusive

    def test_inclusive_bounds(self, compiler):
        [query] = compiler.compile({"motors.samx": {"$gte": 0, "$lte": 5}})
        assert query.min_inclusive and query.max_inclusive

    def test_range_and_set_intersect_any_order(self, compiler):
        a = compiler.compile({"motors.samx": {"$in": [1, 2, 3], "$gt": 1}})
        b = compiler.compile({"motors.samx": {"$gt": 1, "$in": [1, 2, 3]}})
        expected = [MotorPositionQuery("samx", exact=(1.0, 2.0, 3.0), minimum=1.0)]
        assert a == expected
        assert b == expected
        assert [v for v in (1.0, 2.0, 3.0) if expected[0].matches({"samx": v})] == [2.0, 3.0]

    def test_bare_mnemonic_is_existence(self, compiler):
        assert compiler.compile({"motors": "samx"}) == [MotorPositionQuery("samx")]

    def test_mnemonic_list_is_existence(self, compiler):
        assert compiler.compile({"motors": ["samx", "samz"]}) == [
            MotorPositionQuery("samx"),
            MotorPositionQuery("samz"),
        ]

    def test_exists_false(self, compiler):
        assert compiler.compile({"motors.samx": {"$exists": False}}) == [
            MotorPositionQuery("samx", present=False),
        ]

    def test_same_mnemonic_twice_gives_two_entries(self, compiler):
        queries = compiler.compile({"motors": {"samx": {"$gt": 0}}, "motors.samx": {"$lt": 2}})
        assert [q.mnemonic for q in queries] == ["samx", "samx"]

    def test_accepts_routed_values(self, compiler):
        routed = FieldRouter(default_routing_table()).route(
            "SpecScans", {"beamline": "3a", "motors.th": {"$lte": 10}},
        )
        assert compiler.compile(routed[Backend.SQL]) == [
            MotorPositionQuery("th", maximum=10.0, max_inclusive=True),
        ]

    def test_empty(self, compiler):
        assert compiler.compile({}) == []


class TestCompileErrors:
    @pytest.mark.parametrize("sub_filter, message", [
        ({"motors.samx": "abc"}, "must be a number"),
        ({"motors.samx": ["a", 1]}, "must be numbers"),
        ({"motors.samx": {"$gt": "a"}}, "must be a number"),
        ({"motors.samx": {"$regex": "^1"}}, "not supported"),
        ({"motors.samx": {"$exists": False, "$gt": 1}}, "absent and constrained"),
        ({"motors": 5}, "'motors' filter"),
        ({"beamline": "3a"}, "not a motors field"),
    ])
    def test_rejected(self, compiler, sub_filter, message):
        with pytest.raises(QueryParseError, match=message):
            compiler.compile(sub_filter)


class TestMotorPositionQueryMatches:
    def test_absent(self):
        query = MotorPositionQuery("samx", present=False)
        assert query.matches({"samz": 1.0})
        assert not query.matches({"samx": 1.0})

    def test_exclusive_boundary(self):
        query = MotorPositionQuery("samx", minimum=1.0)
        assert not query.matches({"samx": 1.0})
        assert query.matches({"samx": 1.5})
