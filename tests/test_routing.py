"""Tests for the routing table and its loader."""

import json

import pytest
import requests

from specscans.errors import RoutingTableError
from specscans.query import routing
from specscans.query.routing import (
    Backend,
    RoutingEntry,
    RoutingTable,
    default_routing_table,
    load_routing_table,
    parse_routing_table,
)


class TestBackend:
    @pytest.mark.parametrize("name, expected", [
        ("sql", Backend.SQL),
        ("MySQL", Backend.SQL),
        ("motors", Backend.SQL),
        ("mongodb", Backend.MONGODB),
        (" Mongo ", Backend.MONGODB),
    ])
    def test_parse_aliases(self, name, expected):
        assert Backend.parse(name) is expected

    def test_parse_unknown(self):
        with pytest.raises(RoutingTableError, match="Unknown backend"):
            Backend.parse("postgres")


class TestRoutingTable:
    def test_owner_exact_and_prefix(self):
        table = default_routing_table()
        assert table.owner("SpecScans", "motors").backend is Backend.SQL
        assert table.owner("SpecScans", "motors.samx").backend is Backend.SQL
        assert table.owner("SpecScans", "beamline").backend is Backend.MONGODB

    def test_prefix_must_end_at_dot(self):
        table = default_routing_table()
        assert table.owner("SpecScans", "motorsx") is None

    def test_owner_is_per_service(self):
        table = default_routing_table()
        assert table.owner("Other", "beamline") is None

    def test_longest_key_wins(self):
        table = RoutingTable([
            RoutingEntry("S", "motors", Backend.SQL),
            RoutingEntry("S", "motors.meta", Backend.MONGODB),
        ])
        assert table.owner("S", "motors.samx").backend is Backend.SQL
        assert table.owner("S", "motors.meta").backend is Backend.MONGODB
        assert table.owner("S", "motors.meta.author").backend is Backend.MONGODB

    def test_conflicting_entries_rejected(self):
        with pytest.raises(RoutingTableError, match="assigned to both"):
            RoutingTable([
                RoutingEntry("S", "did", Backend.SQL),
                RoutingEntry("S", "did", Backend.MONGODB),
            ])

    def test_repeated_identical_entry_allowed(self):
        table = RoutingTable([RoutingEntry("S", "did", Backend.MONGODB)] * 2)
        assert len(table) == 2

    def test_entries_for(self):
        table = default_routing_table()
        keys = {e.key for e in table.entries_for("SpecScans")}
        assert {"sid", "did", "motors", "spec_file"} <= keys
        assert table.entries_for("Nope") == ()


class TestParseRoutingTable:
    def test_list_shape(self):
        table = parse_routing_table([
            {"service": "S", "key": "motors", "backend": "sql"},
            {"service": "S", "key": "did", "backend": "mongodb"},
        ])
        assert table.owner("S", "motors.th").backend is Backend.SQL
        assert table.owner("S", "did").backend is Backend.MONGODB

    def test_mapping_shape(self):
        table = parse_routing_table({"S": {"mysql": ["motors"], "mongo": ["did", "cycle"]}})
        assert len(table) == 3
        assert table.owner("S", "cycle").backend is Backend.MONGODB

    def test_entry_missing_field(self):
        with pytest.raises(RoutingTableError, match="missing"):
            parse_routing_table([{"service": "S", "key": "did"}])

    def test_keys_must_be_list(self):
        with pytest.raises(RoutingTableError, match="must be a list"):
            parse_routing_table({"S": {"sql": "motors"}})

    def test_unsupported_type(self):
        with pytest.raises(RoutingTableError):
            parse_routing_table("motors")


class TestLoadRoutingTable:
    def test_default_when_no_source(self):
        table = load_routing_table(None)
        assert len(table) == len(default_routing_table())

    def test_from_file(self, tmp_path):
        path = tmp_path / "service_map.json"
        path.write_text(json.dumps({"SpecScans": {"sql": ["motors"], "mongodb": ["did"]}}))
        table = load_routing_table(str(path))
        assert table.owner("SpecScans", "did").backend is Backend.MONGODB

    def test_missing_file(self, tmp_path):
        with pytest.raises(RoutingTableError, match="Could not read"):
            load_routing_table(str(tmp_path / "missing.json"))

    def test_invalid_json_file(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json")
        with pytest.raises(RoutingTableError, match="not valid JSON"):
            load_routing_table(str(path))

    def test_from_url(self, monkeypatch):
        class FakeResponse:
            def raise_for_status(self):
                pass

            def json(self):
                return [{"service": "SpecScans", "key": "motors", "backend": "sql"}]

        calls = []

        def fake_get(url, timeout):
            calls.append((url, timeout))
            return FakeResponse()

        monkeypatch.setattr(routing.requests, "get", fake_get)
        table = load_routing_table("https://maps.example/services.json", timeout=3)
        assert calls == [("https://maps.example/services.json", 3)]
        assert table.owner("SpecScans", "motors").backend is Backend.SQL

    def test_url_failure(self, monkeypatch):
        def fake_get(url, timeout):
            raise requests.exceptions.ConnectionError("refused")

        monkeypatch.setattr(routing.requests, "get", fake_get)
        with pytest.raises(RoutingTableError, match="Could not fetch"):
            load_routing_table("http://maps.example/services.json")
