"""Tests for MotorStore against an in-memory SQLite database."""

import pytest

from specscans.errors import DuplicateScanError, MotorStoreError
from specscans.query.motor_compiler import MotorPositionQuery
from specscans.records.record import MotorRecord
from specscans.storage.motor_store import MotorStore
from specscans.storage.statements import MYSQL, SQLITE, MotorStatementBuilder


def row_counts(store):
    cursor = store.connection.cursor()
    counts = {}
    for table in ("ScanIds", "MotorMnes", "MotorPositions"):
        cursor.execute(f"SELECT COUNT(*) FROM {table}")
        counts[table] = cursor.fetchone()[0]
    cursor.close()
    return counts


@pytest.fixture
def populated(motor_store):
    motor_store.insert(MotorRecord(1.0, {"samx": 1.0, "samz": 2.0}))
    motor_store.insert(MotorRecord(2.0, {"samx": 2.0}))
    motor_store.insert(MotorRecord(3.0, {"samz": 5.0}))
    return motor_store


def sids(records):
    return [r.sid for r in records]


class TestConnection:
    def test_unsupported_db_type(self):
        with pytest.raises(MotorStoreError, match="Unsupported"):
            MotorStore(db_type="oracle")

    def test_requires_connection(self):
        store = MotorStore(db_type="sqlite", db_file=":memory:")
        with pytest.raises(MotorStoreError, match="Not connected"):
            store.count()

    def test_schema_is_idempotent(self, motor_store):
        motor_store.create_schema()
        assert motor_store.count() == 0

    def test_context_manager(self, tmp_path):
        path = str(tmp_path / "motors.db")
        with MotorStore(db_type="sqlite", db_file=path) as store:
            store.insert(MotorRecord(10.0, {"th": 1.0}))
        with MotorStore(db_type="sqlite", db_file=path) as store:
            assert store.query_by_sid([10.0]) == [MotorRecord(10.0, {"th": 1.0})]
        assert store.connection is None


class TestInsert:
    def test_insert_and_read_back(self, motor_store):
        scan_id = motor_store.insert(MotorRecord(5.0, {"samx": 0.5, "th": 12}))
        assert scan_id == 1
        assert motor_store.query_by_sid([5.0]) == [MotorRecord(5.0, {"samx": 0.5, "th": 12.0})]
        assert row_counts(motor_store) == {"ScanIds": 1, "MotorMnes": 2, "MotorPositions": 2}

    def test_empty_motors(self, motor_store):
        motor_store.insert(MotorRecord(6.0, {}))
        assert motor_store.query_by_sid([6.0]) == [MotorRecord(6.0, {})]
        assert row_counts(motor_store) == {"ScanIds": 1, "MotorMnes": 0, "MotorPositions": 0}

    def test_duplicate_sid_leaves_no_partial_rows(self, motor_store):
        motor_store.insert(MotorRecord(5.0, {"samx": 1.0}))
        with pytest.raises(DuplicateScanError) as exc_info:
            motor_store.insert(MotorRecord(5.0, {"samx": 9.0, "samz": 9.0}))
        assert exc_info.value.sid == 5.0
        assert row_counts(motor_store) == {"ScanIds": 1, "MotorMnes": 1, "MotorPositions": 1}
        assert motor_store.query_by_sid([5.0]) == [MotorRecord(5.0, {"samx": 1.0})]

    def test_failure_mid_transaction_rolls_back(self, motor_store, monkeypatch):
        monkeypatch.setattr(
            motor_store.statements, "insert_position",
            lambda: "INSERT INTO NoSuchTable (motor_id, motor_position) VALUES (?, ?)",
        )
        with pytest.raises(MotorStoreError):
            motor_store.insert(MotorRecord(7.0, {"samx": 1.0}))
        assert row_counts(motor_store) == {"ScanIds": 0, "MotorMnes": 0, "MotorPositions": 0}

    def test_non_numeric_position(self, motor_store):
        with pytest.raises(MotorStoreError, match="must be a finite number"):
            motor_store.insert(MotorRecord(8.0, {"samx": "high"}))
        assert motor_store.count() == 0

    def test_non_finite_position(self, motor_store):
        with pytest.raises(MotorStoreError, match="must be a finite number"):
            motor_store.insert(MotorRecord(8.0, {"samx": float("nan")}))
        assert motor_store.count() == 0


class TestReplaceMotors:
    def test_replace(self, populated):
        populated.replace_motors(1.0, {"samx": 4.0, "chi": 90.0})
        assert populated.query_by_sid([1.0]) == [MotorRecord(1.0, {"samx": 4.0, "chi": 90.0})]
        assert populated.query_by_sid([2.0]) == [MotorRecord(2.0, {"samx": 2.0})]

    def test_unknown_sid(self, populated):
        with pytest.raises(MotorStoreError, match="not found"):
            populated.replace_motors(99.0, {"samx": 1.0})


class TestQueries:
    def test_query_by_sid_order_and_dedup(self, populated):
        assert sids(populated.query_by_sid([3.0, 1.0, 1.0])) == [1.0, 3.0]

    def test_query_by_sid_empty(self, populated):
        assert populated.query_by_sid([]) == []

    def test_query_by_sid_unknown(self, populated):
        assert populated.query_by_sid([42.0]) == []

    def test_no_filters_returns_all(self, populated):
        assert sids(populated.query_by_filter([])) == [1.0, 2.0, 3.0]

    def test_exact(self, populated):
        result = populated.query_by_filter([MotorPositionQuery("samx", exact=(1.0,))])
        assert result == [MotorRecord(1.0, {"samx": 1.0, "samz": 2.0})]

    def test_exact_set(self, populated):
        result = populated.query_by_filter([MotorPositionQuery("samx", exact=(1.0, 2.0))])
        assert sids(result) == [1.0, 2.0]

    def test_empty_exact_set_matches_nothing(self, populated):
        assert populated.query_by_filter([MotorPositionQuery("samx", exact=())]) == []

    def test_present_and_absent(self, populated):
        assert sids(populated.query_by_filter([MotorPositionQuery("samx")])) == [1.0, 2.0]
        assert sids(populated.query_by_filter([MotorPositionQuery("samx", present=False)])) == [3.0]

    def test_bounds(self, populated):
        gt = MotorPositionQuery("samx", minimum=1.0)
        gte = MotorPositionQuery("samx", minimum=1.0, min_inclusive=True)
        assert sids(populated.query_by_filter([gt])) == [2.0]
        assert sids(populated.query_by_filter([gte])) == [1.0, 2.0]

    def test_entries_are_anded(self, populated):
        result = populated.query_by_filter([
            MotorPositionQuery("samx", minimum=0.0),
            MotorPositionQuery("samz"),
        ])
        assert sids(result) == [1.0]

    def test_same_mnemonic_entries_are_anded(self, populated):
        result = populated.query_by_filter([
            MotorPositionQuery("samx", minimum=0.0),
            MotorPositionQuery("samx", maximum=2.0),
        ])
        assert sids(result) == [1.0]

    def test_set_and_range_intersect(self, populated):
        query = MotorPositionQuery("samx", exact=(1.0, 2.0), minimum=1.0)
        assert sids(populated.query_by_filter([query])) == [2.0]

    def test_results_carry_all_motors(self, populated):
        [record] = populated.query_by_filter([MotorPositionQuery("samz", exact=(2.0,))])
        assert record.motors == {"samx": 1.0, "samz": 2.0}

    def test_query_motor_position(self, populated):
        assert sids(populated.query_motor_position("samz", 5)) == [3.0]

    def test_sql_matches_in_python_evaluation(self, populated):
        everything = populated.query_by_filter([])
        queries = [
            MotorPositionQuery("samz", minimum=1.0, maximum=5.0, max_inclusive=True),
            MotorPositionQuery("samx", present=False),
        ]
        expected = [r.sid for r in everything if all(q.matches(r.motors) for q in queries)]
        assert sids(populated.query_by_filter(queries)) == expected == [3.0]

    def test_count(self, populated):
        assert populated.count() == 3

    def test_null_position_row_is_skipped(self, motor_store):
        motor_store.insert(MotorRecord(4.0, {"samx": 1.0}))
        cursor = motor_store.connection.cursor()
        cursor.execute("INSERT INTO MotorMnes (scan_id, motor_mne) VALUES (1, 'th')")
        cursor.execute("INSERT INTO MotorPositions (motor_id, motor_position) VALUES (?, NULL)", (cursor.lastrowid,))
        motor_store.connection.commit()
        cursor.close()
        assert motor_store.query_by_sid([4.0]) == [MotorRecord(4.0, {"samx": 1.0})]


class TestStatements:
    def test_placeholders_per_dialect(self):
        query = MotorPositionQuery("samx", exact=(1.0, 2.0))
        mysql_sql, mysql_params = MotorStatementBuilder(MYSQL).select_by_filters([query])
        sqlite_sql, sqlite_params = MotorStatementBuilder(SQLITE).select_by_filters([query])
        assert "IN (%s, %s)" in mysql_sql
        assert "IN (?, ?)" in sqlite_sql
        assert mysql_params == sqlite_params == ("samx", 1.0, 2.0)

    def test_values_never_inlined(self):
        query = MotorPositionQuery("samx'; DROP TABLE ScanIds; --", minimum=1.0)
        statement, params = MotorStatementBuilder(SQLITE).select_by_filters([query])
        assert "DROP" not in statement
        assert params == ("samx'; DROP TABLE ScanIds; --", 1.0)

    def test_absent_is_not_exists(self):
        statement, params = MotorStatementBuilder(SQLITE).select_by_filters(
            [MotorPositionQuery("samx", present=False)],
        )
        assert "NOT EXISTS" in statement
        assert params == ("samx",)
