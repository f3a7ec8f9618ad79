# ==============================================
# Motor Statement Builder
# ==============================================
#
# PURPOSE:
#   Builds every SQL statement the motor store runs, for either
#   dialect, as (statement, params) pairs. User-controlled values
#   only ever travel in `params`; statement text is built from
#   fixed fragments and placeholder counts.
#
# SCHEMA (three tables):
# ----------------------
#   ScanIds         scan_id (auto)  sid (unique)
#   MotorMnes       motor_id (auto) scan_id → ScanIds   motor_mne
#   MotorPositions  motor_id → MotorMnes                motor_position
#
# DIALECTS:
# ---------
#   MYSQL   "%s" placeholders, AUTO_INCREMENT, DOUBLE   (pymysql)
#   SQLITE  "?"  placeholders, AUTOINCREMENT, REAL      (sqlite3)
#
# FILTER SEMANTICS:
# -----------------
#   One EXISTS sub-select per MotorPositionQuery, all AND-ed:
#   a scan matches only if it satisfies every filter entry.
#   Inside one entry: mnemonic = ? AND position IN (...) AND
#   position > / >= ? AND position < / <= ?.
#   present=False turns the entry into NOT EXISTS on the mnemonic.
#
# ==============================================

from dataclasses import dataclass
from typing import Any, Sequence

from specscans.query.motor_compiler import MotorPositionQuery


@dataclass(frozen=True)
class Dialect:
    name: str
    placeholder: str
    schema: tuple


MYSQL = Dialect(
    name="mysql",
    placeholder="%s",
    schema=(
        "CREATE TABLE IF NOT EXISTS ScanIds ("
        " scan_id BIGINT AUTO_INCREMENT PRIMARY KEY,"
        " sid DOUBLE NOT NULL UNIQUE"
        ")",
        "CREATE TABLE IF NOT EXISTS MotorMnes ("
        " motor_id BIGINT AUTO_INCREMENT PRIMARY KEY,"
        " scan_id BIGINT NOT NULL,"
        " motor_mne VARCHAR(255) NOT NULL,"
        " INDEX idx_motormnes_scan (scan_id, motor_mne),"
        " FOREIGN KEY (scan_id) REFERENCES ScanIds (scan_id)"
        ")",
        "CREATE TABLE IF NOT EXISTS MotorPositions ("
        " motor_id BIGINT NOT NULL,"
        " motor_position DOUBLE,"
        " INDEX idx_motorpositions_motor (motor_id),"
        " FOREIGN KEY (motor_id) REFERENCES MotorMnes (motor_id)"
        ")",
    ),
)

SQLITE = Dialect(
    name="sqlite",
    placeholder="?",
    schema=(
        "CREATE TABLE IF NOT EXISTS ScanIds ("
        " scan_id INTEGER PRIMARY KEY AUTOINCREMENT,"
        " sid REAL NOT NULL UNIQUE"
        ")",
        "CREATE TABLE IF NOT EXISTS MotorMnes ("
        " motor_id INTEGER PRIMARY KEY AUTOINCREMENT,"
        " scan_id INTEGER NOT NULL REFERENCES ScanIds (scan_id),"
        " motor_mne VARCHAR(255) NOT NULL"
        ")",
        "CREATE TABLE IF NOT EXISTS MotorPositions ("
        " motor_id INTEGER NOT NULL REFERENCES MotorMnes (motor_id),"
        " motor_position REAL"
        ")",
        "CREATE INDEX IF NOT EXISTS idx_motormnes_scan ON MotorMnes (scan_id, motor_mne)",
        "CREATE INDEX IF NOT EXISTS idx_motorpositions_motor ON MotorPositions (motor_id)",
    ),
)

DIALECTS = {d.name: d for d in (MYSQL, SQLITE)}

_SELECT_MOTORS = (
    "SELECT s.sid, m.motor_mne, p.motor_position "
    "FROM ScanIds s "
    "LEFT JOIN MotorMnes m ON m.scan_id = s.scan_id "
    "LEFT JOIN MotorPositions p ON p.motor_id = m.motor_id"
)

_ORDER = " ORDER BY s.scan_id, m.motor_id"


class MotorStatementBuilder:
    def __init__(self, dialect: Dialect):
        self.dialect = dialect

    def _marks(self, count: int) -> str:
        return ", ".join([self.dialect.placeholder] * count)

    # --- writes ---

    def insert_scan(self) -> str:
        return f"INSERT INTO ScanIds (sid) VALUES ({self._marks(1)})"

    def insert_mnemonic(self) -> str:
        return f"INSERT INTO MotorMnes (scan_id, motor_mne) VALUES ({self._marks(2)})"

    def insert_position(self) -> str:
        return f"INSERT INTO MotorPositions (motor_id, motor_position) VALUES ({self._marks(2)})"

    def delete_positions(self) -> str:
        p = self.dialect.placeholder
        return (
            "DELETE FROM MotorPositions WHERE motor_id IN "
            f"(SELECT motor_id FROM MotorMnes WHERE scan_id = {p})"
        )

    def delete_mnemonics(self) -> str:
        return f"DELETE FROM MotorMnes WHERE scan_id = {self.dialect.placeholder}"

    # --- reads ---

    def select_scan_id(self) -> str:
        return f"SELECT scan_id FROM ScanIds WHERE sid = {self.dialect.placeholder}"

    def count_scans(self) -> str:
        return "SELECT COUNT(*) FROM ScanIds"

    def select_by_sids(self, sids: Sequence[Any]) -> tuple[str, tuple]:
        statement = f"{_SELECT_MOTORS} WHERE s.sid IN ({self._marks(len(sids))}){_ORDER}"
        return statement, tuple(sids)

    def select_by_filters(self, filters: Sequence[MotorPositionQuery]) -> tuple[str, tuple]:
        clauses = []
        params: list[Any] = []
        for query in filters:
            clause, clause_params = self._exists_clause(query)
            clauses.append(clause)
            params.extend(clause_params)
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        return f"{_SELECT_MOTORS}{where}{_ORDER}", tuple(params)

    def _exists_clause(self, query: MotorPositionQuery) -> tuple[str, list]:
        p = self.dialect.placeholder
        conditions = ["mm.scan_id = s.scan_id", f"mm.motor_mne = {p}"]
        params: list[Any] = [query.mnemonic]
        source = "MotorMnes mm"

        if query.present and query.constrains_position:
            source = "MotorMnes mm JOIN MotorPositions mp ON mp.motor_id = mm.motor_id"
            if query.exact is not None:
                if query.exact:
                    conditions.append(f"mp.motor_position IN ({self._marks(len(query.exact))})")
                    params.extend(query.exact)
                else:
                    # Empty exact set matches nothing
                    conditions.append("1 = 0")
            if query.minimum is not None:
                op = ">=" if query.min_inclusive else ">"
                conditions.append(f"mp.motor_position {op} {p}")
                params.append(query.minimum)
            if query.maximum is not None:
                op = "<=" if query.max_inclusive else "<"
                conditions.append(f"mp.motor_position {op} {p}")
                params.append(query.maximum)

        keyword = "EXISTS" if query.present else "NOT EXISTS"
        return f"{keyword} (SELECT 1 FROM {source} WHERE {' AND '.join(conditions)})", params
