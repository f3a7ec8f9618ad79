# ==============================================
# MotorStore
# ==============================================
#
# PURPOSE:
#   Owns the relational motor positions database: a normalized
#   three-table schema holding a variable-length, named array of
#   motor positions per scan.
#
# WHY THIS CLASS EXISTS:
#   Motor mnemonics differ per beamline and per scan. One column
#   per motor would give a wide, sparse table; instead every scan
#   gets one ScanIds row, one MotorMnes row per motor and one
#   MotorPositions row per motor.
#
# CLASS: MotorStore
# -----------------
#   Stateful: holds ONE connection guarded by a lock. Callers
#   from many threads are safe; writes are serialized.
#
#   Constructor:
#   ------------
#   - __init__(db_type="mysql", db_file=..., host=..., port=...,
#              user=..., password=..., database=...)
#       Store connection params. Don't connect yet.
#   - from_config(config: MotorsDbConfig) (classmethod)
#
#   Methods:
#   --------
#   - connect() / disconnect()
#   - create_schema() -> None             idempotent
#   - insert(record: MotorRecord) -> int  one transaction, returns scan_id row id
#   - replace_motors(sid, motors) -> None one transaction
#   - query_by_sid(sids) -> list[MotorRecord]
#   - query_by_filter(filters) -> list[MotorRecord]
#   - query_motor_position(mnemonic, position) -> list[MotorRecord]
#   - count() -> int
#
#   Context Manager:
#   ----------------
#   - __enter__ / __exit__ for `with MotorStore(...) as db:` usage.
#
# ==============================================

import logging
import sqlite3
import threading
from typing import Any, Iterable, Mapping, Optional, Sequence

import pymysql

from specscans.config import MotorsDbConfig
from specscans.errors import DuplicateScanError, MotorStoreError
from specscans.query.motor_compiler import MotorPositionQuery
from specscans.records.record import MotorRecord, is_position
from specscans.storage.statements import DIALECTS, MotorStatementBuilder

logger = logging.getLogger(__name__)


class MotorStore:
    def __init__(
        self,
        db_type: str = "mysql",
        db_file: str = "motors.db",
        host: str = "localhost",
        port: int = 3306,
        user: str = "root",
        password: str = "root",
        database: str = "motors",
    ):
        if db_type not in DIALECTS:
            raise MotorStoreError(f"Unsupported motors db type '{db_type}'")
        self.db_type = db_type
        self.db_file = db_file
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.database = database
        self.dialect = DIALECTS[db_type]
        self.statements = MotorStatementBuilder(self.dialect)
        self.connection = None
        self._lock = threading.RLock()
        if db_type == "sqlite":
            self._driver_error = sqlite3.Error
            self._integrity_error = sqlite3.IntegrityError
        else:
            self._driver_error = pymysql.err.Error
            self._integrity_error = pymysql.err.IntegrityError

    @classmethod
    def from_config(cls, config: MotorsDbConfig) -> "MotorStore":
        return cls(
            db_type=config.db_type,
            db_file=config.db_file,
            host=config.host,
            port=config.port,
            user=config.user,
            password=config.password,
            database=config.database,
        )

    def connect(self) -> None:
        # Establish connection, create database (mysql) and tables if missing
        with self._lock:
            if self.connection is not None:
                return
            try:
                if self.db_type == "sqlite":
                    self.connection = sqlite3.connect(self.db_file, check_same_thread=False)
                else:
                    self.connection = pymysql.connect(
                        host=self.host,
                        port=self.port,
                        user=self.user,
                        password=self.password,
                        autocommit=False,
                    )
                    cursor = self.connection.cursor()
                    cursor.execute(f"CREATE DATABASE IF NOT EXISTS `{self.database}`")
                    cursor.execute(f"USE `{self.database}`")
                    cursor.close()
            except self._driver_error as e:
                self.connection = None
                raise MotorStoreError(f"Could not connect to motors database: {e}") from e
            self.create_schema()
            logger.info("✓ Connected to %s motors database", self.db_type)

    def disconnect(self) -> None:
        with self._lock:
            if self.connection is not None:
                self.connection.close()
                self.connection = None

    def _require_connection(self):
        if self.connection is None:
            raise MotorStoreError("Not connected to motors database")
        return self.connection

    def create_schema(self) -> None:
        with self._lock:
            connection = self._require_connection()
            cursor = connection.cursor()
            try:
                for statement in self.dialect.schema:
                    cursor.execute(statement)
                connection.commit()
            except self._driver_error as e:
                connection.rollback()
                raise MotorStoreError(f"Could not create motors schema: {e}") from e
            finally:
                cursor.close()

    # --- writes ---

    def insert(self, record: MotorRecord) -> int:
        """
        Insert one scan's motor positions as a single transaction.

        Args:
            record: sid + mnemonic → position mapping

        Returns:
            Generated ScanIds row id

        Raises:
            DuplicateScanError: sid already present (nothing is written)
            MotorStoreError: any other failure (whole transaction rolled back)
        """
        motors = self._check_motors(record.motors)
        logger.debug("Inserting motor record: %s", record)
        with self._lock:
            connection = self._require_connection()
            cursor = connection.cursor()
            try:
                cursor.execute(self.statements.insert_scan(), (record.sid,))
                scan_id = cursor.lastrowid
                self._insert_motor_rows(cursor, scan_id, motors)
                connection.commit()
            except self._integrity_error as e:
                connection.rollback()
                if self._sid_exists(record.sid):
                    raise DuplicateScanError(record.sid, str(e)) from e
                raise MotorStoreError(f"Could not insert motor record {record.sid}: {e}") from e
            except self._driver_error as e:
                connection.rollback()
                raise MotorStoreError(f"Could not insert motor record {record.sid}: {e}") from e
            finally:
                cursor.close()
        logger.info("✓ Inserted %d motors for sid %s", len(motors), record.sid)
        return scan_id

    def replace_motors(self, sid: float, motors: Mapping[str, float]) -> None:
        """Replace all mnemonic/position rows of an existing scan atomically."""
        motors = self._check_motors(motors)
        with self._lock:
            connection = self._require_connection()
            cursor = connection.cursor()
            try:
                cursor.execute(self.statements.select_scan_id(), (sid,))
                row = cursor.fetchone()
                if row is None:
                    raise MotorStoreError(f"Scan id {sid} not found in motors database")
                scan_id = row[0]
                cursor.execute(self.statements.delete_positions(), (scan_id,))
                cursor.execute(self.statements.delete_mnemonics(), (scan_id,))
                self._insert_motor_rows(cursor, scan_id, motors)
                connection.commit()
            except MotorStoreError:
                connection.rollback()
                raise
            except self._driver_error as e:
                connection.rollback()
                raise MotorStoreError(f"Could not replace motors for sid {sid}: {e}") from e
            finally:
                cursor.close()
        logger.info("✓ Replaced motors for sid %s (%d motors)", sid, len(motors))

    def _insert_motor_rows(self, cursor, scan_id: int, motors: Mapping[str, float]) -> None:
        for mne, position in motors.items():
            cursor.execute(self.statements.insert_mnemonic(), (scan_id, mne))
            motor_id = cursor.lastrowid
            cursor.execute(self.statements.insert_position(), (motor_id, position))

    @staticmethod
    def _check_motors(motors: Optional[Mapping[str, Any]]) -> dict[str, float]:
        checked = {}
        for mne, position in (motors or {}).items():
            if not isinstance(mne, str) or not mne:
                raise MotorStoreError(f"Invalid motor mnemonic {mne!r}")
            if not is_position(position):
                raise MotorStoreError(f"Position of motor '{mne}' must be a finite number, got {position!r}")
            checked[mne] = float(position)
        return checked

    def _sid_exists(self, sid: float) -> bool:
        cursor = self.connection.cursor()
        try:
            cursor.execute(self.statements.select_scan_id(), (sid,))
            return cursor.fetchone() is not None
        finally:
            cursor.close()

    # --- reads ---

    def query_by_sid(self, sids: Iterable[float]) -> list[MotorRecord]:
        sids = list(dict.fromkeys(sids))
        if not sids:
            return []
        statement, params = self.statements.select_by_sids(sids)
        return self._fetch_records(statement, params)

    def query_by_filter(self, filters: Sequence[MotorPositionQuery]) -> list[MotorRecord]:
        """Scans satisfying every filter entry (AND across entries)."""
        statement, params = self.statements.select_by_filters(filters)
        return self._fetch_records(statement, params)

    def query_motor_position(self, mnemonic: str, position: float) -> list[MotorRecord]:
        return self.query_by_filter([MotorPositionQuery(mnemonic=mnemonic, exact=(float(position),))])

    def count(self) -> int:
        with self._lock:
            connection = self._require_connection()
            cursor = connection.cursor()
            try:
                cursor.execute(self.statements.count_scans())
                return int(cursor.fetchone()[0])
            except self._driver_error as e:
                raise MotorStoreError(f"Could not count motor records: {e}") from e
            finally:
                cursor.close()

    def _fetch_records(self, statement: str, params: tuple) -> list[MotorRecord]:
        logger.debug("Motors db query SQL statement: %s params=%s", statement, params)
        with self._lock:
            connection = self._require_connection()
            cursor = connection.cursor()
            try:
                cursor.execute(statement, params)
                rows = cursor.fetchall()
                # Plain SELECTs still open a transaction on mysql; close it
                connection.commit()
            except self._driver_error as e:
                connection.rollback()
                raise MotorStoreError(f"Could not query motor positions database: {e}") from e
            finally:
                cursor.close()
        return self._group_rows(rows)

    @staticmethod
    def _group_rows(rows: Iterable[Sequence[Any]]) -> list[MotorRecord]:
        # Rows come as (sid, mne, position), ordered by scan; regroup per sid
        records: dict[float, MotorRecord] = {}
        for sid, mne, position in rows:
            record = records.get(sid)
            if record is None:
                record = records[sid] = MotorRecord(sid=float(sid))
            # NULL position rows carry no value; the scan itself still counts
            if mne is not None and position is not None:
                record.motors[mne] = float(position)
        return list(records.values())

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()
