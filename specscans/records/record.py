# ==============================================
# Record Decomposition / Completion
# ==============================================
#
# PURPOSE:
#   A scan record is submitted as ONE JSON object but stored in
#   TWO places: everything except the motor positions goes to
#   MongoDB, the motor mnemonic → position mapping goes to the
#   relational motors database. The scan id (sid) links them.
#
#   Composite record   {"did": ..., "start_time": 17.5, ..., "motors": {"samx": 1.0}}
#        │ decompose()
#        ├──► document portion   {"did": ..., "start_time": 17.5, ..., "sid": 17.5}
#        └──► MotorRecord        sid=17.5, motors={"samx": 1.0}
#        ▲ complete()
#
# DATA CLASS: MotorRecord
# -----------------------
#   - sid: float
#   - motors: dict[str, float]
#
# FUNCTIONS:
# ----------
# - decode_records(body) -> list[dict]
#     Accepts bytes / str JSON, a dict or a list of dicts.
#
# - derive_sid(record) -> float
#     sid = start_time; test records (negative sid) and records
#     without a usable start_time get a unique time-based sid.
#
# - decompose(record) -> tuple[dict, MotorRecord]
# - complete(document, motor_record) -> dict
#     Caller pairs same-sid portions; a mismatch is a ValueError.
#
# ==============================================

import json
import math
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Mapping, Union

from specscans.errors import RequestDecodeError


SID_KEY = "sid"
START_TIME_KEY = "start_time"
MOTORS_KEY = "motors"


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_position(value: Any) -> bool:
    """A motor position: a finite int or float."""
    return is_number(value) and math.isfinite(value)


def _reject_constant(name: str):
    raise RequestDecodeError(f"Cannot decode body of request: {name} is not a valid number")


@dataclass
class MotorRecord:
    """Relational portion of a scan record."""
    sid: float
    motors: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {SID_KEY: self.sid, MOTORS_KEY: dict(self.motors)}


def decode_records(body: Union[bytes, str, Mapping, list]) -> list[dict]:
    """
    Decode a request body holding one record or an array of records.

    Raises:
        RequestDecodeError: if the body is not JSON or not object(s)
    """
    data: Any = body
    if isinstance(body, (bytes, bytearray)):
        try:
            data = body.decode("utf-8")
        except UnicodeDecodeError as e:
            raise RequestDecodeError(f"Request body is not UTF-8: {e}") from e
    if isinstance(data, str):
        try:
            data = json.loads(data, parse_constant=_reject_constant)
        except json.JSONDecodeError as e:
            raise RequestDecodeError(f"Cannot decode body of request as JSON: {e}") from e

    if isinstance(data, Mapping):
        return [dict(data)]
    if isinstance(data, list):
        for i, item in enumerate(data):
            if not isinstance(item, Mapping):
                raise RequestDecodeError(
                    f"Record {i} must be a JSON object, got {type(item).__name__}"
                )
        return [dict(item) for item in data]
    raise RequestDecodeError(
        f"Request body must be a JSON object or array, got {type(data).__name__}"
    )


class _SidClock:
    """Hands out strictly increasing time-based sids, safe across threads."""

    def __init__(self):
        self._lock = threading.Lock()
        self._last = 0.0

    def next(self) -> float:
        with self._lock:
            sid = time.time_ns() / 1e9
            if sid <= self._last:
                sid = math.nextafter(self._last, math.inf)
            self._last = sid
            return sid


_sid_clock = _SidClock()


def derive_sid(record: Mapping[str, Any]) -> float:
    requested = record.get(SID_KEY)
    if is_number(requested) and requested < 0:
        # Test record: force a unique scan id
        return _sid_clock.next()
    start_time = record.get(START_TIME_KEY)
    if is_number(start_time) and math.isfinite(start_time):
        return float(start_time)
    return _sid_clock.next()


def decompose(record: Mapping[str, Any]) -> tuple[dict, MotorRecord]:
    sid = derive_sid(record)
    motors = record.get(MOTORS_KEY) or {}
    document = {key: value for key, value in record.items() if key != MOTORS_KEY}
    document[SID_KEY] = sid
    motor_record = MotorRecord(
        sid=sid,
        motors={str(mne): float(pos) for mne, pos in motors.items()},
    )
    return document, motor_record


def complete(document: Mapping[str, Any], motor_record: MotorRecord) -> dict:
    if document.get(SID_KEY) != motor_record.sid:
        raise ValueError(
            f"Cannot complete record: document sid {document.get(SID_KEY)!r} "
            f"!= motor record sid {motor_record.sid!r}"
        )
    record = dict(document)
    record[MOTORS_KEY] = dict(motor_record.motors)
    return record
