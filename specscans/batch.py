# ==============================================
# BatchCoordinator
# ==============================================
#
# PURPOSE:
#   Runs one task per submitted record (add or edit) on a bounded
#   thread pool, collects every outcome and derives an aggregate
#   status. A batch never fails fast: every record is attempted.
#
# CLASS: BatchCoordinator
# -----------------------
#   - __init__(max_workers: int = 8)
#   - run(items: list[dict], task: Callable[[dict], dict]) -> BatchResult
#       task returns the stored composite record or raises.
#       Outcomes arrive in completion order, NOT submission order.
#
# DATA CLASSES:
# -------------
# - RecordError
#     index: int     → position of the record in the submitted batch
#     error: str
#
# - BatchResult
#     records: list[dict]       successful records (completion order)
#     errors: list[RecordError] sorted by index
#     total: int
#     status → BatchStatus: SUCCESS (no errors), PARTIAL, FAILURE (no successes)
#     http_status → 200 / 207 / 400
#
# ==============================================

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from specscans.errors import SpecScansError

logger = logging.getLogger(__name__)


class BatchStatus(Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILURE = "failure"

    @property
    def http_status(self) -> int:
        return {
            BatchStatus.SUCCESS: 200,
            BatchStatus.PARTIAL: 207,
            BatchStatus.FAILURE: 400,
        }[self]


@dataclass
class RecordError:
    index: int
    error: str
    exception: Optional[BaseException] = field(default=None, compare=False, repr=False)

    def to_dict(self) -> dict[str, Any]:
        return {"index": self.index, "error": self.error}


@dataclass
class BatchResult:
    records: list[dict] = field(default_factory=list)
    errors: list[RecordError] = field(default_factory=list)
    total: int = 0

    @property
    def status(self) -> BatchStatus:
        if not self.errors:
            return BatchStatus.SUCCESS
        if not self.records:
            return BatchStatus.FAILURE
        return BatchStatus.PARTIAL

    @property
    def http_status(self) -> int:
        return self.status.http_status

    def error_message(self) -> str:
        return "\n".join(f"record {e.index}: {e.error}" for e in self.errors)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "total": self.total,
            "succeeded": len(self.records),
            "failed": len(self.errors),
            "records": self.records,
            "errors": [e.to_dict() for e in self.errors],
        }


class BatchCoordinator:
    def __init__(self, max_workers: int = 8):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.max_workers = max_workers

    def run(self, items: list[dict], task: Callable[[dict], dict]) -> BatchResult:
        result = BatchResult(total=len(items))
        if not items:
            return result

        workers = min(self.max_workers, len(items))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="specscans-batch") as pool:
            futures = {pool.submit(task, item): index for index, item in enumerate(items)}
            for future in as_completed(futures):
                index = futures[future]
                try:
                    result.records.append(future.result())
                except SpecScansError as e:
                    logger.info("✗ Record %d failed: %s", index, e)
                    result.errors.append(RecordError(index, str(e), e))
                except Exception as e:
                    # Unexpected failures still count against this record only
                    logger.exception("✗ Record %d failed unexpectedly", index)
                    result.errors.append(RecordError(index, f"{type(e).__name__}: {e}", e))

        result.errors.sort(key=lambda e: e.index)
        logger.info(
            "Batch of %d: %d succeeded, %d failed (%s)",
            result.total, len(result.records), len(result.errors), result.status.value,
        )
        return result
