"""CSV bulk upload of tasks.

Rows are read one at a time from the uploaded stream and validated in file
order. Invalid rows are skipped and reported; valid rows are persisted
together in a single transaction once the whole file has been read. A parse
error anywhere in the file aborts the upload before anything is written.
"""

import csv
import io
import logging
from typing import BinaryIO, Iterator, Protocol

from taskboard.models.task import Task
from taskboard.schemas.task import SkippedRow, UploadResult, validate_row
from taskboard.utils.errors import MalformedInputFailure, NoValidRows, ValidationFailure

logger = logging.getLogger(__name__)


class BulkTaskWriter(Protocol):
    def create_many(self, rows: list[dict]) -> list[Task]: ...


def iter_rows(stream: BinaryIO) -> Iterator[tuple[int, dict]]:
    """Yield (row number, row) pairs lazily from a UTF-8 CSV byte stream.

    Row numbers are 1-based and do not count the header. Blank lines are
    skipped. Any structural problem raises MalformedInputFailure.
    """
    text = io.TextIOWrapper(stream, encoding="utf-8-sig", newline="")
    reader = csv.DictReader(text, strict=True)
    try:
        if not reader.fieldnames:
            return
        number = 0
        for row in reader:
            number += 1
            if None in row:
                raise MalformedInputFailure(
                    f"row {number} has more fields than the header"
                )
            yield number, {(k or "").strip(): v for k, v in row.items()}
    except csv.Error as e:
        raise MalformedInputFailure(f"malformed input: {e}") from e
    except UnicodeDecodeError as e:
        raise MalformedInputFailure("malformed input: file is not valid UTF-8") from e
    finally:
        # leave the caller's stream open
        text.detach()


def ingest_csv(stream: BinaryIO, owner_id: int, store: BulkTaskWriter) -> tuple[UploadResult, list[Task]]:
    """Validate and persist an uploaded CSV for ``owner_id``.

    Returns the upload summary and the persisted tasks. Raises
    MalformedInputFailure on a parse error and NoValidRows when nothing
    survives validation; in both cases the store is never called.
    """
    accepted: list[dict] = []
    skipped: list[SkippedRow] = []

    for number, row in iter_rows(stream):
        try:
            task = validate_row(row)
        except ValidationFailure as failure:
            errors = failure.details or []
            skipped.append(SkippedRow(
                row=number,
                reason="; ".join(e["message"] for e in errors) or failure.message,
                errors=errors,
            ))
            continue
        accepted.append({
            "title": task.title,
            "description": task.description,
            "status": task.status,
            "user_id": owner_id,
        })

    if not accepted:
        logger.info("Upload rejected, no valid rows", extra={"owner_id": owner_id, "skipped": len(skipped)})
        raise NoValidRows([s.model_dump() for s in skipped])

    tasks = store.create_many(accepted)
    logger.info(
        "Upload persisted",
        extra={"owner_id": owner_id, "persisted": len(tasks), "skipped": len(skipped)},
    )
    return UploadResult(persisted=len(tasks), skipped=skipped), tasks
