"""Workspace data seeding stage."""
from __future__ import annotations

import logging
import time
from typing import Callable, Sequence

from backend.core.errors import FileReadError, InitializationError, external_call
from backend.domain import (
    DataSeedDetails,
    DataType,
    FileParseResult,
    SeedOptions,
    SeedResult,
    UploadedFile,
)
from backend.extractors import seed_files
from backend.infrastructure import LogLedger, StorageBackend

logger = logging.getLogger(__name__)

FileParser = Callable[[UploadedFile, DataType], FileParseResult]


class WorkspaceSeeder:
    """Parses uploaded files and persists the combined records in one call."""

    def __init__(
        self,
        ledger: LogLedger,
        storage: StorageBackend,
        parser: FileParser = seed_files.parse,
    ) -> None:
        self._ledger = ledger
        self._storage = storage
        self._parser = parser

    def seed_workspace_data(
        self,
        workspace_id: str,
        data_type: DataType,
        files: Sequence[UploadedFile],
        options: SeedOptions,
        *,
        ledger_key: str,
    ) -> SeedResult:
        started = time.perf_counter()
        details = DataSeedDetails(workspace_id=workspace_id, data_type=data_type, options=options)
        entry = self._ledger.start(ledger_key, "data_seed", f"Workspace data seeding started ({data_type})", details)
        logger.info(
            "workspace seeding started",
            extra={"workspace_id": workspace_id, "data_type": data_type, "files": len(files), "log_id": entry.id},
        )

        results: list[FileParseResult] = []
        try:
            for file in files:
                result = self._parse(file, data_type)
                results.append(result)
                logger.info(
                    "file parsed",
                    extra={
                        "workspace_id": workspace_id,
                        "source_file": result.filename,
                        "parsed": result.parsed_records,
                        "failed": result.failed_records,
                    },
                )

            records = [record for result in results for record in result.records]
            with external_call("persist_records"):
                self._storage.persist_records(
                    workspace_id,
                    data_type,
                    records,
                    overwrite=options.overwrite_existing,
                    auto_categorize=options.auto_categorize,
                    batch_size=options.batch_size,
                )
        except InitializationError as exc:
            self._fill(details, results, started)
            self._ledger.fail(entry.id, f"Workspace data seeding failed ({data_type})", str(exc), details)
            logger.warning(
                "workspace seeding failed",
                extra={"workspace_id": workspace_id, "log_id": entry.id, "error": str(exc)},
            )
            return SeedResult(
                workspace_id=workspace_id,
                data_type=data_type,
                success=False,
                processed_files=len(results),
                total_records=details.total_records,
                parsed_records=details.parsed_records,
                failed_records=details.failed_records,
                processing_time_ms=details.processing_time_ms or 0.0,
                error=str(exc),
                error_type=exc.code,
            )

        self._fill(details, results, started)
        self._ledger.complete(entry.id, f"Workspace data seeding completed ({data_type})", details)
        logger.info(
            "workspace seeding completed",
            extra={
                "workspace_id": workspace_id,
                "total_records": details.total_records,
                "failed_records": details.failed_records,
                "processing_time_ms": details.processing_time_ms,
            },
        )
        return SeedResult(
            workspace_id=workspace_id,
            data_type=data_type,
            success=True,
            processed_files=details.processed_files,
            total_records=details.total_records,
            parsed_records=details.parsed_records,
            failed_records=details.failed_records,
            processing_time_ms=details.processing_time_ms or 0.0,
        )

    def _parse(self, file: UploadedFile, data_type: DataType) -> FileParseResult:
        try:
            return self._parser(file, data_type)
        except InitializationError:
            raise
        except Exception as exc:  # unexpected parser errors mark the file unreadable
            logger.exception("parser failed", extra={"source_file": file.filename})
            raise FileReadError(file.filename, f"{type(exc).__name__}: {exc}") from exc

    @staticmethod
    def _fill(details: DataSeedDetails, results: list[FileParseResult], started: float) -> None:
        details.processed_files = len(results)
        details.total_records = sum(result.total_records for result in results)
        details.parsed_records = sum(result.parsed_records for result in results)
        details.failed_records = sum(result.failed_records for result in results)
        details.parse_results = [result.summary() for result in results]
        details.processing_time_ms = round((time.perf_counter() - started) * 1000, 3)
