"""
Telemetry sink: best-effort, append-only record of (command, response) pairs.

record() never raises. A failed write is logged, emitted as
telemetry.write_failed and dropped; it is not retried or queued, and it never
changes the outcome of the command it describes.

InfluxTelemetrySink stores records in InfluxDB (measurement "commands",
fields command/response, tag host). The influxdb-client API is blocking, so
every call runs in a worker thread; concurrent writers never block the event
loop and need no lock on the caller side.
"""

from __future__ import annotations

import abc
import asyncio
from typing import List, Optional

from influxdb_client import InfluxDBClient, Point
from influxdb_client.client.write_api import SYNCHRONOUS

from logging_setup import get_logger, Component

from .errors import TelemetryWriteError, classify_error, redact_detail
from .models import TelemetryRecord
from .observability import PipelineObserver


logger = get_logger(Component.TELEMETRY)

MEASUREMENT = "commands"


class TelemetrySink(abc.ABC):
    """Durable recorder for command/response pairs."""

    def __init__(self, *, host_tag: str = "local", observer: Optional[PipelineObserver] = None):
        self.host_tag = host_tag
        self._observer = observer

    async def ensure_schema(self) -> None:
        """Create whatever the store needs. Idempotent; called once at startup."""
        return None

    @abc.abstractmethod
    async def write(self, record: TelemetryRecord) -> None:
        """Persist one record; raises TelemetryWriteError on failure."""

    async def record(self, command: str, response: str) -> bool:
        """
        Persist one record, swallowing failures.

        Returns True when the record was written, False when it was dropped.
        """
        record = TelemetryRecord(command=command, response=response, host=self.host_tag)
        try:
            await self.write(record)
        except Exception as e:
            category = classify_error(e)
            detail = redact_detail(e)
            logger.warning(
                "Telemetry write failed; record dropped",
                category=category,
                error=detail,
                error_type=type(e).__name__,
            )
            if self._observer is not None:
                self._observer.telemetry_write_failed(category=category, detail=detail)
            return False
        return True

    async def aclose(self) -> None:
        return None


class InMemoryTelemetrySink(TelemetrySink):
    """Append-only list of records, for dry runs and tests."""

    def __init__(self, *, host_tag: str = "local", observer: Optional[PipelineObserver] = None):
        super().__init__(host_tag=host_tag, observer=observer)
        self.records: List[TelemetryRecord] = []

    async def write(self, record: TelemetryRecord) -> None:
        self.records.append(record)


class InfluxTelemetrySink(TelemetrySink):
    """InfluxDB-backed telemetry sink."""

    def __init__(
        self,
        *,
        url: str,
        bucket: str = "superalgos_db",
        org: str = "default",
        token: Optional[str] = None,
        host_tag: str = "local",
        observer: Optional[PipelineObserver] = None,
        client: Optional[InfluxDBClient] = None,
    ):
        super().__init__(host_tag=host_tag, observer=observer)
        self.url = url
        self.bucket = bucket
        self.org = org
        self._client = client or InfluxDBClient(url=url, token=token, org=org)
        self._write_api = self._client.write_api(write_options=SYNCHRONOUS)

    async def ensure_schema(self) -> None:
        """Create the bucket if it does not exist yet."""
        await asyncio.to_thread(self._ensure_bucket)

    def _ensure_bucket(self) -> None:
        buckets_api = self._client.buckets_api()
        if buckets_api.find_bucket_by_name(self.bucket) is None:
            buckets_api.create_bucket(bucket_name=self.bucket, org=self.org)
            logger.info("Telemetry bucket created", bucket=self.bucket, url=self.url)
        else:
            logger.info("Telemetry store reachable", bucket=self.bucket, url=self.url)

    def to_point(self, record: TelemetryRecord) -> Point:
        return (
            Point(MEASUREMENT)
            .tag("host", record.host)
            .field("command", record.command)
            .field("response", record.response)
        )

    async def write(self, record: TelemetryRecord) -> None:
        point = self.to_point(record)
        try:
            await asyncio.to_thread(
                self._write_api.write, bucket=self.bucket, org=self.org, record=point
            )
        except Exception as e:
            raise TelemetryWriteError(redact_detail(e), status=getattr(e, "status", None)) from e

    async def aclose(self) -> None:
        try:
            await asyncio.to_thread(self._write_api.close)
            await asyncio.to_thread(self._client.close)
        except Exception as e:
            logger.warning(
                "Error closing telemetry client",
                error=str(e),
                error_type=type(e).__name__,
            )
