"""
Typed views over toll transaction records and the cache container.

Upstream records are plain JSON objects. They are stored untouched; the
models here give the cache (and any other consumer) one explicit place
where field names, optional fields and timestamp parsing are defined.
"""
import math
import logging
from datetime import datetime
from typing import Any, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)

logger = logging.getLogger("toll_ledger.cache")

# Formats seen from the toll API besides ISO-8601
_TRIP_FORMATS = (
    "%m/%d/%Y %I:%M:%S %p",
    "%m/%d/%Y, %I:%M:%S %p",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y",
)


def as_local(dt: datetime) -> datetime:
    """Naive local time; aware values are converted first."""
    if dt.tzinfo is not None:
        return dt.astimezone().replace(tzinfo=None)
    return dt


def parse_trip_datetime(value: Any) -> Optional[datetime]:
    """Parse a trip timestamp into a naive local datetime.

    Accepts ISO-8601 (with or without offset, ``Z`` included), the
    ``M/D/YYYY h:mm:ss AM`` style and numbers as epoch milliseconds.
    Aware values are converted to local time. Returns None for anything
    unparseable.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value / 1000)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            for fmt in _TRIP_FORMATS:
                try:
                    dt = datetime.strptime(text, fmt)
                    break
                except ValueError:
                    continue
            else:
                return None
    else:
        return None
    return as_local(dt)


def to_epoch_ms(dt: datetime) -> int:
    """Milliseconds since the epoch; naive values are local time."""
    return int(dt.timestamp() * 1000)


class TollTransaction(BaseModel):
    """One toll posting as returned by the transaction history API."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    customer_trip_id: Optional[Union[int, str]] = Field(
        default=None, alias="CustomerTripId"
    )
    trip_datetime: Optional[Union[int, float, str]] = Field(
        default=None,
        validation_alias=AliasChoices(
            "Entry_TripDateTime", "TripDate", "trip_datetime"
        ),
    )
    toll_amount: Optional[float] = Field(default=None, alias="TollAmount")
    location_name: Optional[str] = Field(default=None, alias="LocationName")
    entry_plaza_name: Optional[str] = Field(default=None, alias="EntryPlazaName")
    entry_lane_name: Optional[str] = Field(default=None, alias="EntryLaneName")
    vehicle_number: Optional[str] = Field(default=None, alias="VehicleNumber")
    tag_id: Optional[str] = Field(default=None, alias="TagId")

    @field_validator("customer_trip_id", mode="before")
    @classmethod
    def empty_id(cls, v: Any) -> Any:
        if v == "" or isinstance(v, bool):
            return None
        if isinstance(v, float):
            # 5.0, 5 and "5" are one trip
            if not math.isfinite(v):
                return None
            return int(v) if v.is_integer() else str(v)
        if not isinstance(v, (int, str)):
            return None
        return v

    @field_validator("trip_datetime", mode="before")
    @classmethod
    def trip_value(cls, v: Any) -> Any:
        if isinstance(v, bool):
            return None
        if v is None or isinstance(v, (int, float, str)):
            return v
        return None

    @field_validator(
        "location_name", "entry_plaza_name",
        "entry_lane_name", "vehicle_number", "tag_id",
        mode="before",
    )
    @classmethod
    def as_text(cls, v: Any) -> Any:
        if v is None or isinstance(v, str):
            return v
        if isinstance(v, (int, float)):
            return str(v)
        return None

    @field_validator("toll_amount", mode="before")
    @classmethod
    def as_amount(cls, v: Any) -> Any:
        if v is None or v == "":
            return None
        try:
            return float(v)
        except (TypeError, ValueError):
            return None

    @classmethod
    def from_record(cls, record: Any) -> Optional["TollTransaction"]:
        """Typed view of a raw record; None if it is not a JSON object."""
        if not isinstance(record, dict):
            return None
        try:
            return cls.model_validate(record)
        except ValidationError as err:
            logger.debug("Unusable transaction record: %s", err.error_count())
            return None

    @property
    def cache_id(self) -> Optional[str]:
        """Identifier as used for container keys and deduplication."""
        if self.customer_trip_id is None:
            return None
        return str(self.customer_trip_id)

    def trip_timestamp(self) -> Optional[datetime]:
        return parse_trip_datetime(self.trip_datetime)


class CacheMetadata(BaseModel):
    """Bookkeeping kept beside each cached record (epoch milliseconds)."""

    model_config = ConfigDict(populate_by_name=True)

    cached_at: int = Field(alias="cachedAt")
    expires_at: int = Field(alias="expiresAt")
    is_recent: bool = Field(alias="isRecent")

    def is_expired(self, now_ms: int) -> bool:
        return self.expires_at < now_ms


class CacheStats(BaseModel):
    """Diagnostic tally of the cache container."""

    total: int = 0
    recent: int = 0
    old: int = 0
    expired: int = 0


class CacheContainer(BaseModel):
    """Every cached record keyed by identifier, plus per-record metadata."""

    transactions: dict[str, dict[str, Any]] = Field(default_factory=dict)
    metadata: dict[str, CacheMetadata] = Field(default_factory=dict)

    @classmethod
    def from_stored(cls, value: Any) -> "CacheContainer":
        """Rebuild a container from its stored JSON form.

        A value of the wrong shape gives an empty container; individual
        entries with unusable metadata are dropped.
        """
        container = cls()
        if not isinstance(value, dict):
            if value is not None:
                logger.warning("Ignoring transaction cache of unexpected type")
            return container
        transactions = value.get("transactions")
        metadata = value.get("metadata")
        if not isinstance(transactions, dict):
            return container
        if not isinstance(metadata, dict):
            metadata = {}
        for tid, record in transactions.items():
            if not isinstance(record, dict):
                continue
            raw_meta = metadata.get(tid)
            if raw_meta is not None:
                try:
                    container.metadata[tid] = CacheMetadata.model_validate(raw_meta)
                except ValidationError:
                    logger.debug("Dropping cache entry %s with bad metadata", tid)
                    continue
            container.transactions[tid] = record
        return container

    def to_stored(self) -> dict:
        return {
            "transactions": self.transactions,
            "metadata": {
                tid: meta.model_dump(by_alias=True)
                for tid, meta in self.metadata.items()
            },
        }

    def put(self, tid: str, record: dict, meta: CacheMetadata) -> None:
        self.transactions[tid] = record
        self.metadata[tid] = meta

    def remove(self, tid: str) -> None:
        self.transactions.pop(tid, None)
        self.metadata.pop(tid, None)
