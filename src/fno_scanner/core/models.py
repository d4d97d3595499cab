"""
Data models for the scanner subsystem.
No implementation logic beyond defensive parsing, only Pydantic models and typed structures.
"""

from enum import Enum
from typing import Any, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

FUTURE_ON_STOCK = "FUTSTK"
OPTION_ON_STOCK = "OPTSTK"


def to_float(value: Any) -> float:
    """Numeric feed fields are not guaranteed; anything unusable becomes 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).replace(",", "").strip())
    except ValueError:
        return 0.0


def to_str(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


class ScanCategory(str, Enum):
    """Independent scan types, each with its own result journal."""
    FNO = "fno"
    LOSERS = "losers"


class OptionSide(str, Enum):
    CALL = "CE"
    PUT = "PE"
    NONE = ""


class ScanStatus(str, Enum):
    """Outcome of evaluating one ticker. Exactly one per evaluation."""
    SUCCESS = "success"
    CONDITION_NOT_MET = "condition_not_met"
    HTTP_ERROR = "http_error"
    TIMEOUT = "timeout"
    TRANSPORT_ERROR = "transport_error"

    @property
    def is_error(self) -> bool:
        return self in (ScanStatus.HTTP_ERROR, ScanStatus.TIMEOUT, ScanStatus.TRANSPORT_ERROR)


class DerivativeRecord(BaseModel):
    """One row of a ticker's derivatives listing."""
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    instrument_type: str = Field("", alias="instrumentType", description="FUTSTK or OPTSTK")
    expiry_date: str = Field("", alias="expiryDate", description="Contract expiry, e.g. 27-Feb-2026")
    option_type: str = Field("", alias="optionType", description="CE, PE or empty for futures")
    open_price: float = Field(0.0, alias="openPrice")
    high_price: float = Field(0.0, alias="highPrice")
    low_price: float = Field(0.0, alias="lowPrice")
    prev_close: float = Field(0.0, alias="prevClose")
    total_traded_volume: float = Field(0.0, alias="totalTradedVolume")

    @field_validator("instrument_type", "expiry_date", "option_type", mode="before")
    @classmethod
    def _default_str(cls, v):
        return to_str(v)

    @field_validator("open_price", "high_price", "low_price", "prev_close", "total_traded_volume", mode="before")
    @classmethod
    def _default_number(cls, v):
        return to_float(v)

    @property
    def is_stock_future(self) -> bool:
        return self.instrument_type == FUTURE_ON_STOCK

    @property
    def is_stock_option(self) -> bool:
        return self.instrument_type == OPTION_ON_STOCK

    @property
    def side(self) -> OptionSide:
        try:
            return OptionSide(self.option_type.strip().upper())
        except ValueError:
            return OptionSide.NONE

    @classmethod
    def from_raw(cls, raw: Any) -> Optional["DerivativeRecord"]:
        """Parse one feed row; non-dict rows are skipped."""
        if not isinstance(raw, dict):
            return None
        return cls.model_validate(raw)


class SymbolClassification(BaseModel):
    """Counters and status for one evaluated ticker."""
    model_config = ConfigDict(frozen=True)

    symbol: str
    call_open_low: int = Field(0, ge=0)
    call_open_high: int = Field(0, ge=0)
    put_open_low: int = Field(0, ge=0)
    put_open_high: int = Field(0, ge=0)
    status: ScanStatus
    detail: Optional[str] = Field(None, description="HTTP code or transport error message")

    @property
    def is_error(self) -> bool:
        return self.status.is_error


class BullishEntry(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    symbol: str
    ce_ol: int = Field(..., alias="ceOL", ge=0)
    pe_oh: int = Field(..., alias="peOH", ge=0)


class BearishEntry(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    symbol: str
    pe_ol: int = Field(..., alias="peOL", ge=0)
    ce_oh: int = Field(..., alias="ceOH", ge=0)


class ScanResult(BaseModel):
    """Outcome of one F&O scan run. Created once at the end of a run, never mutated."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int = Field(..., description="Epoch milliseconds at completion")
    scan_timestamp: str = Field(..., alias="scanTimestamp")
    total_symbols: int = Field(..., alias="totalSymbols", ge=0)
    total_scanned_successfully: int = Field(..., alias="totalScannedSuccessfully", ge=0)
    stocks_meeting_conditions: int = Field(..., alias="stocksMeetingConditions", ge=0)
    scan_time: float = Field(..., alias="scanTime", description="Elapsed seconds, 2 decimals")
    expiry: str
    bullish: Tuple[BullishEntry, ...] = Field(default=(), max_length=10)
    bearish: Tuple[BearishEntry, ...] = Field(default=(), max_length=10)


class LoserStock(BaseModel):
    """An EQ-series F&O loser whose open equals its high."""
    model_config = ConfigDict(frozen=True)

    symbol: str
    open: float
    high: float
    low: float
    ltp: float
    change: float
    volume: float


class LosersScanResult(BaseModel):
    """Outcome of one Top Losers OH scan run."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int
    scan_timestamp: str = Field(..., alias="scanTimestamp")
    total_fosec_stocks: int = Field(..., alias="totalFOSecStocks", ge=0)
    qualified_stocks: int = Field(..., alias="qualifiedStocks", ge=0)
    scan_time: float = Field(..., alias="scanTime")
    stocks: Tuple[LoserStock, ...] = ()
