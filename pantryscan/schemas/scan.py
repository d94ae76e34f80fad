from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..core.barcodes import normalize_barcode
from ..core.serials import normalize_serial

# Stock quantities are stored in a 32-bit integer column.
MAX_SCAN_QUANTITY = 2**31 - 1


class ScanRequest(BaseModel):
    """Body a scanner posts for every barcode it reads."""

    model_config = ConfigDict(extra="ignore")

    barcode: str
    scanner_serial: str
    action: Literal["add", "remove"] = "add"
    quantity: int = Field(default=1, ge=1, le=MAX_SCAN_QUANTITY)

    @field_validator("barcode", mode="before")
    @classmethod
    def validate_barcode(cls, value: object) -> str:
        if isinstance(value, int) and not isinstance(value, bool):
            value = str(value)
        barcode = normalize_barcode(value) if isinstance(value, str) else None
        if not barcode:
            raise ValueError("barcode must contain only digits")
        return barcode

    @field_validator("scanner_serial", mode="before")
    @classmethod
    def validate_serial(cls, value: object) -> str:
        serial = normalize_serial(value) if isinstance(value, str) else None
        if not serial:
            raise ValueError("Invalid scanner serial format")
        return serial

    @field_validator("action", mode="before")
    @classmethod
    def default_action(cls, value: object) -> object:
        if value is None:
            return "add"
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("quantity", mode="before")
    @classmethod
    def default_quantity(cls, value: object) -> object:
        return 1 if value is None else value


class ScanResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    product_id: str = Field(serialization_alias="productId")
    product_name: str = Field(serialization_alias="productName")
    action: str
    quantity: int
    stock_quantity: int | None = Field(default=None, serialization_alias="stockQuantity")
    product_created: bool = Field(default=False, serialization_alias="productCreated")
