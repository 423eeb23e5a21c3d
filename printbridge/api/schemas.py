"""Schemas for the print bridge HTTP API."""

from datetime import datetime

from pydantic import BaseModel, Field

from printbridge.dispatcher import PrintStrategy
from printbridge.settings import RuntimeSettings


class UploadResponse(BaseModel):
    """Schema for a stored upload."""

    id: str
    filename: str
    type: str = Field(..., description="File extension, e.g. '.pdf'")


class PrintRequest(BaseModel):
    """Schema for a print request."""

    copies: int = Field(1, ge=1, le=999, description="Number of copies")
    rotation: int = Field(0, description="Clockwise rotation in degrees (multiple of 90)")


class PrintResponse(BaseModel):
    """Schema for an accepted print job."""

    message: str = "Print job started."
    job_id: str
    strategy: PrintStrategy
    pages: int | None = Field(None, description="Pages composed on the raster path")


class PrinterInfo(BaseModel):
    """Schema for one host printer."""

    name: str
    state_message: str = ""
    is_default: bool = False


class PrintersResponse(BaseModel):
    """Schema for the printer list."""

    available: bool
    default: str | None
    printers: list[PrinterInfo]


class RuntimeSettingsSchema(BaseModel):
    """Schema for runtime settings, using the persisted camelCase field names."""

    printerName: str = ""
    autoCleanEnabled: bool = False
    autoCleanTimeoutMinutes: int = Field(20, gt=0)
    previewEnabled: bool = True

    @classmethod
    def from_settings(cls, settings: RuntimeSettings) -> "RuntimeSettingsSchema":
        return cls(**settings.to_dict())

    def to_settings(self) -> RuntimeSettings:
        return RuntimeSettings.from_dict(self.model_dump())


class SpoolStatusResponse(BaseModel):
    """Schema for spool monitor status."""

    state: str
    running: bool
    spool_dir: str
    interval_seconds: float
    last_check: datetime | None = None
    last_cleanup: datetime | None = None
    last_error: str | None = None


class CommandResponse(BaseModel):
    """Schema for an admin command outcome."""

    message: str
    commands: list[str] = []
