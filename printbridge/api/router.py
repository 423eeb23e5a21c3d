"""Print bridge API routes."""

import logging

from fastapi import APIRouter, File, HTTPException, Query, UploadFile, status
from fastapi.responses import FileResponse, Response

from printbridge.api.dependencies import AdminAccess, Services
from printbridge.api.schemas import (
    CommandResponse,
    PrinterInfo,
    PrintersResponse,
    PrintRequest,
    PrintResponse,
    RuntimeSettingsSchema,
    SpoolStatusResponse,
    UploadResponse,
)
from printbridge.commands import CommandFailure, run_checked
from printbridge.dispatcher import PrintJob
from printbridge.printing.base import (
    DeviceFailure,
    InvalidOperation,
    LoadError,
    PlatformUnsupported,
    PrintBridgeError,
    RenderFailure,
    UnsupportedFileKind,
)

logger = logging.getLogger(__name__)

router = APIRouter()

_ERROR_STATUS = {
    PlatformUnsupported: status.HTTP_501_NOT_IMPLEMENTED,
    UnsupportedFileKind: status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
    # Unprocessable Content
    LoadError: 422,
    InvalidOperation: status.HTTP_400_BAD_REQUEST,
    RenderFailure: status.HTTP_500_INTERNAL_SERVER_ERROR,
    DeviceFailure: status.HTTP_502_BAD_GATEWAY,
    CommandFailure: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

IMAGE_MEDIA_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".bmp": "image/bmp",
}


def _http_error(error: PrintBridgeError) -> HTTPException:
    """Map a bridge error to an HTTP error with the same message."""
    code = _ERROR_STATUS.get(type(error), status.HTTP_500_INTERNAL_SERVER_ERROR)
    return HTTPException(
        status_code=code,
        detail={"error": type(error).__name__, "message": str(error)},
    )


def _not_found(file_id: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"File {file_id} not found")


@router.post("/upload", response_model=UploadResponse)
def upload(services: Services, file: UploadFile = File(...)):
    """Store an uploaded document for later preview and printing.

    Raises:
        HTTPException: If the file is empty or not printable.
    """
    data = file.file.read()
    if not data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No file uploaded.")

    try:
        stored = services.files.save(file.filename or "", data)
    except UnsupportedFileKind as e:
        raise _http_error(e) from e

    return UploadResponse(id=stored.id, filename=stored.filename, type=stored.extension)


@router.get("/preview/{file_id}")
def preview(
    file_id: str,
    services: Services,
    page: int = Query(0, ge=0, description="Zero-based page index"),
):
    """Preview an uploaded document.

    PDFs are rendered to PNG; images are returned as stored.

    Raises:
        HTTPException: If the file is unknown, previews are disabled or rendering fails.
    """
    path = services.files.find(file_id)
    if path is None:
        raise _not_found(file_id)

    if not services.settings.get_settings().preview_enabled:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Preview is disabled")

    media_type = IMAGE_MEDIA_TYPES.get(path.suffix.lower())
    if media_type:
        return FileResponse(path, media_type=media_type)

    try:
        png = services.dispatcher.render_preview(path, page)
    except FileNotFoundError as e:
        raise _not_found(file_id) from e
    except PrintBridgeError as e:
        raise _http_error(e) from e

    return Response(content=png, media_type="image/png")


@router.post("/print/{file_id}", response_model=PrintResponse)
def print_file(file_id: str, services: Services, body: PrintRequest | None = None):
    """Print an uploaded document.

    Raises:
        HTTPException: If the file is unknown or printing fails.
    """
    body = body or PrintRequest()
    path = services.files.find(file_id)
    if path is None:
        raise _not_found(file_id)

    try:
        job = PrintJob.for_file(path, copies=body.copies, rotation=body.rotation)
        result = services.dispatcher.dispatch(job)
    except PrintBridgeError as e:
        raise _http_error(e) from e

    return PrintResponse(job_id=result.job_id, strategy=result.strategy, pages=result.pages)


@router.get("/printers", response_model=PrintersResponse)
def list_printers(services: Services):
    """List printers known to the host."""
    printer = services.dispatcher.printer
    return PrintersResponse(
        available=printer.is_available,
        default=printer.get_default_printer(),
        printers=[PrinterInfo(**p) for p in printer.get_printers()],
    )


@router.get("/settings", response_model=RuntimeSettingsSchema)
def get_settings(services: Services):
    """Get the runtime settings."""
    return RuntimeSettingsSchema.from_settings(services.settings.get_settings())


@router.put("/settings", response_model=RuntimeSettingsSchema, dependencies=[AdminAccess])
def save_settings(data: RuntimeSettingsSchema, services: Services):
    """Replace the runtime settings."""
    services.settings.save_settings(data.to_settings())
    return RuntimeSettingsSchema.from_settings(services.settings.get_settings())


@router.get("/admin/spool", response_model=SpoolStatusResponse, dependencies=[AdminAccess])
def spool_status(services: Services):
    """Get spool monitor status."""
    return SpoolStatusResponse(**services.monitor.status())


@router.post("/admin/spool/clean", response_model=CommandResponse, dependencies=[AdminAccess])
def clean_spool(services: Services):
    """Run the spool recovery sequence now.

    Raises:
        HTTPException: If a recovery command fails.
    """
    try:
        results = services.monitor.clean_spool()
    except CommandFailure as e:
        raise _http_error(e) from e

    return CommandResponse(
        message="Spooler cleaned and restarted.",
        commands=[r.command for r in results],
    )


@router.post("/admin/restart", response_model=CommandResponse, dependencies=[AdminAccess])
def restart_host(services: Services):
    """Restart the host machine.

    Raises:
        HTTPException: If the restart command fails.
    """
    logger.warning("Host restart requested through the admin API")
    try:
        result = run_checked(services.executor, services.monitor.commands.restart_host)
    except CommandFailure as e:
        raise _http_error(e) from e

    return CommandResponse(message="Restart initiated.", commands=[result.command])
