"""Pytest configuration and fixtures."""

from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from printbridge.commands import CommandResult, RecoveryCommands
from printbridge.config import BridgeConfig
from printbridge.dispatcher import PrintDispatcher
from printbridge.printing.base import DeviceFailure, LoadError
from printbridge.printing.compositor import PrintableArea
from printbridge.services import BridgeServices
from printbridge.settings import RuntimeSettings, SettingsProvider
from printbridge.spool import SpoolMonitor, iter_spool_entries
from printbridge.storage import FileStore

ADMIN_KEY = "test-admin-key"


class FakeSink:
    """Page sink recording what would have been printed."""

    def __init__(self, area: PrintableArea, accept_landscape: bool = True):
        self.area = area
        self.accept_landscape = accept_landscape
        self.landscape_requests: list[bool] = []
        self.pages: list[dict] = []

    def set_landscape(self, landscape: bool) -> bool:
        self.landscape_requests.append(landscape)
        return self.accept_landscape

    def printable_area(self) -> PrintableArea:
        return self.area

    def print_page(self, bitmap, placement) -> None:
        self.pages.append({"size": bitmap.size, "placement": placement})


class FakePrinter:
    """Printer backend recording direct prints and raster documents."""

    def __init__(self, available: bool = True, fail: bool = False):
        self.available = available
        self.fail = fail
        self.accept_landscape = True
        self.area = PrintableArea(
            left=100, top=100, width=2000, height=3000, page_width=2200, page_height=3200
        )
        self.direct_prints: list[dict] = []
        self.documents: list[dict] = []
        self.sinks: list[FakeSink] = []

    @property
    def is_available(self) -> bool:
        return self.available

    def get_printers(self) -> list[dict]:
        return [
            {"name": "Office", "state_message": "", "is_default": True},
            {"name": "Label", "state_message": "idle", "is_default": False},
        ]

    def get_default_printer(self) -> str | None:
        return "Office"

    def print_pdf(self, pdf_path, copies=1, printer_name=None) -> None:
        if self.fail:
            raise DeviceFailure("printer offline")
        self.direct_prints.append({"path": pdf_path, "copies": copies, "printer_name": printer_name})

    @contextmanager
    def open_document(self, title, copies=1, printer_name=None):
        sink = FakeSink(self.area, accept_landscape=self.accept_landscape)
        self.sinks.append(sink)
        yield sink
        if self.fail:
            raise DeviceFailure("printer offline")
        self.documents.append(
            {"title": title, "copies": copies, "printer_name": printer_name, "pages": len(sink.pages)}
        )


class FakeDocument:
    def __init__(self, name: str, page_sizes: list[tuple[int, int]]):
        self.name = name
        self.page_sizes = page_sizes
        self.closed = False

    def close(self) -> None:
        self.closed = True


class FakeRenderer:
    """Renderer producing blank pages of known sizes.

    Page sizes are given at 72 DPI and scaled by the requested DPI.
    """

    def __init__(self, page_sizes: list[tuple[int, int]] | None = None):
        self.page_sizes = page_sizes if page_sizes is not None else [(612, 792)]
        self.opened: list[FakeDocument] = []
        self.rendered: list[tuple[int, int, int]] = []

    def open(self, path) -> FakeDocument:
        if Path(path).read_bytes().startswith(b"broken"):
            raise LoadError(f"Could not open {path}")
        document = FakeDocument(str(path), self.page_sizes)
        self.opened.append(document)
        return document

    def page_count(self, document: FakeDocument) -> int:
        return len(document.page_sizes)

    def render_page(self, document, index, dpi_x, dpi_y) -> Image.Image:
        width, height = document.page_sizes[index]
        self.rendered.append((index, dpi_x, dpi_y))
        return Image.new("RGB", (width * dpi_x // 72, height * dpi_y // 72), "white")

    def load_image(self, path) -> Image.Image:
        with Image.open(path) as image:
            return image.convert("RGB")


class FakeExecutor:
    """Command executor recording invocations.

    Args:
        exit_codes: Exit code per call, in order; calls past the end exit 0.
    """

    def __init__(self, exit_codes: list[int] | None = None):
        self.exit_codes = list(exit_codes or [])
        self.calls: list[list[str]] = []

    def run(self, command) -> CommandResult:
        self.calls.append(list(command))
        code = self.exit_codes[len(self.calls) - 1] if len(self.calls) <= len(self.exit_codes) else 0
        stderr = "Access is denied." if code else ""
        return CommandResult(command=" ".join(command), exit_code=code, stderr=stderr)


RECOVERY_COMMANDS = RecoveryCommands(
    stop_service=["stop-spooler"],
    clear_spool=["clear-spool"],
    start_service=["start-spooler"],
    restart_host=["restart-host"],
)


@pytest.fixture
def settings_provider(tmp_path: Path) -> SettingsProvider:
    """Settings provider backed by a temporary file."""
    return SettingsProvider(tmp_path / "runtime_settings.json")


@pytest.fixture
def fake_printer() -> FakePrinter:
    return FakePrinter()


@pytest.fixture
def fake_renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture
def fake_executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def dispatcher(settings_provider, fake_printer, fake_renderer) -> PrintDispatcher:
    """Dispatcher wired to fakes."""
    return PrintDispatcher(settings_provider, printer=fake_printer, renderer=fake_renderer)


@pytest.fixture
def spool_dir(tmp_path: Path) -> Path:
    path = tmp_path / "spool"
    path.mkdir()
    return path


@pytest.fixture
def monitor(settings_provider, spool_dir, fake_executor) -> SpoolMonitor:
    """Spool monitor wired to a fake executor."""
    return SpoolMonitor(
        settings_provider,
        spool_dir,
        executor=fake_executor,
        commands=RECOVERY_COMMANDS,
        interval_seconds=0.01,
        scanner=iter_spool_entries,
    )


@pytest.fixture
def services(tmp_path, settings_provider, dispatcher, monitor, fake_executor) -> BridgeServices:
    """Services for the HTTP layer, with the background monitor disabled."""
    config = BridgeConfig(
        upload_dir=tmp_path / "uploads",
        settings_file=settings_provider.path,
        spool_dir=monitor.spool_dir,
        spool_monitor_enabled=False,
        admin_key=ADMIN_KEY,
    )
    return BridgeServices(
        config=config,
        settings=settings_provider,
        dispatcher=dispatcher,
        monitor=monitor,
        files=FileStore(config.upload_dir),
        executor=fake_executor,
    )


@pytest.fixture
def client(services) -> Generator[TestClient, None, None]:
    """Create a test client for an app using the fake services."""
    from printbridge.api.main import create_app

    with TestClient(create_app(services)) as test_client:
        yield test_client


@pytest.fixture
def admin_headers() -> dict:
    return {"X-Admin-Key": ADMIN_KEY}


@pytest.fixture
def enable_auto_clean(settings_provider):
    """Turn on auto-clean with a 20 minute timeout."""
    settings_provider.save_settings(
        RuntimeSettings(auto_clean_enabled=True, auto_clean_timeout_minutes=20)
    )


@pytest.fixture
def png_factory(tmp_path: Path):
    """Write solid PNGs of a given size into the temporary directory."""

    def _make(size: tuple[int, int], name: str = "image.png") -> Path:
        path = tmp_path / name
        Image.new("RGB", size, "red").save(path, format="PNG")
        return path

    return _make
