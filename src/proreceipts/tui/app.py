from __future__ import annotations

from typing import TYPE_CHECKING

from textual.app import App
from textual.binding import Binding

if TYPE_CHECKING:
    from proreceipts.config import Settings
    from proreceipts.services.receipts import ReceiptService
    from proreceipts.services.templates import Templates


class ReceiptsApp(App):
    """PRO receipts TUI application."""

    CSS_PATH = "app.tcss"
    TITLE = "PRO Receipts"
    ENABLE_COMMAND_PALETTE = False

    BINDINGS = [
        Binding("ctrl+q", "quit", "Quit", priority=True),
    ]

    def __init__(
        self,
        service: ReceiptService | None = None,
        pro_number: str = "",
        settings: Settings | None = None,
        templates: Templates | None = None,
    ) -> None:
        super().__init__()
        self.service = service
        self.pro_number = pro_number.strip()
        self.settings = settings
        self.templates = templates

    def on_mount(self) -> None:
        from proreceipts.config import build_service, load_settings
        from proreceipts.services.templates import load_templates
        from proreceipts.tui.screens.receipts import ReceiptsScreen

        if self.settings is None:
            self.settings = load_settings()
        if self.service is None:
            self.service = build_service(self.settings)
        if self.templates is None:
            self.templates = load_templates()
        self.push_screen(ReceiptsScreen(pro_number=self.pro_number))
