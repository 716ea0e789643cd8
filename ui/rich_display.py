from __future__ import annotations

import asyncio
import time
from typing import Optional

from rich.console import Group
from rich.live import Live
from rich.panel import Panel
from rich.text import Text

from config import settings
from resilience import ResilientLLM


class RichDisplayManager:
    """Handles Rich-based display updates."""

    def __init__(
        self, llm: Optional[ResilientLLM] = None, enabled: bool = settings.ENABLE_RICH_PROGRESS
    ) -> None:
        self.llm = llm
        self.live: Optional[Live] = None
        self.group: Optional[Group] = None
        self.status_text_book_title: Text = Text("Book: N/A")
        self.status_text_current_unit: Text = Text("Current Unit: N/A")
        self.status_text_current_step: Text = Text("Current Step: Initializing...")
        self.status_text_calls: Text = Text("Generation Calls: 0 (degraded: 0)")
        self.status_text_elapsed_time: Text = Text("Elapsed Time: 0s")
        self.status_text_requests_per_minute: Text = Text("Requests/Min: 0.0")
        self.run_start_time: float = 0.0
        self._stop_event: asyncio.Event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

        if enabled:
            self.group = Group(
                self.status_text_book_title,
                self.status_text_current_unit,
                self.status_text_current_step,
                self.status_text_calls,
                self.status_text_requests_per_minute,
                self.status_text_elapsed_time,
            )
            self.live = Live(
                Panel(
                    self.group,
                    title="Tome Progress",
                    border_style="blue",
                    expand=True,
                ),
                refresh_per_second=4,
                transient=False,
                redirect_stdout=False,
                redirect_stderr=False,
            )

    def start(self) -> None:
        if self.live:
            self.run_start_time = time.time()
            self.live.start()
            self._stop_event.clear()
            self._task = asyncio.create_task(self._auto_refresh())

    async def stop(self) -> None:
        self._stop_event.set()
        if self._task:
            await self._task
            self._task = None
        if self.live and self.live.is_started:
            self.live.stop()

    async def _auto_refresh(self) -> None:
        while not self._stop_event.is_set():
            self.update()
            await asyncio.sleep(1)

    def update(
        self,
        book_title: Optional[str] = None,
        unit_num: Optional[int] = None,
        step: Optional[str] = None,
    ) -> None:
        if not (self.live and self.group):
            return
        if book_title is not None:
            self.status_text_book_title.plain = f"Book: {book_title}"
        if unit_num is not None:
            self.status_text_current_unit.plain = f"Current Unit: {unit_num}"
        if step is not None:
            self.status_text_current_step.plain = f"Current Step: {step}"
        calls = self.llm.call_count if self.llm else 0
        degraded = self.llm.degraded_count if self.llm else 0
        self.status_text_calls.plain = f"Generation Calls: {calls:,} (degraded: {degraded})"
        elapsed_seconds = time.time() - self.run_start_time if self.run_start_time else 0.0
        requests_per_minute = (
            calls / (elapsed_seconds / 60) if elapsed_seconds > 0 else 0.0
        )
        self.status_text_requests_per_minute.plain = (
            f"Requests/Min: {requests_per_minute:.2f}"
        )
        self.status_text_elapsed_time.plain = (
            f"Elapsed Time: {time.strftime('%H:%M:%S', time.gmtime(elapsed_seconds))}"
        )
