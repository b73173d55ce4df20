"""
Curses dashboard.

The price list is on the left and the details panel for the selected row is
on the right. A background thread runs the fetch loop while this module only
reads and mutates AppState under the app lock.
"""

import curses
import logging
import threading
from datetime import datetime

from coinpeek.rules.types import AlertCondition
from coinpeek.state.app_state import AppState
from .sparkline import candle_sparkline

logger = logging.getLogger(__name__)

KEY_ESCAPE = 27
KEY_ENTER_CODES = (curses.KEY_ENTER, 10, 13)
KEY_BACKSPACE_CODES = (curses.KEY_BACKSPACE, 127, 8)
KEY_DELETE_CODES = (curses.KEY_DC, ord("x"))

# Rows above the first price line: title and column headers
LIST_TOP = 2
ALERT_STEP = 0.05

HELP_LINES = [
    "CoinPeek Help",
    "",
    "Navigation:  Up/Down select | mouse click selects",
    "Search:      / search mode | Esc leave search",
    "Alerts:      a alert management",
    "Sorting:     s cycle mode | d toggle direction",
    "Filtering:   f cycle presets | c clear filters",
    "Data:        r refresh | o toggle offline | p pause/resume",
    "General:     ? help | q quit",
    "",
    "Alert view:  Up/Down choose | t toggle | x delete",
    "             + alert 5% above price | - alert 5% below price",
    "",
    "Press any key to close help",
]


class KeyHandler:
    """Maps key codes to AppState operations. Knows nothing about drawing."""

    def __init__(self, app):
        self.app = app
        self.alert_cursor = 0

    @property
    def state(self) -> AppState:
        return self.app.state

    def handle(self, key: int) -> bool:
        """
        Apply a key press.

        Returns:
            False when the dashboard should exit
        """
        state = self.state

        if state.show_help:
            state.toggle_help()
            return True

        if state.search_mode:
            self._handle_search_key(key)
            return True

        if state.show_alert_management:
            self._handle_alert_key(key)
            return True

        if key == ord("q"):
            return False
        elif key == curses.KEY_UP:
            state.select_previous()
        elif key == curses.KEY_DOWN:
            state.select_next()
        elif key == ord("s"):
            state.next_sort_mode()
        elif key == ord("d"):
            state.toggle_sort_direction()
        elif key == ord("f"):
            state.next_filter_preset()
        elif key == ord("c"):
            state.clear_all_filters()
        elif key == ord("o"):
            state.toggle_offline_mode()
        elif key == ord("p"):
            state.toggle_pause()
        elif key == ord("r"):
            self.app.request_refresh()
        elif key == ord("?"):
            state.toggle_help()
        elif key == ord("/"):
            state.enter_search_mode()
        elif key == ord("a"):
            self.alert_cursor = 0
            state.toggle_alert_management()
        return True

    def _handle_search_key(self, key: int) -> None:
        state = self.state
        if key == KEY_ESCAPE:
            state.exit_search_mode()
        elif key in KEY_ENTER_CODES:
            # Keep the filter, stop capturing keys
            state.search_mode = False
        elif key in KEY_BACKSPACE_CODES:
            state.update_search_query(state.search_query[:-1])
        elif 32 <= key < 127:
            state.update_search_query(state.search_query + chr(key))

    def _handle_alert_key(self, key: int) -> None:
        state = self.state
        alerts = state.alerts

        if key in (KEY_ESCAPE, ord("a"), ord("q")):
            state.toggle_alert_management()
        elif key == curses.KEY_UP and alerts:
            self.alert_cursor = (self.alert_cursor - 1) % len(alerts)
        elif key == curses.KEY_DOWN and alerts:
            self.alert_cursor = (self.alert_cursor + 1) % len(alerts)
        elif key == ord("t") and alerts:
            state.toggle_alert(alerts[self.alert_cursor].id)
        elif key in KEY_DELETE_CODES and alerts:
            state.delete_alert(alerts[self.alert_cursor].id)
            self.alert_cursor = min(self.alert_cursor, max(len(state.alerts) - 1, 0))
        elif key in (ord("+"), ord("-")):
            record = state.selected_record()
            if record is None:
                return
            if key == ord("+"):
                condition = AlertCondition.price_above(record.price * (1 + ALERT_STEP))
            else:
                condition = AlertCondition.price_below(record.price * (1 - ALERT_STEP))
            state.create_alert(record.symbol, condition)


class Dashboard:
    """Draws AppState with curses and feeds key presses to a KeyHandler."""

    def __init__(self, stdscr, app):
        self.stdscr = stdscr
        self.app = app
        self.keys = KeyHandler(app)
        self.list_offset = 0
        self.list_width = 0

        self.color_up = 0
        self.color_down = 0
        self.color_title = 0
        if curses.has_colors():
            curses.start_color()
            curses.use_default_colors()
            curses.init_pair(1, curses.COLOR_GREEN, -1)
            curses.init_pair(2, curses.COLOR_RED, -1)
            curses.init_pair(3, curses.COLOR_CYAN, -1)
            self.color_up = curses.color_pair(1)
            self.color_down = curses.color_pair(2)
            self.color_title = curses.color_pair(3) | curses.A_BOLD

    def run(self) -> None:
        curses.curs_set(0)
        curses.mousemask(curses.BUTTON1_CLICKED | curses.BUTTON1_PRESSED)
        self.stdscr.timeout(100)
        self.stdscr.keypad(True)

        while True:
            with self.app.lock:
                self.draw()

            key = self.stdscr.getch()
            if key == -1:
                continue
            if key == curses.KEY_RESIZE:
                continue

            with self.app.lock:
                if key == curses.KEY_MOUSE:
                    self._handle_mouse()
                elif not self.keys.handle(key):
                    break

    def _handle_mouse(self) -> None:
        try:
            _, x, y, _, _ = curses.getmouse()
        except curses.error:
            return
        state = self.app.state
        if state.show_help or state.show_alert_management:
            return
        if x >= self.list_width or y < LIST_TOP:
            return
        state.select_index(self.list_offset + y - LIST_TOP)

    def _put(self, y: int, x: int, text: str, attr: int = 0) -> None:
        height, width = self.stdscr.getmaxyx()
        if y < 0 or y >= height or x >= width:
            return
        try:
            self.stdscr.addnstr(y, x, text, width - x, attr)
        except curses.error:
            # Writing the bottom-right cell moves the cursor off screen
            pass

    def draw(self) -> None:
        state = self.app.state
        self.stdscr.erase()
        height, width = self.stdscr.getmaxyx()
        self.list_width = max(width * 3 // 5, 40)

        self._draw_title(width)
        self._draw_list(height)
        if width > self.list_width + 20:
            self._draw_details(self.list_width + 2, width - self.list_width - 2)
        self._draw_footer(height)

        if state.show_help:
            self._draw_overlay(HELP_LINES, height, width)
        elif state.show_alert_management:
            self._draw_overlay(self._alert_lines(), height, width)

        self.stdscr.refresh()

    def _draw_title(self, width: int) -> None:
        state = self.app.state
        visible, total = state.visible_count()
        parts = [
            "CoinPeek",
            state.offline_indicator(),
            state.sort_display(),
            state.filter_status(),
            f"{visible}/{total} coins",
        ]
        if state.paused:
            parts.append("PAUSED")
        if state.enabled_alert_count():
            parts.append(f"{state.enabled_alert_count()} alerts")
        summary = state.error_summary()
        if summary:
            parts.insert(1, summary)
        self._put(0, 0, " | ".join(parts).ljust(width), self.color_title)

        header = f"{'Symbol':<10} {'Price':>14} {'24h':>8} {'Volume':>16}"
        if state.search_mode or state.search_query:
            header = f"Search: \"{state.search_query}\"" + (
                "_" if state.search_mode else ""
            )
        self._put(1, 0, header, curses.A_UNDERLINE)

    def _draw_list(self, height: int) -> None:
        state = self.app.state
        rows = max(height - LIST_TOP - 1, 1)

        # Keep the selection on screen
        if state.selected_index < self.list_offset:
            self.list_offset = state.selected_index
        elif state.selected_index >= self.list_offset + rows:
            self.list_offset = state.selected_index - rows + 1
        self.list_offset = max(0, min(self.list_offset, max(len(state.visible_records) - rows, 0)))

        if not state.visible_records:
            message = "Loading prices..." if not state.all_records else "No coins match"
            self._put(LIST_TOP, 0, message)
            return

        shown = state.visible_records[self.list_offset:self.list_offset + rows]
        for i, record in enumerate(shown):
            index = self.list_offset + i
            change = record.price_change_percent
            attr = self.color_up if change >= 0 else self.color_down
            if index == state.selected_index:
                attr |= curses.A_REVERSE
            line = (
                f"{record.symbol:<10} {record.price:>14,.4f} "
                f"{change:>+7.2f}% {record.volume:>16,.0f}"
            )
            self._put(LIST_TOP + i, 0, line[: self.list_width].ljust(self.list_width), attr)

    def _draw_details(self, x: int, width: int) -> None:
        state = self.app.state
        record = state.selected_record()
        if record is None:
            return

        lines = [
            (record.symbol, curses.A_BOLD),
            (f"Price:      ${record.price:,.4f}", 0),
            (f"24h change: {record.price_change_percent:+.2f}%", 0),
            (f"24h high:   ${record.high_24h:,.4f}", 0),
            (f"24h low:    ${record.low_24h:,.4f}", 0),
            (f"Prev close: ${record.prev_close_price:,.4f}", 0),
            (f"Volume:     {record.volume:,.0f}", 0),
            ("", 0),
            (f"{self.app.config.chart.interval} chart", curses.A_UNDERLINE),
        ]
        if state.candle_symbol == record.symbol and state.candles:
            closes = [c.close for c in state.candles]
            lines.append((candle_sparkline(state.candles, width), self.color_title))
            lines.append((f"low {min(closes):,.4f}  high {max(closes):,.4f}", 0))
        else:
            lines.append(("Loading chart...", 0))

        for i, (text, attr) in enumerate(lines):
            self._put(LIST_TOP + i, x, text[:width], attr)

        recent = state.recent_alerts()
        if recent:
            row = LIST_TOP + len(lines) + 1
            self._put(row, x, "Recent alerts", curses.A_UNDERLINE)
            for i, (message, at) in enumerate(reversed(recent[-5:])):
                self._put(row + 1 + i, x, f"{at:%H:%M} {message}"[:width])

    def _draw_footer(self, height: int) -> None:
        state = self.app.state
        if state.search_mode:
            text = "Type to search | Enter keep | Esc clear"
        elif state.show_alert_management:
            text = "Up/Down choose | t toggle | x delete | +/- new alert | Esc close"
        else:
            text = "q quit | s sort | d direction | f filter | / search | a alerts | ? help"
        if state.is_data_stale() and state.all_records:
            text = f"data is stale ({state.data_age_string()}) | " + text
        self._put(height - 1, 0, text, curses.A_DIM)

    def _alert_lines(self) -> list[str]:
        state = self.app.state
        alerts = state.alerts
        lines = [
            "Price Alerts",
            "",
            f"Active: {state.enabled_alert_count()} | Total: {len(alerts)} "
            f"| Recent: {len(state.recent_alerts())}",
            "",
        ]
        if not alerts:
            lines.append("No alerts configured")
            lines.append("Select a coin and press + or - to create one")
        for i, alert in enumerate(alerts):
            marker = ">" if i == self.keys.alert_cursor else " "
            status = "on " if alert.enabled else "off"
            lines.append(
                f"{marker} #{alert.id} [{status}] {alert.symbol} "
                f"{alert.condition.describe()} ({alert.trigger_count} triggers)"
            )
        return lines

    def _draw_overlay(self, lines: list[str], height: int, width: int) -> None:
        box_width = min(max(len(line) for line in lines) + 4, width - 2)
        box_height = min(len(lines) + 2, height - 2)
        top = max((height - box_height) // 2, 0)
        left = max((width - box_width) // 2, 0)

        for row in range(box_height):
            self._put(top + row, left, " " * box_width, curses.A_REVERSE)
        for i, line in enumerate(lines[: box_height - 2]):
            attr = curses.A_REVERSE | (curses.A_BOLD if i == 0 else 0)
            self._put(top + 1 + i, left + 2, line[: box_width - 4], attr)


def run_terminal(app) -> None:
    """Run the curses dashboard until the user quits."""
    app.seed_alerts()
    app.warm_start()

    stop_event = threading.Event()
    poller = threading.Thread(
        target=app.run_poller, args=(stop_event,), name="coinpeek-poller", daemon=True
    )
    poller.start()
    logger.info(f"Terminal dashboard started at {datetime.now():%H:%M:%S}")

    def _main(stdscr):
        curses.set_escdelay(25)
        Dashboard(stdscr, app).run()

    try:
        curses.wrapper(_main)
    finally:
        stop_event.set()
        poller.join(timeout=5)
