"""
Browser dashboard.

FastAPI routes expose the same AppState operations as the terminal keys. The
page polls /api/state; a background thread keeps the data fresh.
"""

import json
import logging
import threading
from typing import Any

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse

from coinpeek.rules.types import AlertCondition, ConditionKind, PriceAlert
from coinpeek.state.app_state import AppState
from coinpeek.state.filters import FilterPreset
from .sparkline import candle_sparkline

logger = logging.getLogger(__name__)


def record_to_dict(record) -> dict[str, Any]:
    return {
        "symbol": record.symbol,
        "price": record.price,
        "price_change_percent": record.price_change_percent,
        "volume": record.volume,
        "high_24h": record.high_24h,
        "low_24h": record.low_24h,
        "prev_close_price": record.prev_close_price,
    }


def alert_to_dict(alert: PriceAlert) -> dict[str, Any]:
    return {
        "id": alert.id,
        "symbol": alert.symbol,
        "condition": alert.condition.kind.value,
        "threshold": alert.condition.threshold,
        "description": alert.condition.describe(),
        "enabled": alert.enabled,
        "created_at": alert.created_at.isoformat(),
        "last_triggered": alert.last_triggered.isoformat() if alert.last_triggered else None,
        "trigger_count": alert.trigger_count,
        "message": alert.custom_message,
    }


def state_to_dict(state: AppState) -> dict[str, Any]:
    """JSON view of everything the dashboard draws."""
    visible, total = state.visible_count()
    selected = state.selected_record()
    return {
        "records": [record_to_dict(r) for r in state.visible_records],
        "visible_count": visible,
        "total_count": total,
        "selected_index": state.selected_index,
        "selected_symbol": selected.symbol if selected else None,
        "sort": {
            "mode": state.sort_config.mode.value,
            "direction": state.sort_config.direction.value,
            "display": state.sort_display(),
        },
        "preset": state.active_preset.value,
        "filter_status": state.filter_status(),
        "search_query": state.search_query,
        "offline": state.data_status.offline,
        "consecutive_failures": state.data_status.consecutive_failures,
        "offline_indicator": state.offline_indicator(),
        "data_age": state.data_age_string(),
        "stale": state.is_data_stale(),
        "paused": state.paused,
        "enabled_alerts": state.enabled_alert_count(),
        "recent_alerts": [
            {"message": message, "triggered_at": at.isoformat()}
            for message, at in state.recent_alerts()
        ],
        "error_summary": state.error_summary(),
    }


async def _read_json(request: Request) -> dict[str, Any]:
    """Request body as a dict; an empty body is {}."""
    body = await request.body()
    if not body:
        return {}
    try:
        data = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Body must be JSON")
    if not isinstance(data, dict):
        raise HTTPException(status_code=400, detail="Body must be a JSON object")
    return data


def _parse_alert(data: dict[str, Any]) -> tuple[str, AlertCondition, Any]:
    symbol = data.get("symbol")
    if not isinstance(symbol, str) or not symbol.strip():
        raise HTTPException(status_code=400, detail="symbol is required")

    try:
        kind = ConditionKind(data.get("condition"))
    except ValueError:
        valid = [k.value for k in ConditionKind]
        raise HTTPException(status_code=400, detail=f"condition must be one of {valid}")

    threshold = data.get("threshold")
    if isinstance(threshold, bool) or not isinstance(threshold, (int, float)):
        raise HTTPException(status_code=400, detail="threshold must be a number")

    message = data.get("message")
    if message is not None and not isinstance(message, str):
        raise HTTPException(status_code=400, detail="message must be a string")

    return symbol.strip().upper(), AlertCondition(kind, float(threshold)), message


def create_app(host_app) -> FastAPI:
    """
    Build the FastAPI application around a CoinPeekApp.

    Args:
        host_app: CoinPeekApp owning the state, lock and fetcher

    Returns:
        FastAPI instance
    """
    api = FastAPI(title="CoinPeek")
    state: AppState = host_app.state
    lock = host_app.lock

    def snapshot() -> dict[str, Any]:
        with lock:
            return state_to_dict(state)

    @api.get("/", response_class=HTMLResponse)
    async def index():
        return INDEX_HTML

    @api.get("/api/state")
    async def get_state():
        return snapshot()

    @api.post("/api/select/{index}")
    async def select(index: int):
        with lock:
            if not state.select_index(index):
                raise HTTPException(status_code=404, detail=f"No row {index}")
        return snapshot()

    @api.post("/api/sort/next")
    async def next_sort():
        with lock:
            state.next_sort_mode()
        return snapshot()

    @api.post("/api/sort/direction")
    async def toggle_direction():
        with lock:
            state.toggle_sort_direction()
        return snapshot()

    @api.post("/api/filters/preset")
    async def set_preset(request: Request):
        """Set the preset named in the body, or cycle when no name is given."""
        data = await _read_json(request)
        name = data.get("preset")
        with lock:
            if name is None:
                state.next_filter_preset()
            else:
                try:
                    preset = FilterPreset(name)
                except ValueError:
                    valid = [p.value for p in FilterPreset]
                    raise HTTPException(
                        status_code=400, detail=f"preset must be one of {valid}"
                    )
                state.set_filter_preset(preset)
        return snapshot()

    @api.post("/api/filters/clear")
    async def clear_filters():
        with lock:
            state.clear_all_filters()
        return snapshot()

    @api.post("/api/search")
    async def search(request: Request):
        data = await _read_json(request)
        query = data.get("query", "")
        if not isinstance(query, str):
            raise HTTPException(status_code=400, detail="query must be a string")
        with lock:
            state.update_search_query(query)
        return snapshot()

    @api.post("/api/offline/toggle")
    async def toggle_offline():
        with lock:
            state.toggle_offline_mode()
        return snapshot()

    @api.post("/api/pause/toggle")
    async def toggle_pause():
        with lock:
            state.toggle_pause()
        return snapshot()

    # Plain def: the fetch blocks, so FastAPI runs it in its threadpool
    @api.post("/api/refresh")
    def refresh():
        host_app.refresh()
        return snapshot()

    @api.get("/api/alerts")
    async def list_alerts():
        with lock:
            return {
                "alerts": [alert_to_dict(a) for a in state.alerts],
                "enabled": state.enabled_alert_count(),
            }

    @api.post("/api/alerts", status_code=201)
    async def create_alert(request: Request):
        data = await _read_json(request)
        symbol, condition, message = _parse_alert(data)
        with lock:
            alert_id = state.create_alert(symbol, condition, message)
            return alert_to_dict(state.alert_engine.get(alert_id))

    @api.delete("/api/alerts/{alert_id}")
    async def delete_alert(alert_id: int):
        with lock:
            if not state.delete_alert(alert_id):
                raise HTTPException(status_code=404, detail=f"No alert {alert_id}")
        return {"deleted": alert_id}

    @api.post("/api/alerts/{alert_id}/toggle")
    async def toggle_alert(alert_id: int):
        with lock:
            if not state.toggle_alert(alert_id):
                raise HTTPException(status_code=404, detail=f"No alert {alert_id}")
            return alert_to_dict(state.alert_engine.get(alert_id))

    @api.get("/api/candles")
    async def get_candles():
        with lock:
            selected = state.selected_record()
            valid = selected is not None and state.candle_symbol == selected.symbol
            candles = list(state.candles) if valid else []
            return {
                "symbol": selected.symbol if selected else None,
                "interval": host_app.config.chart.interval,
                "candles": [
                    {
                        "open": c.open,
                        "high": c.high,
                        "low": c.low,
                        "close": c.close,
                        "volume": c.volume,
                        "timestamp": c.timestamp,
                    }
                    for c in candles
                ],
                "sparkline": candle_sparkline(candles),
            }

    return api


def serve(host_app) -> None:
    """Run the browser dashboard with a background poller until interrupted."""
    host_app.seed_alerts()
    host_app.warm_start()

    stop_event = threading.Event()
    poller = threading.Thread(
        target=host_app.run_poller,
        args=(stop_event,),
        name="coinpeek-poller",
        daemon=True,
    )
    poller.start()

    web = host_app.config.web
    logger.info(f"Serving dashboard on http://{web.host}:{web.port}")
    try:
        uvicorn.run(
            create_app(host_app),
            host=web.host,
            port=web.port,
            log_level=host_app.config.advanced.log_level.lower(),
        )
    finally:
        stop_event.set()
        poller.join(timeout=5)


INDEX_HTML = """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>CoinPeek</title>
<style>
  body { font-family: monospace; background: #111; color: #ddd; margin: 1em; }
  table { border-collapse: collapse; }
  td, th { padding: 2px 10px; text-align: right; }
  td:first-child, th:first-child { text-align: left; }
  tr.selected { background: #334; }
  tr { cursor: pointer; }
  .up { color: #2ecc71; } .down { color: #e74c3c; }
  #status { margin-bottom: 0.5em; }
  #details { margin-top: 1em; white-space: pre; }
  button { font-family: monospace; }
</style>
</head>
<body>
<div id="status"></div>
<div>
  <button onclick="post('/api/sort/next')">sort</button>
  <button onclick="post('/api/sort/direction')">direction</button>
  <button onclick="post('/api/filters/preset')">filter</button>
  <button onclick="post('/api/filters/clear')">clear</button>
  <button onclick="post('/api/offline/toggle')">offline</button>
  <button onclick="post('/api/pause/toggle')">pause</button>
  <button onclick="post('/api/refresh')">refresh</button>
  <input id="search" placeholder="search" oninput="post('/api/search', {query: this.value})">
</div>
<table>
  <thead><tr><th>Symbol</th><th>Price</th><th>24h</th><th>Volume</th></tr></thead>
  <tbody id="rows"></tbody>
</table>
<div id="details"></div>
<script>
async function post(path, body) {
  const options = {method: 'POST'};
  if (body !== undefined) {
    options.headers = {'Content-Type': 'application/json'};
    options.body = JSON.stringify(body);
  }
  const response = await fetch(path, options);
  if (response.ok) render(await response.json());
}

function render(state) {
  const parts = ['CoinPeek', state.offline_indicator, state.sort.display,
                 state.filter_status, state.visible_count + '/' + state.total_count + ' coins'];
  if (state.paused) parts.push('PAUSED');
  if (state.error_summary) parts.push(state.error_summary);
  document.getElementById('status').textContent = parts.join(' | ');

  const rows = document.getElementById('rows');
  rows.innerHTML = '';
  state.records.forEach((r, i) => {
    const tr = document.createElement('tr');
    if (i === state.selected_index) tr.className = 'selected';
    const cls = r.price_change_percent >= 0 ? 'up' : 'down';
    tr.innerHTML = '<td>' + r.symbol + '</td><td>' + r.price.toFixed(4) +
      '</td><td class="' + cls + '">' + r.price_change_percent.toFixed(2) + '%</td><td>' +
      Math.round(r.volume).toLocaleString() + '</td>';
    tr.onclick = () => post('/api/select/' + i);
    rows.appendChild(tr);
  });
}

async function renderCandles() {
  const response = await fetch('/api/candles');
  const data = await response.json();
  const details = document.getElementById('details');
  details.textContent = data.symbol ? data.symbol + ' ' + data.interval + '\\n' + data.sparkline : '';
}

async function poll() {
  const response = await fetch('/api/state');
  render(await response.json());
  await renderCandles();
}

poll();
setInterval(poll, 2000);
</script>
</body>
</html>
"""
