"""
Dashboard — Lightweight web server showing the latest scan.
Uses aiohttp.web to serve a JSON API + a server-rendered HTML table.
"""

from __future__ import annotations
import html
import json
import math
import os
from datetime import datetime
from typing import Any, Optional, TYPE_CHECKING
from aiohttp import web
import logging

from exchange.models import EnrichedRow

if TYPE_CHECKING:
    from main import Scanner

logger = logging.getLogger(__name__)

DASH = "—"


# ─── Formatting ───

def fmt_usd(value: float) -> str:
    """$1,234.57 for prices >= 1, 4-6 decimals below."""
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        return DASH
    if abs(value) >= 1:
        return f"${value:,.2f}"
    text = f"{value:.6f}".rstrip("0")
    decimals = len(text.split(".")[1]) if "." in text else 0
    return f"${value:.{max(4, decimals)}f}"


def fmt_compact(value: float) -> str:
    """1.23K / 4.5M / 6.78B / 1.2T."""
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        return DASH
    for threshold, suffix in ((1e12, "T"), (1e9, "B"), (1e6, "M"), (1e3, "K")):
        if abs(value) >= threshold:
            return f"{value / threshold:.2f}".rstrip("0").rstrip(".") + suffix
    return f"{value:.2f}".rstrip("0").rstrip(".")


def fmt_pct(value: float) -> str:
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        return DASH
    return f"{value:.2f} %"


def _clean(obj: Any) -> Any:
    """JSON-safe copy: non-finite floats become null, datetimes ISO strings."""
    if isinstance(obj, float):
        return obj if math.isfinite(obj) else None
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, dict):
        return {k: _clean(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_clean(v) for v in obj]
    return obj


def json_response(data, status=200):
    return web.Response(
        text=json.dumps(_clean(data)),
        content_type="application/json",
        status=status,
    )


def row_to_dict(rank: int, row: EnrichedRow) -> dict:
    p = row.product
    return {
        "rank": rank,
        "product_id": p.id,
        "asset": p.pair,
        "base": p.base_currency,
        "last": row.last,
        "market_cap_usd": row.market_cap_usd,
        "vol_usd": row.vol_usd,
        "pct": row.pct,
        "pct24": row.pct24,
        "conf": row.conf,
    }


class Dashboard:
    """Web dashboard server."""

    def __init__(self, scanner: "Scanner", host: str = "0.0.0.0", port: int = 8080):
        self.scanner = scanner
        self.host = host
        self.port = port
        self.app = web.Application()
        self._runner: Optional[web.AppRunner] = None
        self._setup_routes()

    def _setup_routes(self):
        self.app.router.add_get("/", self._serve_html)
        self.app.router.add_get("/api/dashboard", self._api_dashboard)
        self.app.router.add_post("/api/refresh", self._api_refresh)
        self.app.router.add_get("/api/logs", self._api_logs)

    async def start(self):
        """Start the dashboard web server."""
        self._runner = web.AppRunner(self.app, access_log=None)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info(f"[DASHBOARD] Running on http://{self.host}:{self.port}")

    async def stop(self):
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None

    # ─── State ───

    def snapshot(self) -> dict:
        s = self.scanner
        result = s.result
        return {
            "window_hours": s.window_hours,
            "min_vol_usd": s.min_vol_usd,
            "min_pct": s.min_pct,
            "in_flight": s.in_flight,
            "progress": {"pct": s.progress_pct, "text": s.status_text},
            "counters": s.counters.as_dict(),
            "error": s.last_error,
            "last_update": result.ts if result else None,
            "next_run_in_sec": s.seconds_until_next_run(),
            "rows": [row_to_dict(i + 1, r) for i, r in enumerate(result.rows)] if result else [],
        }

    # ─── Routes ───

    async def _serve_html(self, request: web.Request) -> web.Response:
        return web.Response(text=self.render_html(), content_type="text/html")

    async def _api_dashboard(self, request: web.Request) -> web.Response:
        try:
            return json_response(self.snapshot())
        except Exception as e:
            logger.error(f"[DASHBOARD] API error: {e}", exc_info=True)
            return json_response({"error": str(e)}, status=500)

    async def _api_refresh(self, request: web.Request) -> web.Response:
        """Manual refresh, optionally switching window/min volume."""
        try:
            window = request.query.get("window")
            min_vol = request.query.get("min_vol")
            accepted = self.scanner.request_refresh(
                window_hours=int(window) if window else None,
                min_vol_usd=float(min_vol) if min_vol else None,
            )
        except ValueError as e:
            return json_response({"error": str(e)}, status=400)

        if not accepted:
            return json_response({"accepted": False, "reason": "run in flight"}, status=409)
        return json_response({"accepted": True}, status=202)

    async def _api_logs(self, request: web.Request) -> web.Response:
        """Return last N lines from the log file."""
        try:
            n = int(request.query.get("n", 50))
            log_path = self.scanner.config.log_path
            lines = []
            if os.path.exists(log_path):
                with open(log_path, "r") as f:
                    all_lines = f.readlines()
                    lines = [l.strip() for l in all_lines[-n:]]
            return json_response({"lines": lines, "total": len(lines)})
        except Exception as e:
            return json_response({"error": str(e)}, status=500)

    # ─── HTML ───

    def render_html(self) -> str:
        s = self.scanner
        esc = html.escape
        result = s.result

        if s.last_error:
            body = (
                f'<tr><td colspan="7" class="err">Error: {esc(s.last_error)}. '
                f"Retrying in {s.seconds_until_next_run() or 0}s...</td></tr>"
            )
        elif result is None:
            body = '<tr><td colspan="7" class="muted">Loading...</td></tr>'
        elif not result.rows:
            body = (
                f'<tr><td colspan="7" class="muted">No data (price &gt; $1, '
                f"vol24h &ge; {s.min_vol_usd:,.0f} $, rise &gt; {s.min_pct:g}% over "
                f"{s.window_hours}h).</td></tr>"
            )
        else:
            cells = []
            for i, r in enumerate(result.rows, start=1):
                cls = "pos" if r.pct >= 0 else "neg"
                cells.append(
                    f"<tr><td>{i}</td>"
                    f"<td>{esc(r.product.base_currency)} <span class=\"sym\">({esc(r.product.pair)})</span></td>"
                    f"<td class=\"num\">{fmt_usd(r.last)}</td>"
                    f"<td class=\"num\">{fmt_compact(r.market_cap_usd)}</td>"
                    f"<td class=\"num\">{fmt_compact(r.vol_usd)}</td>"
                    f"<td class=\"num {cls}\">{fmt_pct(r.pct)}</td>"
                    f"<td class=\"num\"><strong>{r.conf} %</strong></td></tr>"
                )
            body = "\n".join(cells)

        updated = result.ts.strftime("%Y-%m-%d %H:%M:%S UTC") if result else DASH
        c = s.counters
        return f"""<!doctype html>
<html><head><meta charset="utf-8"><title>Market Movers</title>
<style>
body{{font-family:sans-serif;background:#0f1117;color:#e6e8ef}}
td,th{{padding:6px 10px}} .num{{text-align:right}} .pos{{color:#4ade80}} .neg{{color:#f87171}}
.sym,.muted{{color:#9aa0b4}} .err{{color:#ffb4b4}}
</style></head><body>
<h1>Top movers — {s.window_hours}h</h1>
<p>Status: {esc(s.status_text)} ({s.progress_pct}%) | Last update: {updated}</p>
<p>Products: {c.products} | Stats ok: {c.stats_ok} | Passed: {c.passed} | Shown: {c.shown}</p>
<table><thead><tr><th>#</th><th>Asset</th><th>Price</th><th>Market cap</th>
<th>Vol 24h</th><th>%</th><th>Confidence</th></tr></thead>
<tbody>
{body}
</tbody></table></body></html>"""
