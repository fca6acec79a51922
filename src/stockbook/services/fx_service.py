from __future__ import annotations

import logging
from datetime import date
from typing import Any, Optional

import requests

from stockbook.config import FX_SOURCES
from stockbook.domain.errors import FxUnavailableError

log = logging.getLogger("stockbook.fx")


def parse_usd_ars(payload: Any) -> float:
    """Pull a positive USD->ARS rate out of a currency-api body.

    Expected shape is ``{"date": ..., "usd": {"ars": 1450.12, ...}}``; any other
    nesting that carries an ``ars`` key is accepted too. Anything unusable is
    reported as FxUnavailableError.
    """
    if not isinstance(payload, dict):
        raise FxUnavailableError(f"Unexpected FX payload: {type(payload).__name__}")

    candidates = [payload.get("usd")] + [v for k, v in payload.items() if k != "usd"]
    for block in candidates:
        if isinstance(block, dict) and block.get("ars") is not None:
            raw = block["ars"]
            break
    else:
        raise FxUnavailableError("FX payload has no ARS rate")

    try:
        rate = float(raw)
    except (TypeError, ValueError):
        raise FxUnavailableError(f"FX rate is not a number: {raw!r}") from None
    if not rate > 0:
        raise FxUnavailableError(f"FX rate must be > 0, got {rate}")
    return rate


class FxService:
    """USD->ARS rates: local cache first, then the public currency APIs."""

    def __init__(self, repo, sources: tuple[str, ...] = FX_SOURCES, timeout: float = 10):
        self.repo = repo
        self.sources = tuple(sources)
        self.timeout = timeout

    def _fetch_json(self, url: str) -> Any:
        resp = requests.get(url, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def _remote_rate(self, d_iso: str) -> float:
        problems = []
        for url in self.sources:
            try:
                rate = parse_usd_ars(self._fetch_json(url))
            except (requests.RequestException, ValueError, FxUnavailableError) as e:
                problems.append(f"{url}: {e}")
                log.warning("fx_source_failed date=%s url=%s error=%s", d_iso, url, e)
                continue
            log.info("fx_fetched date=%s rate=%.4f url=%s", d_iso, rate, url)
            return rate
        raise FxUnavailableError("; ".join(problems) or "no FX sources configured")

    def get_rate_for_date(self, d: date) -> float:
        """Cached rate for ``d``; otherwise fetch and cache it.

        When every source fails the latest cached rate stands in for ``d``.
        Raises FxUnavailableError when there is nothing at all to use.
        """
        d_iso = d.isoformat()
        cached = self.repo.get_fx_rate(d_iso)
        if cached is not None:
            return float(cached)

        try:
            rate = self._remote_rate(d_iso)
        except FxUnavailableError as e:
            latest = self.repo.get_latest_fx_rate()
            if latest is None:
                raise FxUnavailableError(f"No USD/ARS rate for {d_iso} and nothing cached ({e})") from None
            rate = float(latest)
            log.warning("fx_fallback_cached date=%s rate=%.4f", d_iso, rate)

        self.repo.set_fx_rate(d_iso, rate)
        return rate

    def rate_or_none(self, d: date) -> Optional[float]:
        """Rate for ``d``, or None (logged) when no rate can be had."""
        try:
            return self.get_rate_for_date(d)
        except FxUnavailableError as e:
            log.warning("fx_rate_missing date=%s error=%s", d.isoformat(), e)
            return None
