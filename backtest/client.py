"""
Backtest Service Client
Submit multi-year backtests and poll for results, simulate a single trade,
and check which symbols the service has history for.
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Sequence
from urllib.parse import quote

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from shared import constants as C
from shared.exceptions import (
    BacktestAuthError, BacktestError, BacktestServiceError, BacktestTransportError,
)
from shared.token_cache import AccessTokenCache
from backtest.models import (
    BacktestConfig, BacktestLeg, BacktestManagement, BacktestRun, RunStatus,
    SimulatedTrade, SymbolAvailability,
)
from backtest.parser import parse_backtest_response, parse_simulated_trade
from backtest.translator import build_backtest_request, management_request

logger = logging.getLogger(__name__)

DONE_STATUSES = ('completed', 'complete', 'done')
FAILED_STATUSES = ('failed', 'error')
STILL_RUNNING_MESSAGE = "The backtest is still running. Try again later."
_DETAILS_LIMIT = 500


class BacktestClient:
    """HTTP client for the backtest service.

    Polling is synchronous: ``run_backtest`` blocks until the job reaches a
    terminal status, the attempt budget runs out, or ``stop_event`` is set.
    """

    def __init__(
        self,
        token_cache: AccessTokenCache,
        base_url: str = C.BACKTESTER_BASE_URL,
        poll_interval: float = C.BACKTEST_POLL_INTERVAL_SECONDS,
        max_poll_attempts: int = C.BACKTEST_MAX_POLL_ATTEMPTS,
        timeout: float = C.BACKTEST_REQUEST_TIMEOUT,
        user_agent: str = C.BACKTEST_USER_AGENT,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.base_url = base_url.rstrip('/')
        self.poll_interval = poll_interval
        self.max_poll_attempts = max_poll_attempts
        self.timeout = timeout
        self._tokens = token_cache
        self._sleep = sleep

        self.session = requests.Session()
        self.session.headers.update({
            "Accept": "application/json",
            "Content-Type": "application/json",
            "User-Agent": user_agent,
        })
        # Connection failures are retried; any HTTP status, 429/5xx included,
        # comes back after one round-trip so callers can handle it.
        retry = Retry(
            total=3, connect=3, read=0, status=0, backoff_factor=0.5,
            respect_retry_after_header=False, raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry)
        self.session.mount("https://", adapter)
        self.session.mount("http://", adapter)

        self._poll_lock = threading.Lock()
        self._active_polls: set = set()
        logger.info(f"BacktestClient initialized ({self.base_url})")

    @classmethod
    def from_config(cls, config: Dict, token_cache: AccessTokenCache, **kwargs) -> "BacktestClient":
        bt = config.get('backtest', {}) or {}
        return cls(
            token_cache,
            base_url=bt.get('base_url', C.BACKTESTER_BASE_URL),
            poll_interval=bt.get('poll_interval_seconds', C.BACKTEST_POLL_INTERVAL_SECONDS),
            max_poll_attempts=bt.get('max_poll_attempts', C.BACKTEST_MAX_POLL_ATTEMPTS),
            timeout=bt.get('request_timeout', C.BACKTEST_REQUEST_TIMEOUT),
            user_agent=bt.get('user_agent', C.BACKTEST_USER_AGENT),
            **kwargs,
        )

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    def _auth_header(self) -> Dict[str, str]:
        token = self._tokens.get()
        if not token:
            raise BacktestAuthError("No access token available for the backtest service")
        return {"Authorization": f"Bearer {token}"}

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.request(
                method, url, headers=self._auth_header(), timeout=self.timeout, **kwargs,
            )
        except requests.exceptions.RequestException as e:
            raise BacktestTransportError(f"{method} {path} failed", details=str(e)) from e
        if resp.status_code == 401:
            self._tokens.invalidate()
        return resp

    @staticmethod
    def _json(resp: requests.Response, what: str) -> Dict[str, Any]:
        try:
            data = resp.json()
        except ValueError as e:
            raise BacktestServiceError(
                f"Malformed {what} response",
                details=resp.text[:_DETAILS_LIMIT],
                status_code=resp.status_code,
            ) from e
        if not isinstance(data, dict):
            raise BacktestServiceError(
                f"Malformed {what} response",
                details=str(data)[:_DETAILS_LIMIT],
                status_code=resp.status_code,
            )
        return data

    # ------------------------------------------------------------------
    # Full backtest
    # ------------------------------------------------------------------

    def run_backtest(
        self,
        config: BacktestConfig,
        stop_event: Optional[threading.Event] = None,
    ) -> BacktestRun:
        """Submit ``config`` and wait for the result.

        Raises:
            BacktestServiceError: non-2xx submit, malformed body, or no job id.
            BacktestTransportError: network failure.
            BacktestAuthError: no token.
        """
        body = build_backtest_request(config)
        resp = self._request('POST', '/backtests', json=body)
        if not resp.ok:
            logger.error(f"Backtest create failed: {resp.status_code} {resp.text[:_DETAILS_LIMIT]}")
            raise BacktestServiceError(
                "Failed to create backtest",
                details=resp.text[:_DETAILS_LIMIT],
                status_code=resp.status_code,
            )

        data = self._json(resp, "create")
        backtest_id = data.get('id') or data.get('backtest-id')
        if not backtest_id:
            if data.get('trades') or data.get('results') or data.get('summary'):
                logger.info(f"Backtest for {config.symbol} returned results synchronously")
                return BacktestRun(
                    status=RunStatus.COMPLETED,
                    result=parse_backtest_response(data, config),
                    message="Backtest completed",
                )
            raise BacktestServiceError(
                "No backtest ID returned",
                details=str(data)[:_DETAILS_LIMIT],
                status_code=resp.status_code,
            )

        logger.info(f"Backtest {backtest_id} submitted for {config.symbol} ({config.strategy_type})")
        return self.poll_backtest(str(backtest_id), config, stop_event)

    def poll_backtest(
        self,
        backtest_id: str,
        config: BacktestConfig,
        stop_event: Optional[threading.Event] = None,
    ) -> BacktestRun:
        """Poll one job until it is terminal, out of attempts, or cancelled.

        Only one poll loop per job id may run at a time.
        """
        with self._poll_lock:
            if backtest_id in self._active_polls:
                raise BacktestError(f"Backtest {backtest_id} is already being polled")
            self._active_polls.add(backtest_id)
        try:
            return self._poll_loop(backtest_id, config, stop_event)
        finally:
            with self._poll_lock:
                self._active_polls.discard(backtest_id)

    def _poll_loop(
        self,
        backtest_id: str,
        config: BacktestConfig,
        stop_event: Optional[threading.Event],
    ) -> BacktestRun:
        def cancelled() -> Optional[BacktestRun]:
            if stop_event is not None and stop_event.is_set():
                logger.info(f"Polling of backtest {backtest_id} cancelled")
                return BacktestRun(
                    status=RunStatus.CANCELLED,
                    backtest_id=backtest_id,
                    message="Polling was cancelled; the backtest may still be running.",
                )
            return None

        for attempt in range(1, self.max_poll_attempts + 1):
            stop = cancelled()
            if stop:
                return stop
            self._sleep(self.poll_interval)
            stop = cancelled()
            if stop:
                return stop

            resp = self._request('GET', f'/backtests/{backtest_id}')
            if not resp.ok:
                logger.warning(f"Backtest {backtest_id} poll {attempt} failed: {resp.status_code}")
                continue

            data = self._json(resp, "poll")
            status = str(data.get('status') or '').lower()
            if status in DONE_STATUSES:
                logger.info(f"Backtest {backtest_id} completed after {attempt} polls")
                return BacktestRun(
                    status=RunStatus.COMPLETED,
                    backtest_id=backtest_id,
                    result=parse_backtest_response(data, config),
                    message="Backtest completed",
                )
            if status in FAILED_STATUSES:
                reason = data.get('error') or data.get('message') or 'Unknown error'
                logger.warning(f"Backtest {backtest_id} failed: {reason}")
                return BacktestRun(
                    status=RunStatus.FAILED,
                    backtest_id=backtest_id,
                    message=f"Backtest failed: {reason}",
                )
            logger.debug(f"Backtest {backtest_id} status '{status}' (poll {attempt})")

        logger.warning(f"Backtest {backtest_id} still running after {self.max_poll_attempts} polls")
        return BacktestRun(
            status=RunStatus.STILL_RUNNING,
            backtest_id=backtest_id,
            message=STILL_RUNNING_MESSAGE,
        )

    # ------------------------------------------------------------------
    # Single trade
    # ------------------------------------------------------------------

    def simulate_trade(
        self,
        symbol: str,
        strategy_type: str,
        legs: Sequence[BacktestLeg],
        entry_date: str,
        dte: int = C.DEFAULT_SIMULATION_DTE,
        management: Optional[BacktestManagement] = None,
    ) -> SimulatedTrade:
        """Simulate one entry on ``entry_date``.  One request, no polling."""
        if not legs:
            raise ValueError("simulate_trade needs at least one leg")
        profit_target, stop_loss, exit_dte = C.CREDIT_MANAGEMENT_DEFAULTS
        management = management or BacktestManagement(profit_target, stop_loss, exit_dte)
        body = {
            'symbol': symbol.upper(),
            'strategy-type': strategy_type or 'custom',
            'legs': [
                {'side': leg.side.value, 'option-type': leg.option_type.value, 'delta': leg.delta}
                for leg in legs
            ],
            'target-dte': dte or C.DEFAULT_SIMULATION_DTE,
            'entry-date': entry_date,
            'management': management_request(management),
        }
        resp = self._request('POST', '/backtests/simulate', json=body)
        if not resp.ok:
            logger.error(f"Simulation failed: {resp.status_code} {resp.text[:_DETAILS_LIMIT]}")
            raise BacktestServiceError(
                "Simulation failed",
                details=resp.text[:_DETAILS_LIMIT],
                status_code=resp.status_code,
            )
        return parse_simulated_trade(self._json(resp, "simulate"), entry_date)

    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------

    def check_availability(self, symbol: str, today: Optional[str] = None) -> SymbolAvailability:
        """Data range and strategy identifiers the service supports for ``symbol``."""
        symbol = symbol.upper()
        resp = self._request('GET', f'/symbols/{quote(symbol, safe="")}')
        if resp.status_code == 404:
            return SymbolAvailability(
                symbol=symbol,
                available=False,
                message=f"{symbol} is not available for backtesting",
            )
        if not resp.ok:
            raise BacktestServiceError(
                "Backtester API error",
                details=resp.text[:_DETAILS_LIMIT],
                status_code=resp.status_code,
            )

        data = self._json(resp, "availability")
        strategies: List[str] = (
            data.get('available-strategies') or data.get('strategies')
            or list(C.DEFAULT_BACKTEST_STRATEGIES)
        )
        return SymbolAvailability(
            symbol=symbol,
            available=True,
            start_date=data.get('start-date') or data.get('earliest-date') or C.DEFAULT_HISTORY_START,
            end_date=data.get('end-date') or data.get('latest-date') or today or time.strftime('%Y-%m-%d'),
            strategies=list(strategies),
        )
