"""Tests for BacktestClient (HTTP mocked at the session level, plus a local server)."""
import json
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from unittest.mock import MagicMock, patch

import pytest
import requests

from backtest.client import STILL_RUNNING_MESSAGE, BacktestClient
from backtest.models import (
    BacktestConfig, BacktestLeg, BacktestManagement, RunStatus,
)
from shared.exceptions import (
    BacktestAuthError, BacktestError, BacktestServiceError, BacktestTransportError,
)
from shared.token_cache import AccessTokenCache
from strategies.base import OptionType, Side


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _resp(status_code=200, payload=None, text=''):
    resp = MagicMock()
    resp.status_code = status_code
    resp.ok = 200 <= status_code < 300
    resp.text = text
    if isinstance(payload, Exception):
        resp.json.side_effect = payload
    else:
        resp.json.return_value = payload if payload is not None else {}
    return resp


def _tokens(value='tok-123'):
    cache = AccessTokenCache()
    if value:
        cache.set(value)
    return cache


@pytest.fixture
def config():
    return BacktestConfig(
        symbol='SPY',
        strategy_type='iron_condor',
        legs=[
            BacktestLeg(Side.SELL, OptionType.PUT, 30),
            BacktestLeg(Side.BUY, OptionType.PUT, 15),
            BacktestLeg(Side.SELL, OptionType.CALL, 30),
            BacktestLeg(Side.BUY, OptionType.CALL, 15),
        ],
        dte=45,
        management=BacktestManagement(50, 200, 21),
        start_date='2021-10-19',
        end_date='2026-10-19',
    )


@pytest.fixture
def session():
    with patch('backtest.client.requests.Session') as session_cls:
        mock_session = MagicMock()
        mock_session.headers = {}
        session_cls.return_value = mock_session
        yield mock_session


@pytest.fixture
def client(session):
    return BacktestClient(
        _tokens(), base_url='https://bt.example.com/', max_poll_attempts=3,
        sleep=lambda s: None,
    )


TRADES = [
    {'exit-date': '2024-01-10', 'pnl': 120, 'exit-reason': 'profit_target'},
    {'exit-date': '2024-02-10', 'pnl': -60, 'exit-reason': 'stop_loss'},
]


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------

class TestRunBacktest:

    def test_submit_body_and_auth(self, client, session, config):
        session.request.side_effect = [
            _resp(200, {'id': 'bt-1'}),
            _resp(200, {'status': 'completed', 'trades': TRADES}),
        ]
        run = client.run_backtest(config)
        assert run.ok

        method, url = session.request.call_args_list[0][0]
        kwargs = session.request.call_args_list[0][1]
        assert (method, url) == ('POST', 'https://bt.example.com/backtests')
        assert kwargs['headers'] == {'Authorization': 'Bearer tok-123'}
        assert kwargs['json']['strategy-type'] == 'iron_condor'
        assert kwargs['json']['legs'][0] == {'side': 'sell', 'option-type': 'put', 'delta': 30}

    def test_synchronous_results(self, client, session, config):
        """A create response carrying trades but no id is already the result."""
        session.request.return_value = _resp(200, {'results': TRADES})
        run = client.run_backtest(config)
        assert run.status == RunStatus.COMPLETED
        assert run.backtest_id is None
        assert run.result.summary.total_trades == 2
        assert session.request.call_count == 1

    def test_polls_until_complete(self, client, session, config):
        session.request.side_effect = [
            _resp(200, {'backtest-id': 'bt-7'}),
            _resp(200, {'status': 'running'}),
            _resp(200, {'status': 'Completed', 'id': 'bt-7', 'trades': TRADES}),
        ]
        run = client.run_backtest(config)
        assert run.status == RunStatus.COMPLETED
        assert run.backtest_id == 'bt-7'
        assert run.result.id == 'bt-7'
        assert run.result.summary.total_pnl == 60.0
        assert session.request.call_args_list[2][0] == ('GET', 'https://bt.example.com/backtests/bt-7')

    def test_failed_job(self, client, session, config):
        session.request.side_effect = [
            _resp(200, {'id': 'bt-2'}),
            _resp(200, {'status': 'error', 'message': 'no data for symbol'}),
        ]
        run = client.run_backtest(config)
        assert run.status == RunStatus.FAILED
        assert run.message == 'Backtest failed: no data for symbol'
        assert run.result is None

    def test_still_running_after_budget(self, client, session, config):
        session.request.side_effect = [_resp(200, {'id': 'bt-3'})] + [
            _resp(200, {'status': 'running'}) for _ in range(3)
        ]
        run = client.run_backtest(config)
        assert run.status == RunStatus.STILL_RUNNING
        assert run.message == STILL_RUNNING_MESSAGE
        assert session.request.call_count == 4

    def test_non_ok_poll_counts_as_attempt(self, client, session, config):
        session.request.side_effect = [
            _resp(200, {'id': 'bt-4'}),
            _resp(503, text='busy'),
            _resp(200, {'status': 'done', 'trades': TRADES}),
        ]
        run = client.run_backtest(config)
        assert run.ok

    def test_submit_rejected(self, client, session, config):
        session.request.return_value = _resp(400, text='bad legs')
        with pytest.raises(BacktestServiceError) as exc_info:
            client.run_backtest(config)
        assert exc_info.value.status_code == 400
        assert exc_info.value.details == 'bad legs'
        assert 'Failed to create backtest' in str(exc_info.value)

    def test_no_id_and_no_results(self, client, session, config):
        session.request.return_value = _resp(200, {'status': 'queued'})
        with pytest.raises(BacktestServiceError, match="No backtest ID returned"):
            client.run_backtest(config)

    def test_malformed_json(self, client, session, config):
        session.request.return_value = _resp(200, ValueError('not json'), text='<html>')
        with pytest.raises(BacktestServiceError, match="Malformed create response"):
            client.run_backtest(config)

    def test_transport_error(self, client, session, config):
        session.request.side_effect = requests.exceptions.ConnectionError('refused')
        with pytest.raises(BacktestTransportError) as exc_info:
            client.run_backtest(config)
        assert 'refused' in exc_info.value.details

    def test_missing_token(self, session, config):
        client = BacktestClient(_tokens(None), sleep=lambda s: None)
        with pytest.raises(BacktestAuthError):
            client.run_backtest(config)
        session.request.assert_not_called()

    def test_unauthorized_invalidates_token(self, session, config):
        tokens = _tokens()
        client = BacktestClient(tokens, sleep=lambda s: None)
        session.request.return_value = _resp(401, text='expired')
        with pytest.raises(BacktestServiceError):
            client.run_backtest(config)
        assert tokens.get() is None


class TestPolling:

    def test_cancelled_before_first_poll(self, client, session, config):
        stop = threading.Event()
        stop.set()
        run = client.poll_backtest('bt-9', config, stop_event=stop)
        assert run.status == RunStatus.CANCELLED
        assert run.backtest_id == 'bt-9'
        session.request.assert_not_called()

    def test_cancelled_during_sleep(self, session, config):
        stop = threading.Event()
        client = BacktestClient(_tokens(), sleep=lambda s: stop.set())
        run = client.poll_backtest('bt-9', config, stop_event=stop)
        assert run.status == RunStatus.CANCELLED
        session.request.assert_not_called()

    def test_sleeps_poll_interval(self, session, config):
        sleeps = []
        client = BacktestClient(_tokens(), poll_interval=2.5, sleep=sleeps.append)
        session.request.return_value = _resp(200, {'status': 'completed'})
        client.poll_backtest('bt-5', config)
        assert sleeps == [2.5]

    def test_duplicate_poll_rejected(self, client, session, config):
        client._active_polls.add('bt-1')
        with pytest.raises(BacktestError, match="already being polled"):
            client.poll_backtest('bt-1', config)

    def test_poll_slot_released(self, client, session, config):
        session.request.return_value = _resp(200, {'status': 'failed'})
        client.poll_backtest('bt-1', config)
        assert 'bt-1' not in client._active_polls


class TestSimulateTrade:

    def test_simulate(self, client, session, config):
        session.request.return_value = _resp(200, {
            'exit-date': '2024-02-20', 'pnl': 45.0, 'exit-reason': 'profit_target',
            'daily-pnl': [{'date': '2024-01-16', 'pnl': 5, 'underlying-price': 470}],
        })
        trade = client.simulate_trade('spy', 'iron_condor', config.legs, '2024-01-16')
        assert trade.pnl == 45.0
        assert len(trade.daily_pnl) == 1

        method, url = session.request.call_args[0]
        body = session.request.call_args[1]['json']
        assert (method, url) == ('POST', 'https://bt.example.com/backtests/simulate')
        assert body['symbol'] == 'SPY'
        assert body['target-dte'] == 45
        assert body['entry-date'] == '2024-01-16'
        assert body['management']['exit-dte'] == 21

    def test_requires_legs(self, client):
        with pytest.raises(ValueError):
            client.simulate_trade('SPY', 'custom', [], '2024-01-16')

    def test_service_error(self, client, session, config):
        session.request.return_value = _resp(500, text='boom')
        with pytest.raises(BacktestServiceError, match="Simulation failed"):
            client.simulate_trade('SPY', 'iron_condor', config.legs, '2024-01-16')


class TestCheckAvailability:

    def test_available(self, client, session):
        session.request.return_value = _resp(200, {
            'start-date': '2012-01-03', 'end-date': '2026-10-16',
            'available-strategies': ['iron_condor'],
        })
        avail = client.check_availability('spy')
        assert avail.available
        assert avail.symbol == 'SPY'
        assert avail.start_date == '2012-01-03'
        assert avail.strategies == ['iron_condor']
        assert session.request.call_args[0] == ('GET', 'https://bt.example.com/symbols/SPY')

    def test_defaults(self, client, session):
        session.request.return_value = _resp(200, {})
        avail = client.check_availability('QQQ', today='2026-10-19')
        assert avail.start_date == '2010-01-01'
        assert avail.end_date == '2026-10-19'
        assert 'short_strangle' in avail.strategies

    def test_not_found(self, client, session):
        session.request.return_value = _resp(404)
        avail = client.check_availability('ZZZZ')
        assert not avail.available
        assert 'ZZZZ' in avail.message

    def test_symbol_is_url_quoted(self, client, session):
        session.request.return_value = _resp(404)
        client.check_availability('BRK/B')
        assert session.request.call_args[0][1].endswith('/symbols/BRK%2FB')

    def test_other_error(self, client, session):
        session.request.return_value = _resp(502, text='gateway')
        with pytest.raises(BacktestServiceError, match="Backtester API error"):
            client.check_availability('SPY')


class TestFromConfig:

    def test_reads_backtest_section(self, session, sample_config):
        client = BacktestClient.from_config(sample_config, _tokens())
        assert client.base_url == 'https://backtester.example.com'
        assert client.max_poll_attempts == 5
        assert client.timeout == 5
        assert session.headers['User-Agent'] == 'StrategyEngineTest/1.0'


# ---------------------------------------------------------------------------
# Real session and adapter against a local HTTP server
# ---------------------------------------------------------------------------

class _ScriptedHandler(BaseHTTPRequestHandler):
    """Replays ``server.script`` one response per request, then repeats the last."""

    def do_GET(self):
        server = self.server
        server.paths.append(self.path)
        index = min(len(server.paths), len(server.script)) - 1
        status, body = server.script[index]
        data = body.encode() if isinstance(body, str) else json.dumps(body).encode()
        self.send_response(status)
        self.send_header('Content-Type', 'application/json')
        self.send_header('Content-Length', str(len(data)))
        self.end_headers()
        self.wfile.write(data)

    def log_message(self, format, *args):
        pass


@pytest.fixture
def live_server():
    server = ThreadingHTTPServer(('127.0.0.1', 0), _ScriptedHandler)
    server.paths = []
    server.script = [(503, 'busy')]
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.shutdown()
    server.server_close()


@pytest.fixture
def live_client(live_server):
    host, port = live_server.server_address
    client = BacktestClient(
        _tokens(), base_url=f'http://{host}:{port}', max_poll_attempts=2,
        timeout=5, sleep=lambda s: None,
    )
    # ignore proxy settings from the environment
    client.session.trust_env = False
    return client


class TestLiveAdapter:

    def test_busy_polls_end_still_running(self, live_client, live_server, config):
        run = live_client.poll_backtest('job1', config)
        assert run.status == RunStatus.STILL_RUNNING
        assert live_server.paths == ['/backtests/job1', '/backtests/job1']

    def test_poll_recovers_after_busy_response(self, live_client, live_server, config):
        live_server.script = [(503, 'busy'), (200, {'status': 'done', 'trades': TRADES})]
        run = live_client.poll_backtest('job2', config)
        assert run.ok
        assert run.result.summary.total_trades == 2
        assert len(live_server.paths) == 2

    def test_availability_error_keeps_service_text(self, live_client, live_server):
        with pytest.raises(BacktestServiceError) as exc_info:
            live_client.check_availability('SPY')
        assert exc_info.value.status_code == 503
        assert exc_info.value.details == 'busy'
        assert live_server.paths == ['/symbols/SPY']

    def test_rate_limit_is_not_a_transport_error(self, live_client, live_server):
        live_server.script = [(429, 'slow down')]
        with pytest.raises(BacktestServiceError) as exc_info:
            live_client.check_availability('SPY')
        assert exc_info.value.status_code == 429
        assert len(live_server.paths) == 1
