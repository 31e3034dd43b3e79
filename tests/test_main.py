"""Tests for the command-line entry point."""
import json
from unittest.mock import MagicMock, patch

import pytest
import yaml

import main
from backtest.models import (
    BacktestRun, DailyPnl, RunStatus, SimulatedTrade, SymbolAvailability,
)
from shared.exceptions import ChainDataError
from conftest import make_raw_chain


@pytest.fixture
def config_file(tmp_path, sample_config):
    sample_config['logging']['file'] = str(tmp_path / 'engine.log')
    path = tmp_path / 'config.yaml'
    path.write_text(yaml.dump(sample_config))
    return str(path)


@pytest.fixture
def snapshot_file(tmp_path):
    strikes, quotes = make_raw_chain()
    path = tmp_path / 'spy.json'
    path.write_text(json.dumps({
        'symbol': 'SPY', 'current_price': 100.0, 'iv_rank': 0.10,
        'expiration': '2026-12-04', 'dte': 45, 'iv30': 0.40, 'hv30': 0.20,
        'strikes': strikes, 'quotes': quotes,
    }))
    return str(path)


def _run(argv):
    with patch('dotenv.load_dotenv'), patch('main.signal.signal'):
        return main.main(argv)


class TestLoadSnapshot:

    def test_missing_file(self, tmp_path):
        with pytest.raises(ChainDataError):
            main.load_snapshot(str(tmp_path / 'nope.json'))

    def test_missing_key(self, tmp_path):
        path = tmp_path / 'bad.json'
        path.write_text(json.dumps({'current_price': 100}))
        with pytest.raises(ChainDataError, match="missing 'iv_rank'"):
            main.load_snapshot(str(path))

    def test_not_an_object(self, tmp_path):
        path = tmp_path / 'bad.json'
        path.write_text('[1, 2]')
        with pytest.raises(ChainDataError):
            main.load_snapshot(str(path))

    def test_params(self, snapshot_file):
        params = main.params_from_snapshot(main.load_snapshot(snapshot_file))
        assert params.symbol == 'SPY'
        assert len(params.strikes) == 11
        assert params.hv30 == 0.20


class TestCommands:

    def test_generate(self, config_file, snapshot_file, capsys):
        assert _run(['--config', config_file, 'generate', snapshot_file]) == 0
        out = capsys.readouterr().out
        assert 'A) Debit Spread' in out
        assert 'C) Long Straddle' in out

    def test_generate_json(self, config_file, snapshot_file, capsys):
        assert _run(['--config', config_file, 'generate', snapshot_file, '--json']) == 0
        cards = json.loads(capsys.readouterr().out)
        assert [c['label'] for c in cards] == ['A', 'B', 'C']
        assert cards[0]['name'] == 'Debit Spread'

    def test_custom(self, config_file, snapshot_file, tmp_path, capsys):
        legs = tmp_path / 'legs.json'
        legs.write_text(json.dumps([
            {'type': 'put', 'side': 'sell', 'strike': 90, 'streamerSymbol': '.SPYP90'},
            {'type': 'put', 'side': 'buy', 'strike': 85, 'streamerSymbol': '.SPYP85'},
        ]))
        assert _run(['--config', config_file, 'custom', snapshot_file, str(legs)]) == 0
        assert 'Custom) Put Credit Spread' in capsys.readouterr().out

    def test_bad_snapshot_exits_nonzero(self, config_file, tmp_path, capsys):
        assert _run(['--config', config_file, 'generate', str(tmp_path / 'nope.json')]) == 1
        assert 'Error:' in capsys.readouterr().err

    def test_unknown_label(self, config_file, snapshot_file):
        with pytest.raises(SystemExit, match="No candidate labelled 'Z'"):
            _run(['--config', config_file, 'backtest', snapshot_file, '--label', 'Z'])

    def test_backtest_still_running(self, config_file, snapshot_file, capsys):
        client = MagicMock()
        client.run_backtest.return_value = BacktestRun(
            status=RunStatus.STILL_RUNNING, backtest_id='bt-1',
            message='The backtest is still running. Try again later.',
        )
        with patch('main.build_client', return_value=client):
            assert _run(['--config', config_file, 'backtest', snapshot_file]) == 0
        bt_config = client.run_backtest.call_args[0][0]
        assert bt_config.strategy_type == 'long_call_vertical'
        assert 'still running' in capsys.readouterr().out

    def test_simulate(self, config_file, snapshot_file, capsys):
        client = MagicMock()
        client.simulate_trade.return_value = SimulatedTrade(
            entry_date='2024-03-01', exit_date='2024-03-20', entry_price=2.20,
            exit_price=3.30, pnl=110.0, pnl_percent=50.0, holding_days=19,
            exit_reason='Profit Target',
            daily_pnl=[DailyPnl(date='2024-03-04', pnl=15.0, underlying_price=101.5)],
        )
        with patch('main.build_client', return_value=client):
            assert _run(['--config', config_file, 'simulate', snapshot_file,
                         '--entry-date', '2024-03-01']) == 0
        args, kwargs = client.simulate_trade.call_args
        assert args[0] == 'SPY'
        assert args[1] == 'long_call_vertical'
        assert args[3] == '2024-03-01'
        assert kwargs['dte'] == 45
        out = capsys.readouterr().out
        assert 'P&L $110.00 (50.0%)' in out
        assert 'underlying 101.50' in out

    def test_available(self, config_file, capsys):
        client = MagicMock()
        client.check_availability.return_value = SymbolAvailability(
            symbol='SPY', available=True, start_date='2010-01-01',
            end_date='2026-10-16', strategies=['iron_condor'],
        )
        with patch('main.build_client', return_value=client):
            assert _run(['--config', config_file, 'available', '--symbol', 'spy']) == 0
        assert 'SPY: 2010-01-01 to 2026-10-16' in capsys.readouterr().out


class TestBuildClient:

    def test_unresolved_token_is_ignored(self, sample_config, monkeypatch):
        monkeypatch.delenv('BACKTESTER_ACCESS_TOKEN', raising=False)
        sample_config['backtest']['access_token'] = '${BACKTESTER_ACCESS_TOKEN}'
        client = main.build_client(sample_config)
        assert client._tokens.get() is None

    def test_token_from_config(self, sample_config):
        sample_config['backtest']['access_token'] = 'abc'
        assert main.build_client(sample_config)._tokens.get() == 'abc'
