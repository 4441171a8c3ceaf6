"""Tests for the command-line entry point."""

import functools
import json
import logging
import threading

import pytest

from fakes import FakeSession, serve_registry
from regman import cli
from regman.fetcher import RegistryContext


@pytest.fixture
def fake_registry(monkeypatch, tmp_path):
    """Route every context the CLI builds through one FakeSession."""
    session = FakeSession()
    monkeypatch.setattr(cli, 'RegistryContext', functools.partial(RegistryContext, session=session))
    monkeypatch.setenv('REGMAN_CONFIG', str(tmp_path / 'missing.yaml'))
    return session


class TestMain:
    def test_missing_target_exits_with_usage_code(self, fake_registry, capsys) -> None:
        assert cli.main([]) == cli.EXIT_USAGE

        captured = capsys.readouterr()
        assert captured.out == ''
        assert 'usage: regman' in captured.err

    def test_prints_report(self, fake_registry, capsys) -> None:
        serve_registry(fake_registry, {
            'a': {'v1': ['2023-01-01T00:00:00Z'], 'v2': ['2023-01-02T00:00:00Z']},
            'b': {},
        }, base='http://registry.test:5000')

        assert cli.main(['registry.test:5000']) == cli.EXIT_OK

        report = json.loads(capsys.readouterr().out)
        assert report == {
            'a': [
                {'Tag': 'v2', 'Created': '2023-01-02 00:00:00'},
                {'Tag': 'v1', 'Created': '2023-01-01 00:00:00'},
            ],
            'b': [],
        }

    def test_resolves_alias_from_config(self, fake_registry, tmp_path, monkeypatch, capsys) -> None:
        path = tmp_path / 'config.yaml'
        path.write_text(
            'registries:\n'
            '  - {alias: prod, host: reg.example.org, port: 8443, schema: https, insecure: true}\n'
        )
        serve_registry(fake_registry, {'app': {}}, base='https://reg.example.org:8443')

        assert cli.main(['--config', str(path), 'prod']) == cli.EXIT_OK

        assert json.loads(capsys.readouterr().out) == {'app': []}
        assert fake_registry.verify is False

    def test_yaml_output(self, fake_registry, capsys) -> None:
        serve_registry(fake_registry, {'a': {}}, base='http://registry.test:5000')

        assert cli.main(['--output-format', 'yaml', 'registry.test:5000']) == cli.EXIT_OK

        assert capsys.readouterr().out.strip() == 'a: []'

    def test_unreachable_registry_still_succeeds(self, fake_registry, capsys) -> None:
        assert cli.main(['nowhere.test']) == cli.EXIT_OK

        assert json.loads(capsys.readouterr().out) == {}

    def test_timed_out_run_warns_about_in_flight_requests(self, fake_registry, capsys, caplog) -> None:
        base = 'http://registry.test:5000'
        serve_registry(fake_registry, {'a': {}, 'hung': {}}, base=base)
        release = threading.Event()
        hung_tags = fake_registry.routes[f'{base}/v2/hung/tags/list']

        def hung_route():
            release.wait(timeout=5)
            return hung_tags

        fake_registry.routes[f'{base}/v2/hung/tags/list'] = hung_route

        try:
            with caplog.at_level(logging.WARNING, logger='regman'):
                code = cli.main(['--deadline', '0.2', '--read-timeout', '3', 'registry.test:5000'])
        finally:
            release.set()

        assert code == cli.EXIT_OK
        assert json.loads(capsys.readouterr().out) == {'a': []}
        assert 'Report is partial' in caplog.text
        assert 'Exit waits for in-flight requests' in caplog.text

    def test_bad_address(self, fake_registry) -> None:
        assert cli.main(['http://']) == cli.EXIT_USAGE

    def test_init_config(self, tmp_path, capsys) -> None:
        path = tmp_path / 'config.yaml'

        assert cli.main(['--init-config', '--config', str(path)]) == cli.EXIT_OK

        assert path.exists()
        assert 'alias: local' in path.read_text()

    def test_rejects_zero_workers(self) -> None:
        with pytest.raises(SystemExit):
            cli.main(['--workers', '0', 'registry.test'])


class TestResolveDeadline:
    def test_zero_disables(self) -> None:
        args = cli.build_parser().parse_args(['--deadline', '0', 'x'])

        assert cli.resolve_deadline(args, cli.Config()) is None

    def test_config_default(self) -> None:
        args = cli.build_parser().parse_args(['x'])

        assert cli.resolve_deadline(args, cli.Config()) == 300.0
