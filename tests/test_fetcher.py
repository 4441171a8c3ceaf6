"""Tests for fetch_json and RegistryContext."""

import logging

import pytest
import requests

from fakes import BASE, ENDPOINT, FakeSession, make_context
from regman.errors import DecodeError, HTTPStatusError, NetworkError
from regman.fetcher import RegistryContext, fetch_json

URL = f'{BASE}/v2/_catalog'


class TestFetchJson:
    """Status and body handling."""

    def test_returns_decoded_document(self, session, context) -> None:
        session.add(URL, {'repositories': ['a']})

        assert fetch_json(context, URL) == {'repositories': ['a']}

    def test_error_status_with_json_body_is_returned(self, session, context) -> None:
        """Registries describe failures in JSON; the caller sees the document."""
        session.add(URL, {'errors': [{'code': 'UNAUTHORIZED'}]}, status=401)

        assert fetch_json(context, URL) == {'errors': [{'code': 'UNAUTHORIZED'}]}

    def test_error_status_with_empty_body(self, session, context) -> None:
        session.add(URL, None, status=500, reason='Internal Server Error')

        with pytest.raises(HTTPStatusError) as excinfo:
            fetch_json(context, URL)

        assert excinfo.value.status == 500
        assert excinfo.value.url == URL

    def test_error_status_with_html_body(self, session, context) -> None:
        session.add(URL, '<html>Bad Gateway</html>', status=502, reason='Bad Gateway')

        with pytest.raises(HTTPStatusError) as excinfo:
            fetch_json(context, URL)

        assert excinfo.value.status == 502

    def test_success_with_garbage_body(self, session, context) -> None:
        session.add(URL, 'not json at all')

        with pytest.raises(DecodeError):
            fetch_json(context, URL)

    def test_success_with_empty_body(self, session, context) -> None:
        session.add(URL, None)

        with pytest.raises(DecodeError):
            fetch_json(context, URL)

    def test_transport_failure(self, session, context) -> None:
        session.routes[URL] = requests.exceptions.ConnectionError('connection refused')

        with pytest.raises(NetworkError) as excinfo:
            fetch_json(context, URL)

        assert 'connection refused' in str(excinfo.value)

    def test_timeout_is_a_network_error(self, session, context) -> None:
        session.routes[URL] = requests.exceptions.ReadTimeout('read timed out')

        with pytest.raises(NetworkError):
            fetch_json(context, URL)

    def test_passes_timeouts_and_headers(self, session) -> None:
        context = make_context(session, connect_timeout=2.0, read_timeout=7.0)
        session.add(URL, {})

        fetch_json(context, URL, headers={'Accept': 'application/json'})

        call = session.calls[0]
        assert call.timeout == (2.0, 7.0)
        assert call.headers == {'Accept': 'application/json'}
        assert call.verify is True


class TestRequestCounter:
    """Every call counts, whatever its outcome."""

    def test_counts_successes_and_failures(self, session, context) -> None:
        session.add(URL, {})
        session.routes[f'{BASE}/down'] = requests.exceptions.ConnectionError('down')

        fetch_json(context, URL)
        fetch_json(context, URL)
        with pytest.raises(NetworkError):
            fetch_json(context, f'{BASE}/down')

        assert context.request_count == 3


class TestRegistryContext:
    """Construction of the execution context."""

    def test_url_joins_base_and_path(self, context) -> None:
        assert context.url('/v2/_catalog') == f'{BASE}/v2/_catalog'
        assert context.url('v2/a/tags/list') == f'{BASE}/v2/a/tags/list'

    def test_insecure_mode_is_announced(self, caplog) -> None:
        session = FakeSession()

        with caplog.at_level(logging.WARNING, logger='regman.fetcher'):
            context = RegistryContext(ENDPOINT, verify_tls=False, session=session)

        assert session.verify is False
        assert context.verify_tls is False
        assert 'verification is disabled' in caplog.text

    def test_rejects_zero_workers(self) -> None:
        with pytest.raises(ValueError):
            RegistryContext(ENDPOINT, max_workers=0, session=FakeSession())

    def test_builds_a_real_session_by_default(self) -> None:
        context = RegistryContext(ENDPOINT, max_workers=4)

        assert isinstance(context.session, requests.Session)
        assert context.session.headers['User-Agent'].startswith('regman/')
        context.close()

    def test_closes_session_on_exit(self, session) -> None:
        with make_context(session):
            pass

        assert session.closed
