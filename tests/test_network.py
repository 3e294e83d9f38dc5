"""Tests for the remote existence prober."""

from unittest import mock

import requests

from import_fixers.network import USER_AGENT, UrlProber

URL = "https://new.example.com/wp-content/uploads/2016/05/cafe.jpg"


def make_session(head_status=200, get_status=200, head_error=None):
    session = mock.Mock(spec=requests.Session)
    if head_error is not None:
        session.head.side_effect = head_error
    else:
        session.head.return_value = mock.Mock(status_code=head_status)
    session.get.return_value = mock.Mock(status_code=get_status)
    return session


def test_existing_file():
    session = make_session(200)
    assert UrlProber(timeout=3, session=session).exists(URL)
    session.head.assert_called_once_with(URL, timeout=3, allow_redirects=True)
    session.get.assert_not_called()


def test_missing_file():
    assert not UrlProber(session=make_session(404)).exists(URL)


def test_head_not_allowed_falls_back_to_get():
    session = make_session(405, get_status=200)
    assert UrlProber(session=session).exists(URL)
    session.get.assert_called_once()
    session.get.return_value.close.assert_called_once()


def test_network_errors_count_as_missing(caplog):
    session = make_session(head_error=requests.ConnectionError("refused"))
    assert not UrlProber(session=session).exists(URL)
    assert "Failed to probe" in caplog.text


def test_default_session_identifies_itself():
    prober = UrlProber()
    try:
        assert prober.session.headers["User-Agent"] == USER_AGENT
    finally:
        prober.close()
