from __future__ import annotations

from unittest.mock import MagicMock

import httplib2
import pytest
from googleapiclient.errors import HttpError

from inbox_digest.errors import ProviderError
from inbox_digest.gmail.client import GmailClient


def _connected(service: MagicMock) -> GmailClient:
    client = GmailClient(credentials=None)
    client._service = service
    return client


def test_requires_connect() -> None:
    with pytest.raises(RuntimeError):
        GmailClient(credentials=None).list_messages("in:inbox")


def test_list_messages_returns_ids_and_passes_query() -> None:
    service = MagicMock()
    messages = service.users.return_value.messages.return_value
    messages.list.return_value.execute.return_value = {"messages": [{"id": "m1"}, {"id": "m2"}]}

    ids = _connected(service).list_messages("in:inbox after:1715300000", max_results=30)

    assert ids == ["m1", "m2"]
    messages.list.assert_called_once_with(userId="me", q="in:inbox after:1715300000", maxResults=30)


def test_list_messages_without_results_is_empty() -> None:
    service = MagicMock()
    service.users.return_value.messages.return_value.list.return_value.execute.return_value = {}

    assert _connected(service).list_messages("in:inbox") == []


def test_http_errors_become_provider_errors() -> None:
    service = MagicMock()
    messages = service.users.return_value.messages.return_value
    messages.get.return_value.execute.side_effect = HttpError(httplib2.Response({"status": "500"}), b"backend error")

    with pytest.raises(ProviderError) as excinfo:
        _connected(service).get_message("m1")

    assert excinfo.value.stage == "fetch"


def test_socket_timeouts_become_provider_errors() -> None:
    service = MagicMock()
    service.users.return_value.messages.return_value.list.return_value.execute.side_effect = TimeoutError("timed out")

    with pytest.raises(ProviderError):
        _connected(service).list_messages("in:inbox")
