from unittest.mock import MagicMock

import pytest
import requests

from prepwise.voice.provider import HttpVoiceProvider
from prepwise.utils.errors import ProviderConnectionError


def http_returning(body):
    response = MagicMock()
    response.content = b"{}"
    response.json.return_value = body
    response.raise_for_status.return_value = None
    http = MagicMock()
    http.post.return_value = response
    return http


def test_connect_posts_agent_and_webhook():
    http = http_returning({"id": "call-42"})
    provider = HttpVoiceProvider("session-abc", base_url="http://voice.test/", api_key="secret", http=http)

    call_id = provider.connect({"name": "Job Interviewer"}, {"username": "Ada"})

    assert call_id == "call-42"
    url = http.post.call_args.args[0]
    kwargs = http.post.call_args.kwargs
    assert url == "http://voice.test/calls"
    assert kwargs["json"]["assistant"] == {"name": "Job Interviewer"}
    assert kwargs["json"]["assistantOverrides"] == {"variableValues": {"username": "Ada"}}
    assert kwargs["json"]["serverUrl"].endswith("/sessions/session-abc/events")
    assert kwargs["headers"]["Authorization"] == "Bearer secret"


def test_connect_tags_webhook_with_call_attempt():
    http = http_returning({"id": "call-42"})
    provider = HttpVoiceProvider("session-abc", base_url="http://voice.test", http=http)

    provider.connect({}, {}, attempt_id="a1b2c3")

    payload = http.post.call_args.kwargs["json"]
    assert payload["serverUrl"].endswith("/sessions/session-abc/events?attempt=a1b2c3")
    assert payload["metadata"] == {"sessionId": "session-abc", "attemptId": "a1b2c3"}


def test_control_requests_target_call():
    http = http_returning({"id": "call-42"})
    provider = HttpVoiceProvider("session-abc", base_url="http://voice.test", http=http)
    provider.connect({}, {})

    provider.mute()
    assert http.post.call_args.args[0] == "http://voice.test/calls/call-42/control"
    assert http.post.call_args.kwargs["json"] == {"control": "mute"}

    provider.disconnect()
    assert http.post.call_args.args[0] == "http://voice.test/calls/call-42/stop"


def test_control_without_call_fails():
    provider = HttpVoiceProvider("session-abc", base_url="http://voice.test", http=MagicMock())
    with pytest.raises(ProviderConnectionError):
        provider.disconnect()


def test_transport_errors_become_provider_errors():
    http = MagicMock()
    http.post.side_effect = requests.exceptions.ConnectionError("refused")
    provider = HttpVoiceProvider("session-abc", base_url="http://voice.test", http=http)

    with pytest.raises(ProviderConnectionError) as exc:
        provider.connect({}, {})
    assert exc.value.details["operation"] == "connect"
    assert exc.value.status_code == 502
