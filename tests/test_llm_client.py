# tests/test_llm_client.py

"""
Text Generation Client Tests - request shape, retry policy, cancellation and streaming.
Uses httpx.MockTransport; no network.
"""

import asyncio
import json

import httpx
import pytest

from assessment_engine.core.exceptions import ExternalServiceError, GenerationCancelledError
from assessment_engine.services.disc_classifier import DiscClassifier
from assessment_engine.services.llm_client import LLMClient, build_messages, is_retryable_error

from fakes import FakeLLMClient, gateway_down


def run(coro):
    return asyncio.run(coro)


def completion(text="D", model="gpt-test"):
    return {"model": model, "choices": [{"message": {"content": text}, "finish_reason": "stop"}]}


def reply(status, **kwargs):
    return status, kwargs


class Recorder:
    """
    MockTransport handler replaying scripted outcomes and keeping the requests.
    The last outcome repeats; each call builds a fresh httpx.Response.
    """

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.requests = []

    def __call__(self, request: httpx.Request):
        self.requests.append(request)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        status, kwargs = outcome
        return httpx.Response(status, **kwargs)


def make_client(handler, max_retries=1):
    return LLMClient(
        api_key="test-key",
        base_url="https://llm.test/",
        completions_path="/v1/chat/completions",
        timeout_seconds=5,
        max_retries=max_retries,
        transport=httpx.MockTransport(handler),
    )


class TestGenerate:

    def test_success(self):
        handler = Recorder(reply(200, json=completion("S")))
        result = run(make_client(handler).generate("sys", "user", model="gpt-4o", temperature=0.2, max_tokens=10))

        assert result.text == "S"
        assert result.model == "gpt-test"
        assert result.finish_reason == "stop"

        request = handler.requests[0]
        assert request.url == "https://llm.test/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer test-key"
        body = json.loads(request.content)
        assert body["model"] == "gpt-4o"
        assert body["temperature"] == 0.2
        assert body["max_tokens"] == 10
        assert body["stream"] is False
        assert body["messages"] == [
            {"role": "system", "content": "sys"},
            {"role": "user", "content": "user"},
        ]

    def test_context_and_top_p(self):
        handler = Recorder(reply(200, json=completion()))
        run(make_client(handler).generate(None, "user", context="leadership", top_p=0.9))

        body = json.loads(handler.requests[0].content)
        assert body["messages"][0] == {"role": "system", "content": "Context: leadership"}
        assert body["top_p"] == 0.9

    def test_retries_server_error(self):
        handler = Recorder(reply(503, text="busy"), reply(200, json=completion("C")))
        result = run(make_client(handler).generate("sys", "user"))

        assert result.text == "C"
        assert len(handler.requests) == 2

    def test_retries_transport_error(self):
        handler = Recorder(httpx.ConnectError("connection refused"), reply(200, json=completion()))
        assert run(make_client(handler).generate("sys", "user")).text == "D"
        assert len(handler.requests) == 2

    def test_gives_up_after_max_retries(self):
        handler = Recorder(reply(429, text="slow down"))
        with pytest.raises(ExternalServiceError) as exc:
            run(make_client(handler, max_retries=1).generate("sys", "user"))

        assert exc.value.status == 429
        assert len(handler.requests) == 2

    def test_client_error_is_not_retried(self):
        handler = Recorder(reply(400, text="bad request"))
        with pytest.raises(ExternalServiceError) as exc:
            run(make_client(handler, max_retries=3).generate("sys", "user"))

        assert exc.value.status == 400
        assert "bad request" in exc.value.message
        assert len(handler.requests) == 1

    def test_empty_choices(self):
        handler = Recorder(reply(200, json={"choices": []}))
        with pytest.raises(ExternalServiceError):
            run(make_client(handler).generate("sys", "user"))

    def test_html_body_is_a_service_error(self):
        handler = Recorder(reply(200, text="<html>upstream busy</html>"))
        with pytest.raises(ExternalServiceError) as exc:
            run(make_client(handler, max_retries=2).generate("sys", "user"))

        assert "non-JSON" in exc.value.message
        assert len(handler.requests) == 1

    def test_non_object_json_is_a_service_error(self):
        handler = Recorder(reply(200, json=["D"]))
        with pytest.raises(ExternalServiceError):
            run(make_client(handler).generate("sys", "user"))

    def test_malformed_choice_is_a_service_error(self):
        handler = Recorder(reply(200, json={"choices": ["D"]}))
        with pytest.raises(ExternalServiceError):
            run(make_client(handler).generate("sys", "user"))


class TestCancellation:

    def test_cancel_before_call(self):
        handler = Recorder(reply(200, json=completion()))
        event = asyncio.Event()
        event.set()

        with pytest.raises(GenerationCancelledError):
            run(make_client(handler).generate("sys", "user", cancel_event=event))
        assert handler.requests == []

    def test_cancel_during_call(self):
        async def slow(request):
            await asyncio.sleep(5)
            return httpx.Response(200, json=completion())

        client = make_client(slow, max_retries=3)

        async def scenario():
            event = asyncio.Event()
            asyncio.get_running_loop().call_later(0.05, event.set)
            await client.generate("sys", "user", cancel_event=event)

        with pytest.raises(GenerationCancelledError):
            run(scenario())

    def test_cancellation_is_an_external_service_error(self):
        assert issubclass(GenerationCancelledError, ExternalServiceError)
        assert is_retryable_error(GenerationCancelledError()) is False


class TestStreaming:

    def test_stream_collects_deltas(self):
        events = [
            {"choices": [{"delta": {"content": "Calm "}}]},
            {"choices": [{"delta": {"content": "and steady."}}]},
            {"choices": [{"delta": {}, "finish_reason": "stop"}]},
        ]
        body = "".join(f"data: {json.dumps(e)}\n\n" for e in events) + ": keep-alive\n\ndata: [DONE]\n\n"
        handler = Recorder(reply(200, content=body.encode("utf-8")))
        chunks = []

        result = run(make_client(handler).generate_stream("sys", "user", on_chunk=chunks.append))

        assert chunks == ["Calm ", "and steady."]
        assert result.text == "Calm and steady."
        assert result.finish_reason == "stop"
        assert json.loads(handler.requests[0].content)["stream"] is True
        assert handler.requests[0].headers["Accept"] == "text/event-stream"

    def test_stream_http_error(self):
        handler = Recorder(reply(502, text="bad gateway"))
        with pytest.raises(ExternalServiceError) as exc:
            run(make_client(handler).generate_stream("sys", "user", on_chunk=lambda _: None))
        assert exc.value.status == 502


class TestHelpers:

    def test_build_messages_without_system(self):
        assert build_messages(None, "hi") == [{"role": "user", "content": "hi"}]

    @pytest.mark.parametrize("status,expected", [(429, True), (500, True), (503, True), (400, False), (404, False)])
    def test_retryable_status(self, status, expected):
        request = httpx.Request("POST", "https://llm.test/v1/chat/completions")
        error = httpx.HTTPStatusError("x", request=request, response=httpx.Response(status, request=request))
        assert is_retryable_error(error) is expected

    def test_timeout_is_retryable(self):
        assert is_retryable_error(httpx.ReadTimeout("slow")) is True
        assert is_retryable_error(ValueError("nope")) is False


class TestDiscClassifier:

    def test_label_is_parsed(self):
        classifier = DiscClassifier(FakeLLMClient(reply=" c"), model="m")
        outcome = run(classifier.classify("q1", "I double-check every figure", "obstacle"))
        assert outcome.label == "C"
        assert outcome.raw_text == " c"
        assert outcome.error is None

    def test_gateway_failure_gives_no_label(self):
        classifier = DiscClassifier(FakeLLMClient(reply=gateway_down()), model="m")
        outcome = run(classifier.classify("q1", "answer", "difficult"))
        assert outcome.label is None
        assert outcome.model == "m"
        assert "HTTP 503" in outcome.error

    def test_unknown_context_uses_generic_indicators(self):
        llm = FakeLLMClient(reply="I")
        run(DiscClassifier(llm, model="m").classify("q1", "answer", "sales"))
        assert "Sociable, persuasive, optimistic" in llm.calls[0]["user_prompt"]

    def test_html_reply_gives_no_label(self):
        handler = Recorder(reply(200, text="<html>upstream busy</html>"))
        outcome = run(DiscClassifier(make_client(handler, max_retries=0), model="m").classify("q1", "answer", "obstacle"))
        assert outcome.label is None
        assert "non-JSON" in outcome.error

    def test_unexpected_error_gives_no_label(self):
        classifier = DiscClassifier(FakeLLMClient(reply=AttributeError("'list' object has no attribute 'get'")), model="m")
        outcome = run(classifier.classify("q1", "answer", "obstacle"))
        assert outcome.label is None
        assert "has no attribute" in outcome.error

    def test_cancellation_propagates(self):
        classifier = DiscClassifier(FakeLLMClient(reply=GenerationCancelledError()), model="m")
        with pytest.raises(GenerationCancelledError):
            run(classifier.classify("q1", "answer", "obstacle"))
