import pytest

from bgreplace_service.backoff import BackoffScheduler
from bgreplace_service.errors import NoImageError, UpstreamError
from bgreplace_service.invoker import RetryingInvoker, extract_image
from bgreplace_service.models import CallRequest, ErrorKind, Failure, RetryPolicy, Success

from fakes import ScriptedClient, SlowClient, TimingOutGuard, image_response


def make_invoker(client, sleeper, **kwargs):
    policy = kwargs.pop("policy", RetryPolicy())
    scheduler = BackoffScheduler.from_policy(policy, rng=lambda: 0.5)
    return RetryingInvoker(client, policy=policy, scheduler=scheduler, sleep=sleeper, **kwargs)


def test_503_then_success_returns_image_after_one_sleep(call_request, sleeper):
    client = ScriptedClient([UpstreamError("overloaded", status=503), image_response("ABCD")])

    outcome = make_invoker(client, sleeper).invoke(call_request)

    assert isinstance(outcome, Success)
    assert outcome.image_b64 == "ABCD"
    assert outcome.attempts == 2
    assert len(client.calls) == 2
    assert len(sleeper.delays) == 1
    assert 5.0 <= sleeper.delays[0] <= 6.5


def test_401_stops_immediately(call_request, sleeper):
    client = ScriptedClient([UpstreamError("API key not valid", status=401), image_response()])

    outcome = make_invoker(client, sleeper).invoke(call_request)

    assert isinstance(outcome, Failure)
    assert outcome.kind is ErrorKind.AUTH_ERROR
    assert outcome.http_status == 401
    assert len(client.calls) == 1
    assert sleeper.delays == []


def test_401_on_later_attempt_stops_without_further_calls(call_request, sleeper):
    client = ScriptedClient(
        [UpstreamError("busy", status=503), UpstreamError("API key not valid", status=401), image_response()]
    )

    outcome = make_invoker(client, sleeper).invoke(call_request)

    assert outcome.kind is ErrorKind.AUTH_ERROR
    assert len(client.calls) == 2
    assert len(sleeper.delays) == 1


def test_exhaustion_reports_last_error(call_request, sleeper):
    client = ScriptedClient(
        [
            UpstreamError("busy", status=503),
            UpstreamError("busy", status=503),
            UpstreamError("slow down", status=429),
        ]
    )

    outcome = make_invoker(client, sleeper).invoke(call_request)

    assert isinstance(outcome, Failure)
    assert outcome.kind is ErrorKind.RATE_LIMIT_ERROR
    assert outcome.http_status == 429
    assert outcome.attempts == 3
    assert len(client.calls) == 3
    assert len(sleeper.delays) == 2
    assert sleeper.delays[0] < sleeper.delays[1]


def test_respects_custom_attempt_budget(call_request, sleeper):
    client = ScriptedClient([UpstreamError("network down")] * 5)
    policy = RetryPolicy(max_attempts=5, base_delay_ms=10, max_delay_ms=20)

    outcome = make_invoker(client, sleeper, policy=policy).invoke(call_request)

    assert outcome.attempts == 5
    assert len(sleeper.delays) == 4
    assert all(d <= 0.026 for d in sleeper.delays)


def test_zero_parts_response_is_retried(call_request, sleeper):
    empty = {"candidates": [{"content": {"parts": []}}]}
    client = ScriptedClient([empty, image_response("EFGH")])

    outcome = make_invoker(client, sleeper).invoke(call_request)

    assert isinstance(outcome, Success)
    assert outcome.image_b64 == "EFGH"
    assert len(client.calls) == 2


def test_text_only_responses_exhaust_budget(call_request, sleeper):
    text_only = {"candidates": [{"content": {"parts": [{"text": "I cannot do that"}]}}]}
    client = ScriptedClient([text_only] * 3)

    outcome = make_invoker(client, sleeper).invoke(call_request)

    assert isinstance(outcome, Failure)
    assert outcome.kind is ErrorKind.PROCESSING_ERROR
    assert outcome.http_status == 500
    assert "No image" in outcome.message
    assert len(client.calls) == 3


def test_all_attempts_time_out(call_request, sleeper):
    client = ScriptedClient([])
    guard = TimingOutGuard()

    outcome = make_invoker(client, sleeper, guard=guard).invoke(call_request)

    assert isinstance(outcome, Failure)
    assert outcome.kind is ErrorKind.TIMEOUT_ERROR
    assert outcome.http_status == 408
    assert "60000ms" in outcome.message
    assert guard.calls == 3
    assert len(sleeper.delays) == 2


def test_slow_upstream_times_out_through_real_guard(call_request, sleeper):
    client = SlowClient(delay_s=0.3)
    policy = RetryPolicy(max_attempts=3, base_delay_ms=10, max_delay_ms=20, per_attempt_timeout_ms=20)

    outcome = make_invoker(client, sleeper, policy=policy).invoke(call_request)

    assert isinstance(outcome, Failure)
    assert outcome.kind is ErrorKind.TIMEOUT_ERROR
    assert outcome.http_status == 408
    assert "20ms" in outcome.message
    assert outcome.attempts == 3
    assert len(sleeper.delays) == 2


@pytest.mark.parametrize(
    "request_kwargs",
    [
        {"car_image": b"", "prompt": "beach"},
        {"car_image": b"\x89PNG", "prompt": ""},
        {"car_image": b"\x89PNG", "prompt": "   "},
    ],
)
def test_invalid_request_never_calls_upstream(request_kwargs, sleeper):
    client = ScriptedClient([image_response()])

    outcome = make_invoker(client, sleeper).invoke(CallRequest(**request_kwargs))

    assert isinstance(outcome, Failure)
    assert outcome.kind is ErrorKind.VALIDATION
    assert outcome.http_status == 400
    assert outcome.attempts == 0
    assert client.calls == []


def test_parts_sent_upstream(png_bytes, sleeper):
    client = ScriptedClient([image_response()])
    request = CallRequest(car_image=png_bytes, prompt="desert at dusk", background_image=png_bytes)

    make_invoker(client, sleeper).invoke(request)

    parts = client.calls[0]
    assert len(parts) == 3
    assert parts[0]["inlineData"]["mimeType"] == "image/png"
    assert "desert at dusk" in parts[2]["text"]


def test_extract_image_rejects_missing_structure():
    for response in ({}, {"candidates": []}, {"candidates": [{}]}, {"candidates": [{"content": {}}]}):
        with pytest.raises(NoImageError, match="Invalid response structure"):
            extract_image(response)


def test_extract_image_skips_non_image_parts():
    assert extract_image(image_response("QQ==")) == "QQ=="
