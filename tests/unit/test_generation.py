"""Unit tests for pixie.core.generation: session lifecycle and registry."""

from __future__ import annotations

import asyncio

import pytest

from pixie.api.models import GenerationOptions, ImageResponse
from pixie.core.errors import InsufficientCredits, ValidationError
from pixie.core.generation import GenerationSession, SessionRegistry
from pixie.core.models import (
    Cancelled,
    Edit,
    Failed,
    GenerationRequest,
    InProgress,
    Queued,
    Succeeded,
)


def image_response(*names: str) -> ImageResponse:
    return ImageResponse.model_validate(
        {"created": 1, "data": [{"url": f"https://cdn.test/{n}.png"} for n in names]}
    )


class StubClient:
    """Records calls and replays scripted outcomes in order.

    An outcome is an ImageResponse, an exception to raise, or a
    ``(asyncio.Event, outcome)`` pair that holds the call until the event is
    set.
    """

    def __init__(self, *outcomes) -> None:
        self.outcomes = list(outcomes)
        self.calls: list[tuple] = []

    async def _next(self):
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, tuple):
            gate, outcome = outcome
            await gate.wait()
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def generate(self, prompt, options):
        self.calls.append(("generate", prompt, options))
        return await self._next()

    async def edit(self, prompt, source_image, options):
        self.calls.append(("edit", prompt, source_image, options))
        return await self._next()


def record(session: GenerationSession) -> list:
    seen: list = []
    session.subscribe(seen.append)
    return seen


class TestSubmit:
    """Tests for the happy path and validation."""

    def test_generate_emits_queued_progress_succeeded(self):
        """generate("sunset", low, 1) -> Queued, InProgress(0, 1), Succeeded."""
        client = StubClient(image_response("sunset"))
        session = GenerationSession(client, progress_interval=10)
        seen = record(session)
        request = GenerationRequest("sunset", options=GenerationOptions(quality="low", count=1))

        final = asyncio.run(session.run(request))

        assert seen == [
            Queued(),
            InProgress(0, 1, 0.0),
            Succeeded(("https://cdn.test/sunset.png",), ()),
        ]
        assert final == seen[-1]
        assert sum(1 for status in seen if status.is_terminal) == 1
        assert session.result_urls == ["https://cdn.test/sunset.png"]

    def test_prompt_is_sent_stripped(self):
        client = StubClient(image_response("a"))
        session = GenerationSession(client, progress_interval=10)
        asyncio.run(session.run(GenerationRequest("  sunset  ")))
        assert client.calls[0][1] == "sunset"

    @pytest.mark.parametrize("prompt", ["", "   "])
    def test_blank_prompt_raises_before_any_call(self, prompt):
        client = StubClient()
        session = GenerationSession(client)
        seen = record(session)

        with pytest.raises(ValidationError, match="Please enter a prompt"):
            session.submit(GenerationRequest(prompt))

        assert client.calls == []
        assert seen == []
        assert session.status is None

    def test_invalid_options_raise_before_any_call(self):
        client = StubClient()
        session = GenerationSession(client)
        options = GenerationOptions(background="transparent", output_format="jpeg")
        with pytest.raises(ValidationError):
            session.submit(GenerationRequest("sunset", options=options))
        assert client.calls == []

    def test_edit_uses_edit_endpoint(self):
        client = StubClient(image_response("edited"))
        session = GenerationSession(client, progress_interval=10)
        request = GenerationRequest("make it blue", mode=Edit("https://cdn.test/src.png"))

        final = asyncio.run(session.run(request))

        assert client.calls[0][0] == "edit"
        assert client.calls[0][2] == "https://cdn.test/src.png"
        assert isinstance(final, Succeeded)

    def test_missing_edit_source_raises(self, tmp_path):
        client = StubClient()
        session = GenerationSession(client)
        request = GenerationRequest("make it blue", mode=Edit(str(tmp_path / "nope.png")))
        with pytest.raises(ValidationError, match="File not found"):
            session.submit(request)
        assert client.calls == []


class TestFailures:
    """Tests for failed calls."""

    def test_insufficient_credits_fails_without_retry(self):
        client = StubClient(InsufficientCredits(required=16, available=3), image_response("x"))
        session = GenerationSession(client, progress_interval=10)

        final = asyncio.run(session.run(GenerationRequest("sunset")))

        assert isinstance(final, Failed)
        assert final.error_message.startswith("Insufficient credits:")
        assert isinstance(final.error, InsufficientCredits)
        assert len(client.calls) == 1

    def test_unexpected_error_becomes_failed(self):
        client = StubClient(RuntimeError("boom"))
        session = GenerationSession(client, progress_interval=10)

        final = asyncio.run(session.run(GenerationRequest("sunset")))

        assert final == Failed("Generation failed: boom")

    def test_subscriber_errors_do_not_break_publishing(self):
        client = StubClient(image_response("a"))
        session = GenerationSession(client, progress_interval=10)

        def broken(status):
            raise RuntimeError("listener bug")

        session.subscribe(broken)
        seen = record(session)

        asyncio.run(session.run(GenerationRequest("sunset")))

        assert isinstance(seen[-1], Succeeded)


class TestSupersedeAndCancel:
    """Tests for resubmission and cancellation."""

    def test_resubmit_applies_only_second_result(self):
        async def scenario():
            gate = asyncio.Event()
            client = StubClient((gate, image_response("first")), image_response("second"))
            session = GenerationSession(client, progress_interval=10)
            seen = record(session)

            first = session.submit(GenerationRequest("first"))
            await asyncio.sleep(0)
            session.submit(GenerationRequest("second"))
            gate.set()
            final = await session.wait()
            await asyncio.gather(first, return_exceptions=True)
            return client, session, seen, final, first

        client, session, seen, final, first = asyncio.run(scenario())

        assert len(client.calls) == 2
        assert final == Succeeded(("https://cdn.test/second.png",), ())
        assert first.cancelled()
        urls = [s.image_urls for s in seen if isinstance(s, Succeeded)]
        assert urls == [("https://cdn.test/second.png",)]
        assert not any(isinstance(s, Cancelled) for s in seen)

    def test_cancel_in_flight(self):
        async def scenario():
            gate = asyncio.Event()
            client = StubClient((gate, image_response("late")))
            session = GenerationSession(client, progress_interval=10)
            seen = record(session)

            session.submit(GenerationRequest("sunset"))
            await asyncio.sleep(0)
            cancelled = session.cancel()
            cancelled_again = session.cancel()
            gate.set()
            await asyncio.sleep(0.01)
            return session, seen, cancelled, cancelled_again

        session, seen, cancelled, cancelled_again = asyncio.run(scenario())

        assert cancelled is True
        assert cancelled_again is False
        assert seen[-1] == Cancelled()
        assert session.status == Cancelled()
        assert session.result_urls == []
        assert not session.is_active

    def test_cancel_when_idle_is_noop(self):
        session = GenerationSession(StubClient())
        assert session.cancel() is False
        assert session.status is None

    def test_submit_requires_running_loop(self):
        session = GenerationSession(StubClient(image_response("a")))
        with pytest.raises(RuntimeError):
            session.submit(GenerationRequest("sunset"))
        assert session.status is None


class TestProgress:
    """Tests for synthetic progress ticks."""

    def test_progress_never_reports_completion(self):
        async def scenario():
            gate = asyncio.Event()
            client = StubClient((gate, image_response("a", "b", "c")))
            session = GenerationSession(client, progress_interval=0.01)
            seen = record(session)

            request = GenerationRequest("sunset", options=GenerationOptions(count=3))
            session.submit(request)
            await asyncio.sleep(0.1)
            gate.set()
            await session.wait()
            ticks_at_finish = len(seen)
            await asyncio.sleep(0.05)
            return seen, ticks_at_finish

        seen, ticks_at_finish = asyncio.run(scenario())

        progress = [s for s in seen if isinstance(s, InProgress)]
        assert len(progress) > 2
        assert max(p.images_completed for p in progress) == 2
        assert all(p.images_total == 3 for p in progress)
        assert isinstance(seen[-1], Succeeded)
        assert len(seen) == ticks_at_finish

    def test_single_image_progress_advances_elapsed(self):
        async def scenario():
            gate = asyncio.Event()
            client = StubClient((gate, image_response("a")))
            session = GenerationSession(client, progress_interval=0.01)
            seen = record(session)
            session.submit(GenerationRequest("sunset"))
            await asyncio.sleep(0.08)
            gate.set()
            await session.wait()
            return seen

        seen = asyncio.run(scenario())

        progress = [s for s in seen if isinstance(s, InProgress)]
        assert all(p.images_completed == 0 for p in progress)
        assert progress[-1].elapsed > progress[0].elapsed


class TestSessionRegistry:
    """Tests for SessionRegistry."""

    def test_create_and_get(self):
        registry = SessionRegistry(StubClient())
        session = registry.create()
        assert registry.get(session.id) is session
        assert session.id in registry
        assert len(registry) == 1

    def test_get_unknown_returns_none(self):
        assert SessionRegistry(StubClient()).get("missing") is None

    def test_discard(self):
        registry = SessionRegistry(StubClient())
        session = registry.create()
        assert registry.discard(session.id) is True
        assert registry.discard(session.id) is False
        assert len(registry) == 0

    def test_discard_cancels_in_flight(self):
        async def scenario():
            gate = asyncio.Event()
            registry = SessionRegistry(StubClient((gate, image_response("a"))), 10)
            session = registry.create()
            session.submit(GenerationRequest("sunset"))
            await asyncio.sleep(0)
            registry.discard(session.id)
            return session

        session = asyncio.run(scenario())
        assert session.status == Cancelled()

    def test_cancel_all(self):
        async def scenario():
            gates = [asyncio.Event(), asyncio.Event()]
            client = StubClient((gates[0], image_response("a")), (gates[1], image_response("b")))
            registry = SessionRegistry(client, 10)
            sessions = [registry.create(), registry.create()]
            for session in sessions:
                session.submit(GenerationRequest("sunset"))
            await asyncio.sleep(0)
            registry.cancel_all()
            return sessions

        sessions = asyncio.run(scenario())
        assert all(session.status == Cancelled() for session in sessions)
