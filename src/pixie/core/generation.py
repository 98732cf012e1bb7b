"""Client-side lifecycle of a single image generation or edit request.

This module provides :class:`GenerationSession`, an observable handle that
turns one async API call into a stream of statuses for the UI, and
:class:`SessionRegistry`, the explicitly-constructed container the bridge uses
to look sessions up by id.

Lifecycle
---------
::

    submit() -> Queued -> InProgress(0, n) -> InProgress(k, n) ... -> Succeeded(urls)
                                                                   -> Failed(message)
    cancel() ------------------------------------------------------ -> Cancelled

- **Validation first**: a blank prompt or bad options raise
  :class:`~pixie.core.errors.ValidationError` from ``submit`` itself, before
  any state change or network call.
- **One call per handle**: submitting again cancels the in-flight call.  An
  attempt counter guarantees a superseded call's late result is discarded
  even if it arrives after cancellation was requested.
- **Synthetic progress**: a ticker advances ``InProgress`` every
  ``progress_interval`` seconds purely to keep the UI animated.  It never
  reports completion and stops the moment the real response arrives.
- **No retry**: generation consumes credits, so failures are terminal and
  surfaced verbatim.  Re-submission is the user's call.

Usage
-----
::

    session = GenerationSession(client, progress_interval=1.0)
    session.subscribe(lambda status: print(status))
    session.submit(GenerationRequest("sunset", options=GenerationOptions(quality="low")))
    final = await session.wait()
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable
from typing import TYPE_CHECKING

from .errors import PixieError
from .models import (
    Cancelled,
    Edit,
    Failed,
    GenerationRequest,
    GenerationStatus,
    InProgress,
    Queued,
    Succeeded,
)
from .validation import validate_options, validate_prompt, validate_source_image

if TYPE_CHECKING:
    from pixie.api.client import PixieClient

logger = logging.getLogger(__name__)

StatusCallback = Callable[[GenerationStatus], None]


class GenerationSession:
    """Observable lifecycle of one generation/edit handle.

    Attributes:
        id (str):
            Opaque session identifier.
        _client (PixieClient):
            API client used for the single network call per submission.
        _attempt (int):
            Incremented on every submit and cancel.  Results and ticks from
            an older attempt are ignored.
    """

    def __init__(
        self,
        client: PixieClient,
        progress_interval: float = 2.0,
        session_id: str | None = None,
    ) -> None:
        self.id = session_id or uuid.uuid4().hex
        self._client = client
        self._progress_interval = progress_interval

        self._request: GenerationRequest | None = None
        self._status: GenerationStatus | None = None
        self._task: asyncio.Task | None = None
        self._ticker: asyncio.Task | None = None
        self._attempt = 0
        self._started_at = 0.0
        self._subscribers: list[StatusCallback] = []

    # -- Observation --------------------------------------------------------

    @property
    def status(self) -> GenerationStatus | None:
        """Latest published status, or ``None`` before the first submit."""
        return self._status

    @property
    def request(self) -> GenerationRequest | None:
        return self._request

    @property
    def is_active(self) -> bool:
        """Whether a network call is currently in flight."""
        return self._task is not None and not self._task.done()

    @property
    def result_urls(self) -> list[str]:
        if isinstance(self._status, Succeeded):
            return list(self._status.image_urls)
        return []

    def subscribe(self, callback: StatusCallback) -> Callable[[], None]:
        """Register *callback* for every future status.

        Returns:
            A function that removes the subscription.
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _publish(self, status: GenerationStatus) -> None:
        self._status = status
        for callback in list(self._subscribers):
            try:
                callback(status)
            except Exception as e:
                logger.error(f"Status subscriber failed on session {self.id}: {e}", exc_info=True)

    # -- Operations ---------------------------------------------------------

    def submit(self, request: GenerationRequest) -> asyncio.Task:
        """Validate *request* and start its network call.

        Must be called from a running event loop.  Any call already in flight
        on this handle is cancelled first and its result will never be
        applied.

        Args:
            request: The generation or edit to run.

        Returns:
            The task running the call.  It resolves to the terminal status it
            applied, or ``None`` if it was superseded.

        Raises:
            ValidationError: If the prompt is blank or the options or edit
                source are invalid.  No state changes in that case.
        """
        prompt = validate_prompt(request.prompt)
        validate_options(request.options)
        if isinstance(request.mode, Edit):
            validate_source_image(request.mode.source_image)

        loop = asyncio.get_running_loop()

        if self.is_active:
            logger.info(f"Session {self.id}: superseding in-flight request {self._request.id}")
        self._stop_current()

        self._attempt += 1
        attempt = self._attempt
        self._request = request
        self._started_at = loop.time()
        total = request.image_count

        self._publish(Queued())
        self._publish(InProgress(0, total, 0.0))

        self._task = loop.create_task(self._run(attempt, request, prompt))
        self._ticker = loop.create_task(self._tick(attempt, total))
        logger.info(
            f"Session {self.id}: submitted {'edit' if request.mode.is_edit else 'generation'} "
            f"{request.id} ({total} image(s), quality={request.options.quality})"
        )
        return self._task

    def cancel(self) -> bool:
        """Cancel the in-flight call, if any.

        Best effort: a job the server already accepted may still complete
        (and be billed) server-side.  Its result is discarded locally.

        Returns:
            True if a call was in flight and is now cancelled.
        """
        if not self.is_active:
            return False

        self._attempt += 1
        self._stop_current()
        self._publish(Cancelled())
        logger.info(f"Session {self.id}: cancelled request {self._request.id}")
        return True

    async def wait(self) -> GenerationStatus | None:
        """Wait for the current call (following any resubmission) to finish.

        Returns:
            The terminal status, or the current status if nothing is in flight.
        """
        while self._task is not None and not self._task.done():
            await asyncio.wait({self._task})
        return self._status

    async def run(self, request: GenerationRequest) -> GenerationStatus | None:
        """Submit *request* and wait for its terminal status."""
        self.submit(request)
        return await self.wait()

    def discard(self) -> None:
        """Cancel any in-flight call and drop all subscribers."""
        self.cancel()
        self._subscribers.clear()

    # -- Internals ----------------------------------------------------------

    def _stop_current(self) -> None:
        self._stop_ticker()
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def _stop_ticker(self) -> None:
        if self._ticker is not None and not self._ticker.done():
            self._ticker.cancel()
        self._ticker = None

    async def _run(
        self, attempt: int, request: GenerationRequest, prompt: str
    ) -> GenerationStatus | None:
        try:
            if isinstance(request.mode, Edit):
                response = await self._client.edit(
                    prompt, request.mode.source_image, request.options
                )
            else:
                response = await self._client.generate(prompt, request.options)
        except PixieError as e:
            outcome: GenerationStatus = Failed(e.message, e)
            logger.warning(f"Session {self.id}: request {request.id} failed: {e.message}")
        except Exception as e:
            outcome = Failed(f"Generation failed: {e}")
            logger.error(
                f"Session {self.id}: unexpected error for {request.id}: {e}", exc_info=True
            )
        else:
            outcome = Succeeded(tuple(response.urls), tuple(response.revised_prompts))
            logger.info(
                f"Session {self.id}: request {request.id} produced "
                f"{len(response.urls)} image(s)"
            )

        if attempt != self._attempt:
            logger.debug(f"Session {self.id}: discarding stale result for {request.id}")
            return None

        self._stop_ticker()
        self._publish(outcome)
        return outcome

    async def _tick(self, attempt: int, total: int) -> None:
        loop = asyncio.get_running_loop()
        completed = 0
        ceiling = max(total - 1, 0)
        while True:
            await asyncio.sleep(self._progress_interval)
            if attempt != self._attempt or self._status is None or self._status.is_terminal:
                return
            completed = min(completed + 1, ceiling)
            self._publish(InProgress(completed, total, loop.time() - self._started_at))


class SessionRegistry:
    """Sessions owned by one bridge instance, keyed by id.

    Constructed at application start and injected where needed; there is no
    module-level registry.
    """

    def __init__(self, client: PixieClient, progress_interval: float = 2.0) -> None:
        self._client = client
        self._progress_interval = progress_interval
        self._sessions: dict[str, GenerationSession] = {}

    def create(self) -> GenerationSession:
        session = GenerationSession(self._client, self._progress_interval)
        self._sessions[session.id] = session
        logger.debug(f"Created session {session.id}")
        return session

    def get(self, session_id: str) -> GenerationSession | None:
        return self._sessions.get(session_id)

    def discard(self, session_id: str) -> bool:
        """Remove a session, cancelling any in-flight call.

        Returns:
            True if the session existed.
        """
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        session.discard()
        logger.debug(f"Discarded session {session_id}")
        return True

    def cancel_all(self) -> None:
        for session in self._sessions.values():
            session.cancel()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions
