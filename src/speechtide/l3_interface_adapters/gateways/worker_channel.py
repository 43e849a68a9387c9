"""Gateway: worker channel — one child process speaking the JSON-lines worker protocol."""

from __future__ import annotations

import asyncio
import enum
import logging
import uuid
from collections.abc import Mapping, Sequence

from speechtide.l1_entities.errors import (
    EngineDestroyedError,
    InitializationError,
    ProtocolError,
    TranscriberError,
    TranscriptionError,
    WorkerExitedError,
)
from speechtide.l1_entities.worker_protocol import (
    InitErrorMessage,
    InitMessage,
    InitPayload,
    ReadyMessage,
    TranscribeErrorMessage,
    TranscribeMessage,
    TranscribeSuccessMessage,
    decode_worker_message,
    encode_message,
)

log = logging.getLogger('tide.engine')

_STREAM_LIMIT = 1 << 20  # longest accepted protocol line, bytes


class ChannelState(enum.Enum):
    SPAWNING = 'spawning'
    AWAITING_READY = 'awaiting_ready'
    READY = 'ready'
    EXITED = 'exited'


class ReadyGate:
    """Single-resolution gate: the first resolve() or reject() wins, later calls are no-ops."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._error: BaseException | None = None

    @property
    def done(self) -> bool:
        return self._event.is_set()

    def resolve(self) -> bool:
        if self._event.is_set():
            return False
        self._event.set()
        return True

    def reject(self, error: BaseException) -> bool:
        if self._event.is_set():
            return False
        self._error = error
        self._event.set()
        return True

    async def wait(self) -> None:
        await self._event.wait()
        if self._error is not None:
            raise self._error


class WorkerChannel:
    """Owns one worker process and correlates its replies with pending requests.

    State moves SPAWNING → AWAITING_READY → READY → EXITED; EXITED is terminal.
    Entering EXITED rejects the ready gate (if still open) and every pending
    request exactly once. Recovery means building a new channel.

    The worker handles one request at a time, reading stdin in order, so
    requests sent without awaiting the previous reply queue up and complete in
    send order. The channel itself does not enforce a single request in flight.
    """

    def __init__(self, command: Sequence[str], *, env: Mapping[str, str] | None = None) -> None:
        self._command = list(command)
        self._env = dict(env) if env is not None else None
        self._state = ChannelState.SPAWNING
        self._ready = ReadyGate()
        self._pending: dict[str, asyncio.Future[TranscribeSuccessMessage]] = {}
        self._process: asyncio.subprocess.Process | None = None
        self._reader: asyncio.Task[None] | None = None
        self._exit_error: TranscriberError | None = None

    @property
    def state(self) -> ChannelState:
        return self._state

    @property
    def exited(self) -> bool:
        return self._state is ChannelState.EXITED

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    async def start(self) -> None:
        """Spawn the worker and begin reading its replies."""
        self._raise_if_exited()
        try:
            process = await asyncio.create_subprocess_exec(
                *self._command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                env=self._env,
                limit=_STREAM_LIMIT,
            )
        except OSError as exc:
            error = WorkerExitedError(f'Failed to launch SenseVoice worker: {exc}')
            self._mark_exited(error)
            raise error from exc

        self._process = process
        self._reader = asyncio.get_running_loop().create_task(self._read_loop(process))
        log.info('SenseVoice worker started (pid=%d)', process.pid)

        if self.exited:  # destroyed while the spawn was in progress
            _terminate(process)
            self._raise_if_exited()

    async def initialize(self, payload: InitPayload) -> None:
        """Send the init record; the ready gate opens when the worker answers ``ready``."""
        self._raise_if_exited()
        self._state = ChannelState.AWAITING_READY
        await self._send(InitMessage(payload=payload))

    async def wait_ready(self) -> None:
        await self._ready.wait()

    async def transcribe(self, audio_path: str) -> TranscribeSuccessMessage:
        """Send one transcribe request and wait for its correlated reply."""
        self._raise_if_exited()
        request_id = uuid.uuid4().hex
        future: asyncio.Future[TranscribeSuccessMessage] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            await self._send(TranscribeMessage(id=request_id, audio_path=audio_path))
            return await future
        finally:
            self._pending.pop(request_id, None)

    def close(self, error: TranscriberError) -> None:
        """Fail everything with *error* and terminate the worker. Idempotent; never suspends."""
        if not self._mark_exited(error):
            return
        if self._process is not None:
            _terminate(self._process)
        log.info('SenseVoice worker closed: %s', error)

    def destroy(self) -> None:
        self.close(EngineDestroyedError('Transcriber destroyed'))

    async def wait_closed(self) -> None:
        """Wait until the worker process has been reaped."""
        if self._reader is not None:
            await asyncio.shield(self._reader)

    async def _send(self, message: InitMessage | TranscribeMessage) -> None:
        self._raise_if_exited()
        process = self._process
        if process is None or process.stdin is None:
            raise WorkerExitedError('SenseVoice worker is not running')
        try:
            process.stdin.write(encode_message(message))
            await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as exc:
            # The reader sees EOF next and rejects everything with the exit code.
            log.debug('worker stdin closed while sending %s: %s', message.type, exc)

    async def _read_loop(self, process: asyncio.subprocess.Process) -> None:
        assert process.stdout is not None
        try:
            async for line in process.stdout:
                self._handle_line(line)
        except ValueError as exc:  # a line longer than _STREAM_LIMIT; framing is lost
            log.error('worker output unreadable, terminating: %s', exc)
            _terminate(process)
        code = await process.wait()
        log.info('SenseVoice worker exited (code=%s)', code)
        self._mark_exited(WorkerExitedError(f'SenseVoice worker exited, code={code}', exit_code=code))

    def _handle_line(self, line: bytes) -> None:
        line = line.strip()
        if not line:
            return
        try:
            message = decode_worker_message(line)
        except ProtocolError as exc:
            log.warning('%s', exc)
            return
        self._dispatch(message)

    def _dispatch(
        self,
        message: ReadyMessage | InitErrorMessage | TranscribeSuccessMessage | TranscribeErrorMessage,
    ) -> None:
        if self.exited:
            return
        if isinstance(message, ReadyMessage):
            if self._ready.resolve():
                self._state = ChannelState.READY
                log.info('SenseVoice worker ready')
        elif isinstance(message, InitErrorMessage):
            self.close(InitializationError(f'SenseVoice initialization failed: {message.error}'))
        elif isinstance(message, TranscribeSuccessMessage):
            future = self._claim(message.id)
            if future is not None:
                future.set_result(message)
        elif isinstance(message, TranscribeErrorMessage):
            future = self._claim(message.id)
            if future is not None:
                future.set_exception(TranscriptionError(message.error))
        else:
            raise ProtocolError(f'Unhandled worker message type: {type(message).__name__}')

    def _claim(self, request_id: str) -> asyncio.Future[TranscribeSuccessMessage] | None:
        future = self._pending.pop(request_id, None)
        if future is None or future.done():
            log.debug('dropping reply for unknown request %s', request_id)
            return None
        return future

    def _mark_exited(self, error: TranscriberError) -> bool:
        if self._state is ChannelState.EXITED:
            return False
        self._state = ChannelState.EXITED
        self._exit_error = error
        self._ready.reject(error)
        pending, self._pending = self._pending, {}
        for future in pending.values():
            if not future.done():
                future.set_exception(error)
        return True

    def _raise_if_exited(self) -> None:
        if self._exit_error is not None:
            raise self._exit_error


def _terminate(process: asyncio.subprocess.Process) -> None:
    if process.returncode is not None:
        return
    try:
        process.terminate()
    except ProcessLookupError:
        pass
