"""Worker protocol — newline-delimited JSON records with a ``type`` discriminator.

Host → worker: ``init``, ``transcribe``.
Worker → host: ``ready``, ``init-error``, ``transcribe-success``, ``transcribe-error``.

Keys travel in camelCase on the wire; Python code uses the snake_case field names.
"""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from speechtide.l1_entities.errors import ProtocolError


class _Message(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class InitPayload(_Message):
    model_path: str
    tokens_path: str
    language: str
    use_itn: bool = Field(alias='useITN')
    num_threads: int = 2
    provider: str = 'cpu'


class InitMessage(_Message):
    type: Literal['init'] = 'init'
    payload: InitPayload


class TranscribeMessage(_Message):
    type: Literal['transcribe'] = 'transcribe'
    id: str
    audio_path: str


class ReadyMessage(_Message):
    type: Literal['ready'] = 'ready'


class InitErrorMessage(_Message):
    type: Literal['init-error'] = 'init-error'
    error: str


class TranscribeSuccessMessage(_Message):
    type: Literal['transcribe-success'] = 'transcribe-success'
    id: str
    text: str
    duration_ms: int
    language: str | None = None


class TranscribeErrorMessage(_Message):
    type: Literal['transcribe-error'] = 'transcribe-error'
    id: str
    error: str


HostMessage = Annotated[InitMessage | TranscribeMessage, Field(discriminator='type')]
WorkerMessage = Annotated[
    ReadyMessage | InitErrorMessage | TranscribeSuccessMessage | TranscribeErrorMessage,
    Field(discriminator='type'),
]

_HOST_ADAPTER: TypeAdapter[HostMessage] = TypeAdapter(HostMessage)
_WORKER_ADAPTER: TypeAdapter[WorkerMessage] = TypeAdapter(WorkerMessage)


def encode_message(message: _Message) -> bytes:
    """Serialize *message* as one protocol line, newline included."""
    return message.model_dump_json(by_alias=True, exclude_none=True).encode('utf-8') + b'\n'


def decode_host_message(line: bytes | str) -> InitMessage | TranscribeMessage:
    """Parse a line sent by the host. Raises ProtocolError on garbage or unknown tags."""
    return _decode(_HOST_ADAPTER, line)


def decode_worker_message(
    line: bytes | str,
) -> ReadyMessage | InitErrorMessage | TranscribeSuccessMessage | TranscribeErrorMessage:
    """Parse a line sent by the worker. Raises ProtocolError on garbage or unknown tags."""
    return _decode(_WORKER_ADAPTER, line)


def _decode(adapter: TypeAdapter, line: bytes | str):
    try:
        return adapter.validate_json(line)
    except ValidationError as exc:
        snippet = line[:120] if isinstance(line, str) else line[:120].decode('utf-8', errors='replace')
        raise ProtocolError(f'Invalid worker protocol line: {snippet!r} ({exc.error_count()} errors)') from exc
