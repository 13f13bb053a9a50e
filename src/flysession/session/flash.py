# Copyright 2026 Firefly Software Solutions Inc.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""One-shot flash notices stored inside the session."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from flysession.session.session import Session

FLASH_PREFIX = "__flash:"


class FlashStore:
    """Per-key ordered lists of string messages, read once and then cleared.

    Each flash key is its own reserved session field (``__flash:<key>``), so
    requests sharing a session ID that flash under different keys never
    overwrite each other under a field-level write guarantee. Every mutating
    call performs at most one backend write.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    @staticmethod
    def _field(key: str) -> str:
        return f"{FLASH_PREFIX}{key}"

    def _fields(self) -> list[str]:
        return list(self._session.reserved_items(FLASH_PREFIX))

    def _bag(self) -> dict[str, list[str]]:
        """Return a sanitized copy of the stored messages, dropping anything that is not text."""
        bag: dict[str, list[str]] = {}
        for field, messages in self._session.reserved_items(FLASH_PREFIX).items():
            if isinstance(messages, list):
                bag[field[len(FLASH_PREFIX) :]] = [message for message in messages if isinstance(message, str)]
        return bag

    async def add(self, key: str, message: str) -> None:
        """Append *message* to the list at *key*."""
        if not isinstance(key, str):
            raise TypeError(f"Flash key must be a string, got {type(key).__name__}")
        if not isinstance(message, str):
            raise TypeError(f"Flash messages must be strings, got {type(message).__name__}")
        messages = self.get(key)
        messages.append(message)
        await self._session.set_reserved_many({self._field(key): messages})

    def get(self, key: str) -> list[str]:
        """Peek at the messages for *key* without clearing them."""
        return list(self._bag().get(key, []))

    def all(self) -> dict[str, list[str]]:
        """Peek at every pending message."""
        return {key: messages for key, messages in self._bag().items() if messages}

    def has(self, key: str) -> bool:
        return bool(self._bag().get(key))

    def keys(self) -> list[str]:
        return list(self.all())

    async def consume(self, key: str) -> list[str]:
        """Return the messages for *key* and clear them."""
        messages = self.get(key)
        await self.clear(key)
        return messages

    async def consume_all(self) -> dict[str, list[str]]:
        """Return every pending message and empty the store."""
        messages = self.all()
        await self.clear_all()
        return messages

    async def clear(self, key: str) -> None:
        field = self._field(key)
        if field in self._fields():
            await self._session.remove_reserved(field)

    async def clear_all(self) -> None:
        fields = self._fields()
        if fields:
            await self._session.remove_reserved(*fields)
