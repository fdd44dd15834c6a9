"""Turn-by-turn conversation controller.

Each user message is sent to the entry parser together with the visible
transcript, and the parse result is dispatched on its intent:

- ``save`` / ``update`` merge into the pending draft. A complete draft is
  persisted and cleared; an incomplete one stays pending and the user is
  asked for the missing fields.
- ``query`` abandons any pending draft and looks up the first match.
- ``unknown`` continues a pending draft if there is one, otherwise replies
  with the model's follow-up question.

Provider and storage failures become assistant messages; the conversation
always continues and the draft is never lost to a failed write.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Protocol

from passtalk.ai.client import ProviderError
from passtalk.chat.draft import PendingEntryDraft, merge
from passtalk.chat.session import ChatSession
from passtalk.models import Intent, PayloadType
from passtalk.storage.store import StorageError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from passtalk.models import ChatMessage, EntryPatch, ParseResult
    from passtalk.storage.store import CredentialStore

logger = logging.getLogger(__name__)

NOT_FOUND_TEXT = "没有找到相关条目."
FALLBACK_PROMPT = "我没完全理解，你可以直接说：平台 + 账号 + 密码。"


class ConversationBusyError(Exception):
    """A message was sent while the previous one is still being processed."""


class EntryParser(Protocol):
    async def parse(self, text: str, history: Sequence[ChatMessage]) -> ParseResult: ...


class ConversationOrchestrator:
    """Drives one conversation: transcript, pending draft, persistence."""

    def __init__(
        self,
        parser: EntryParser,
        store: CredentialStore,
        session: ChatSession | None = None,
    ) -> None:
        self._parser = parser
        self._store = store
        self._session = session or ChatSession()
        self._draft: PendingEntryDraft | None = None
        self._lock = asyncio.Lock()
        self._loading = False

    # -- State -----------------------------------------------------------------

    @property
    def messages(self) -> list[ChatMessage]:
        return self._session.history()

    @property
    def draft(self) -> PendingEntryDraft | None:
        return self._draft

    @property
    def is_loading(self) -> bool:
        return self._loading

    @property
    def awaiting_completion(self) -> bool:
        return self._draft is not None

    # -- Entry point -----------------------------------------------------------

    async def send_message(self, text: str) -> list[ChatMessage]:
        """Process one user message. Returns the assistant messages it produced.

        Raises:
            ConversationBusyError: A previous message is still in flight.
        """
        text = text.strip()
        if not text:
            return []
        if self._lock.locked():
            raise ConversationBusyError("A message is already being processed")

        async with self._lock:
            self._loading = True
            try:
                self._session.add_user(text)
                start = len(self._session)
                await self._handle_turn(text)
                return self._session.history()[start:]
            finally:
                self._loading = False

    async def _handle_turn(self, text: str) -> None:
        try:
            parse = await self._parser.parse(text, self._session.history())
        except ProviderError as exc:
            logger.warning("Parse failed (%s): %s", type(exc).__name__, exc)
            self._session.add_assistant(exc.user_message)
            return

        logger.info("Intent %s (draft pending: %s)", parse.intent, self._draft is not None)
        if parse.intent in (Intent.SAVE, Intent.UPDATE):
            await self._advance_draft(parse)
        elif parse.intent == Intent.QUERY:
            if self._draft is not None:
                logger.info("Query abandons pending draft")
            self._draft = None
            await self._answer_query(parse)
        elif self._draft is not None:
            await self._advance_draft(parse)
        else:
            self._session.add_assistant(parse.follow_up_question or FALLBACK_PROMPT)

    # -- Save / update ---------------------------------------------------------

    async def _advance_draft(self, parse: ParseResult) -> None:
        draft = merge(parse, self._draft)
        self._draft = draft

        patch = draft.try_finalize()
        if patch is None:
            question = parse.follow_up_question or draft.follow_up_question()
            self._session.add_assistant(question, PayloadType.FOLLOW_UP)
            return

        try:
            updated = await self._persist(draft, patch)
        except StorageError as exc:
            logger.warning("Keeping draft after failed write: %s", exc)
            self._session.add_assistant(f"保存失败：{exc}。请稍后重试。")
            return

        self._draft = None
        verb = "已更新" if updated else "已记好"
        self._session.add_assistant(f"{verb}。{patch.platform} / {patch.account}", PayloadType.CARD)

    async def _persist(self, draft: PendingEntryDraft, patch: EntryPatch) -> bool:
        """Write *patch*; returns True when an existing entry was updated."""
        if draft.intent == Intent.UPDATE:
            for entry in await self._store.search(patch.platform):
                if (
                    entry.platform.casefold() == patch.platform.casefold()
                    and entry.account == patch.account
                ):
                    if await self._store.update(entry.record_uuid, patch):
                        return True
                    logger.info("Entry %s vanished before update; creating", entry.record_uuid)
                    break
        await self._store.create(patch)
        return False

    # -- Query -----------------------------------------------------------------

    async def _answer_query(self, parse: ParseResult) -> None:
        keyword = parse.query_keyword or parse.platform or ""
        try:
            rows = await self._store.search(keyword)
        except StorageError as exc:
            self._session.add_assistant(f"查询失败：{exc}。请稍后重试。")
            return

        if not rows:
            self._session.add_assistant(NOT_FOUND_TEXT)
            return
        first = rows[0]
        card = f"{first.platform}\n账号: {first.account}\n密码: {first.password}"
        self._session.add_assistant(card, PayloadType.CARD)
