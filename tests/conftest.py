from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from scratchspace.history import HistoryLog
from scratchspace.kv import MemoryStore
from scratchspace.store import DocumentStore

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


@pytest.fixture
def docs_kv() -> MemoryStore:
    return MemoryStore("scratchpads")


@pytest.fixture
def history_kv() -> MemoryStore:
    return MemoryStore("history")


@pytest.fixture
async def history(history_kv: MemoryStore) -> HistoryLog:
    log = HistoryLog(history_kv)
    await log.init()
    return log


@pytest.fixture
async def store(docs_kv: MemoryStore, history: HistoryLog) -> AsyncIterator[DocumentStore]:
    s = DocumentStore(docs_kv, history, default_language="plaintext", auto_save=False)
    await s.init()
    yield s
    s.dispose()


@pytest.fixture
async def debounced_store(docs_kv: MemoryStore, history: HistoryLog) -> AsyncIterator[DocumentStore]:
    s = DocumentStore(docs_kv, history, auto_save=True, auto_save_delay=0.05)
    await s.init()
    yield s
    s.dispose()
