import pytest

from companion_core.api.service import start_session
from companion_core.domain.models import SessionOutcome
from companion_core.infrastructure.storage.json_store import JsonTranscriptStore
from companion_core.providers import ollama_client
from companion_core.providers.mock_client import MockClient


@pytest.fixture
def offline(monkeypatch):
    async def unreachable(endpoint, timeout=10.0):
        return False

    monkeypatch.setattr(ollama_client, "is_ollama_available", unreachable)


@pytest.mark.asyncio
async def test_start_session_falls_back_to_stand_in(make_settings, offline):
    session, label = await start_session(make_settings())
    assert label == "Mock (Demo)"
    assert isinstance(session.adapter, MockClient)
    assert await session.submit_prompt("hi") is SessionOutcome.COMPLETED
    assert session.response_text == '(mock) Received: "hi"'


@pytest.mark.asyncio
async def test_completed_turns_are_recorded(make_settings, offline, tmp_path):
    store = JsonTranscriptStore(tmp_path / "history")
    session, _ = await start_session(make_settings(save_history=True), store=store)

    await session.submit_prompt_streaming("tell me something")

    conversations = store.list_conversations()
    assert len(conversations) == 1
    assert conversations[0].title == "tell me something"
    assert conversations[0].meta == {"label": "Mock (Demo)"}
    messages = store.list_messages(conversations[0].id)
    assert [m.role for m in messages] == ["user", "assistant"]
    assert messages[1].content == session.response_text


@pytest.mark.asyncio
async def test_default_store_under_storage_root(make_settings, offline, tmp_path):
    settings = make_settings(save_history=True, storage_root=str(tmp_path / "root"))
    session, _ = await start_session(settings)
    await session.submit_prompt("hi")
    assert (tmp_path / "root" / "conversations").is_dir()
    assert len(JsonTranscriptStore(tmp_path / "root").list_conversations()) == 1


@pytest.mark.asyncio
async def test_clear_history_starts_new_transcript(make_settings, offline, tmp_path):
    store = JsonTranscriptStore(tmp_path / "history")
    session, _ = await start_session(make_settings(save_history=True), store=store)

    await session.submit_prompt("first topic")
    session.clear_history()
    await session.submit_prompt("second topic")

    titles = sorted(c.title for c in store.list_conversations())
    assert titles == ["first topic", "second topic"]
    for conv in store.list_conversations():
        assert len(store.list_messages(conv.id)) == 2
