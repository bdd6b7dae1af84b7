import httpx
import pytest

from companion_core.domain.exceptions import ApiError, MalformedResponseError, NetworkError
from companion_core.providers import ollama_client
from companion_core.providers.ollama_client import OllamaClient, model_matches


TAGS = {"models": [{"name": "phi3:mini"}, {"name": "llama3:8b"}]}


@pytest.mark.asyncio
async def test_probe_reachable(install_client, fake_response):
    install_client({"GET /api/tags": fake_response(payload=TAGS)})
    assert await ollama_client.is_ollama_available("http://localhost:11434") is True


@pytest.mark.asyncio
async def test_probe_unreachable_twice_never_raises(install_client):
    install_client({"GET /api/tags": httpx.ConnectError("connection refused")})
    assert await ollama_client.is_ollama_available("http://localhost:11434") is False
    assert await ollama_client.is_ollama_available("http://localhost:11434") is False


@pytest.mark.asyncio
async def test_probe_server_error_is_unavailable(install_client, fake_response):
    install_client({"GET /api/tags": fake_response(status_code=500)})
    assert await ollama_client.is_ollama_available("http://localhost:11434") is False


@pytest.mark.asyncio
async def test_model_catalog(install_client, fake_response):
    install_client({"GET /api/tags": fake_response(payload=TAGS)})
    assert await ollama_client.list_local_models("http://localhost:11434") == ["phi3:mini", "llama3:8b"]
    assert await ollama_client.is_model_available("http://localhost:11434", "phi3:mini")
    assert await ollama_client.is_model_available("http://localhost:11434", "LLAMA3")
    assert not await ollama_client.is_model_available("http://localhost:11434", "mistral")


@pytest.mark.asyncio
async def test_model_catalog_malformed(install_client, fake_response):
    install_client({"GET /api/tags": fake_response(payload=ValueError("not json"))})
    assert await ollama_client.list_local_models("http://localhost:11434") == []


def test_model_matches():
    assert model_matches("phi3:mini", "phi3")
    assert model_matches("phi3:mini", "PHI3:MINI")
    assert not model_matches("phi3-medium", "phi3")


@pytest.mark.asyncio
async def test_respond_appends_turn(make_settings, install_client, fake_response):
    calls = install_client({
        "POST /api/chat": fake_response(payload={"message": {"role": "assistant", "content": "hello"}, "done": True}),
    })
    client = OllamaClient(make_settings(), directive="S")
    assert await client.respond("hi") == "hello"
    assert [(m.role, m.content) for m in client.history()] == [
        ("system", "S"),
        ("user", "hi"),
        ("assistant", "hello"),
    ]
    payload = calls[0][2]
    assert payload["model"] == "phi3:mini"
    assert payload["stream"] is False
    assert payload["messages"][-1] == {"role": "user", "content": "hi"}


@pytest.mark.asyncio
async def test_respond_failure_becomes_error_text(make_settings, install_client):
    install_client({"POST /api/chat": httpx.ReadTimeout("timed out")})
    client = OllamaClient(make_settings(), directive="S")
    text = await client.respond("hi")
    assert text.startswith("An error occurred:")
    assert client.history_count() == 1


@pytest.mark.asyncio
async def test_respond_empty_prompt_skips_backend(make_settings, install_client):
    calls = install_client({})
    client = OllamaClient(make_settings(), directive="S")
    assert await client.respond("   ") == ""
    assert calls == []
    assert client.history_count() == 1


@pytest.mark.asyncio
async def test_stream_ndjson(make_settings, install_client, fake_response):
    lines = [
        '{"message": {"role": "assistant", "content": "hel"}, "done": false}',
        "",
        '{"message": {"role": "assistant", "content": "lo"}, "done": false}',
        '{"done": true}',
    ]
    install_client({"POST /api/chat": fake_response(lines=lines)})
    client = OllamaClient(make_settings(), directive="S")
    fragments = [f async for f in client.stream("hi")]
    assert fragments == ["hel", "lo"]
    assert client.history()[-1].content == "hello"
    assert client.history()[-2].content == "hi"


@pytest.mark.asyncio
async def test_stream_error_status_raises(make_settings, install_client, fake_response):
    install_client({"POST /api/chat": fake_response(status_code=404, text="model not found")})
    client = OllamaClient(make_settings(), directive="S")
    with pytest.raises(ApiError) as exc:
        [f async for f in client.stream("hi")]
    assert exc.value.http_status == 404
    assert client.history_count() == 1


@pytest.mark.asyncio
async def test_stream_malformed_line_raises(make_settings, install_client, fake_response):
    install_client({"POST /api/chat": fake_response(lines=["not json"])})
    client = OllamaClient(make_settings(), directive="S")
    with pytest.raises(MalformedResponseError):
        [f async for f in client.stream("hi")]


@pytest.mark.asyncio
async def test_stream_network_error(make_settings, install_client):
    install_client({"POST /api/chat": httpx.ConnectError("refused")})
    client = OllamaClient(make_settings(), directive="S")
    with pytest.raises(NetworkError):
        [f async for f in client.stream("hi")]
    assert client.history_count() == 1


@pytest.mark.asyncio
async def test_stream_without_fragments_leaves_history(make_settings, install_client, fake_response):
    install_client({"POST /api/chat": fake_response(lines=['{"message": {"role": "assistant", "content": ""}, "done": true}'])})
    client = OllamaClient(make_settings(), directive="S")
    assert [f async for f in client.stream("hi")] == []
    assert client.history_count() == 1
