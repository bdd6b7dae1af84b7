import pytest

from companion_core.config.settings import load_settings


_ENV_KEYS = (
    "OPENAI_API_KEY",
    "PREFER_LOCAL",
    "LOCAL_ENABLED",
    "LOCAL_PROVIDER",
    "LOCAL_ENDPOINT",
    "LOCAL_MODEL",
    "COMPANION_CONFIG_FILE",
)


@pytest.fixture
def make_settings(monkeypatch, tmp_path):
    """在干净的工作目录与环境变量下构造配置，延迟全部置零。"""

    monkeypatch.chdir(tmp_path)
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)

    def _make(**overrides):
        values = {
            "openai_api_key": None,
            "listening_delay": 0.0,
            "settling_delay": 0.0,
            "mock_response_delay": 0.0,
            "mock_fragment_delay": 0.0,
            "probe_timeout": 1.0,
            "catalog_timeout": 1.0,
            "http_timeout": 1.0,
            "log_to_file": False,
            "save_history": False,
            "storage_root": str(tmp_path / ".storage"),
        }
        values.update(overrides)
        return load_settings(**values)

    return _make


class FakeResponse:
    def __init__(self, status_code=200, payload=None, lines=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self._lines = list(lines or [])
        self.text = text

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload

    async def aiter_lines(self):
        for line in self._lines:
            yield line

    async def aread(self):
        return self.text.encode("utf-8")


class StreamContext:
    def __init__(self, response):
        self._response = response

    async def __aenter__(self):
        return self._response

    async def __aexit__(self, *args):
        return False


@pytest.fixture
def install_client(monkeypatch):
    """用假的 httpx.AsyncClient 替换真实网络。

    routes: {"GET /api/tags": FakeResponse 或 Exception, ...}
    返回 calls 列表，记录 (method, url, json)。
    """

    def _install(routes):
        calls = []

        def _lookup(method, url):
            for key, value in routes.items():
                m, suffix = key.split(" ", 1)
                if m == method and url.endswith(suffix):
                    return value
            raise AssertionError(f"unexpected request {method} {url}")

        def _resolve(method, url):
            value = _lookup(method, url)
            if isinstance(value, Exception):
                raise value
            return value

        class Client:
            def __init__(self, *a, **kw):
                pass

            async def __aenter__(self):
                return self

            async def __aexit__(self, *a):
                return False

            async def get(self, url, **kw):
                calls.append(("GET", url, None))
                return _resolve("GET", url)

            async def post(self, url, json=None, **kw):
                calls.append(("POST", url, json))
                return _resolve("POST", url)

            def stream(self, method, url, json=None, **kw):
                calls.append(("STREAM", url, json))
                return StreamContext(_resolve(method, url))

        monkeypatch.setattr("httpx.AsyncClient", Client)
        return calls

    return _install


@pytest.fixture
def fake_response():
    return FakeResponse
