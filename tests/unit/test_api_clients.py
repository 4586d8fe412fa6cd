import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from api_clients import BaseAPIClient, RateLimitInfo, RetryableResponseError


class DummyClient(BaseAPIClient):

    def _get_auth_headers(self):
        return {'Authorization': f'Bearer {self.api_key}'}


def _response(status, data=None, headers=None):
    response = MagicMock()
    response.status = status
    response.headers = {'content-type': 'application/json', **(headers or {})}
    response.json = AsyncMock(return_value=data if data is not None else {})
    response.text = AsyncMock(return_value="")
    return response


def _session(*responses):
    session = MagicMock()
    session.closed = False
    contexts = []
    for response in responses:
        ctx = MagicMock()
        ctx.__aenter__ = AsyncMock(return_value=response)
        ctx.__aexit__ = AsyncMock(return_value=False)
        contexts.append(ctx)
    session.request.side_effect = contexts
    return session


@pytest.fixture
def client():
    return DummyClient("https://api.example.com/v1/", api_key="key",
                       rate_limit=RateLimitInfo(10.0, 600, 10000), max_concurrency=2)


class TestBaseAPIClient:

    def test_default_headers(self, client):
        headers = client._get_default_headers()
        assert headers['User-Agent'].startswith("EloBoard/")
        assert headers['Authorization'] == "Bearer key"

    @pytest.mark.asyncio
    async def test_success_is_cached(self, client):
        session = _session(_response(200, {'ok': True}))
        client._session = session

        first = await client.get("players/1")
        second = await client.get("players/1")

        assert first.success and first.data == {'ok': True}
        assert second.cached is True
        assert session.request.call_count == 1
        assert session.request.call_args.kwargs['url'] == "https://api.example.com/v1/players/1"

    @pytest.mark.asyncio
    async def test_client_error_is_returned(self, client):
        session = _session(_response(404, {'errors': []}))
        client._session = session

        response = await client.get("players/missing")

        assert response.success is False
        assert response.status_code == 404
        assert session.request.call_count == 1

    @pytest.mark.asyncio
    async def test_server_error_is_retried(self, client):
        session = _session(_response(503), _response(200, {'ok': True}))
        client._session = session

        with patch('utils.asyncio.sleep', AsyncMock()):
            response = await client.get("players/1")

        assert response.data == {'ok': True}
        assert session.request.call_count == 2

    @pytest.mark.asyncio
    async def test_rate_limit_exhausts_retries(self, client):
        session = _session(*[_response(429, headers={'Retry-After': '0'}) for _ in range(3)])
        client._session = session

        with patch('api_clients.asyncio.sleep', AsyncMock()):
            with pytest.raises(RetryableResponseError) as exc_info:
                await client.get("players/1")

        assert exc_info.value.status == 429
        assert session.request.call_count == 3

    @pytest.mark.asyncio
    async def test_close_releases_session(self, client):
        session = _session()
        session.close = AsyncMock()
        client._session = session

        await client.close()

        session.close.assert_awaited_once()
        assert client._session is None
