import pytest
from core.http_client import get_client, close_client

@pytest.mark.asyncio
async def test_http_client_shared_and_shutdown():

    client = get_client()
    assert client is get_client()

    await close_client()

    assert client.is_closed
    assert get_client() is not client
    await close_client()
