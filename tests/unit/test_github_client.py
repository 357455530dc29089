import json

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from otto.config import Settings
from otto.core import GitHubException
from otto.infrastructure.github import GitHubClient


@pytest.fixture(scope="module")
def private_key_pem():
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


def make_client(handler, **overrides):
    config = Settings(_env_file=None, **overrides)
    http_client = httpx.AsyncClient(
        base_url="https://api.github.test",
        transport=httpx.MockTransport(handler),
    )
    return GitHubClient(config=config, http_client=http_client)


@pytest.mark.asyncio
async def test_post_comment_without_credentials():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(201, json={"id": 1})

    client = make_client(handler)
    await client.post_comment("acme/repo", 42, "hello")
    await client.close()

    assert not client.has_app_credentials
    assert requests[0].url.path == "/repos/acme/repo/issues/42/comments"
    assert json.loads(requests[0].content) == {"body": "hello"}
    assert "authorization" not in requests[0].headers


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code", [200, 404, 500])
async def test_post_comment_requires_201(status_code):
    client = make_client(lambda request: httpx.Response(status_code))

    with pytest.raises(GitHubException) as exc_info:
        await client.post_comment("acme/repo", 42, "hello")

    assert exc_info.value.details["status_code"] == status_code


@pytest.mark.asyncio
async def test_transport_error_becomes_github_exception():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    client = make_client(handler)

    with pytest.raises(GitHubException):
        await client.post_comment("acme/repo", 42, "hello")


@pytest.mark.asyncio
async def test_installation_token_is_cached(private_key_pem):
    token_requests = []
    comment_auth = []

    def handler(request):
        if request.url.path == "/app/installations/99/access_tokens":
            token_requests.append(request)
            return httpx.Response(201, json={"token": "inst-token", "expires_at": "2999-01-01T00:00:00Z"})
        comment_auth.append(request.headers["authorization"])
        return httpx.Response(201, json={"id": 1})

    client = make_client(
        handler,
        github_app_id=7,
        github_installation_id=99,
        github_private_key=private_key_pem,
    )
    await client.post_comment("acme/repo", 1, "one")
    await client.post_comment("acme/repo", 2, "two")

    assert len(token_requests) == 1
    assert comment_auth == ["token inst-token", "token inst-token"]

    app_jwt = token_requests[0].headers["authorization"].removeprefix("Bearer ")
    claims = jwt.decode(app_jwt, options={"verify_signature": False})
    assert claims["iss"] == "7"


@pytest.mark.asyncio
async def test_rejected_installation_token(private_key_pem):
    client = make_client(
        lambda request: httpx.Response(401),
        github_app_id=7,
        github_installation_id=99,
        github_private_key=private_key_pem,
    )

    with pytest.raises(GitHubException):
        await client.post_comment("acme/repo", 1, "one")
    assert await client.verify_credentials() is False
