"""GraphQL API client and credential provider.

The VIP API is a plain GraphQL-over-HTTP endpoint, so we talk to it with
httpx directly: POST {query, variables}, read back {data, errors}.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import httpx
from loguru import logger

from vipcli.config import Config


class APIError(Exception):
    """Transport or protocol failure talking to the API (not a GraphQL error)."""


class NotAuthenticatedError(APIError):
    """No credential is available for the API."""


class GraphQLError(APIError):
    """The API answered with a structured error list.

    Each entry is a GraphQL error object; `messages` extracts what the
    user should see, one line per error.
    """

    def __init__(self, errors: list[dict[str, Any]]):
        self.errors = errors
        super().__init__("; ".join(self.messages))

    @property
    def messages(self) -> list[str]:
        return [str(e.get("message", e)) for e in self.errors]


@dataclass(slots=True)
class Token:
    raw: str

    @classmethod
    async def get(cls, config: Config) -> Token:
        if not config.token:
            raise NotAuthenticatedError(
                "You are not logged in. Set VIP_TOKEN (or add it to .env.vip) and try again."
            )

        return cls(config.token)


@dataclass(slots=True)
class API:
    config: Config
    timeout: float = 30.0

    # created on first use so constructing an API never touches the network
    client: httpx.AsyncClient | None = field(default=None, repr=False)

    async def token(self) -> Token:
        return await Token.get(self.config)

    async def _client(self) -> httpx.AsyncClient:
        if not self.client:
            token = await self.token()
            self.client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={
                    "Authorization": f"Bearer {token.raw}",
                    "Accept": "application/json",
                    "User-Agent": "vipcli",
                },
            )

        return self.client

    async def request(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        client = await self._client()

        try:
            got = await client.post(
                self.config.graphqlUrl, json=dict(query=query, variables=variables or {})
            )
        except httpx.HTTPError as e:
            raise APIError(f"Request to {self.config.graphqlUrl} failed: {e}") from e

        try:
            body = got.json()
        except ValueError as e:
            raise APIError(f"Unexpected API response (HTTP {got.status_code})") from e

        # GraphQL servers return errors with 200 _and_ with 4xx depending on mood
        if errors := body.get("errors"):
            raise GraphQLError(errors)

        if got.status_code >= 400:
            raise APIError(f"API request failed with HTTP {got.status_code}")

        logger.trace("API response: {} keys", len(body.get("data") or {}))
        return body.get("data") or {}

    async def query(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        return await self.request(query, variables)

    async def mutate(self, mutation: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        return await self.request(mutation, variables)

    async def close(self) -> None:
        if self.client:
            await self.client.aclose()
            self.client = None
