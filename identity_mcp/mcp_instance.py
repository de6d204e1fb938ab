"""
MCP server instance and authentication components.

Builds the configured identity provider and the objects the login flow and
bearer middleware share: state store, HTTP client, JWKS cache, verifier,
token exchanger and user repository.
"""

from contextlib import asynccontextmanager
from datetime import timedelta
from typing import AsyncIterator

import httpx
from fastmcp import FastMCP
from loguru import logger

from identity_mcp.auth.id_token import IdTokenVerifier
from identity_mcp.auth.jwks import JwksCache
from identity_mcp.auth.login_flow import LoginFlow
from identity_mcp.auth.providers import build_provider
from identity_mcp.auth.state_store import StateStore
from identity_mcp.auth.token_exchange import TokenExchanger
from identity_mcp.config import settings
from identity_mcp.db import close_database, create_engine, create_session_factory, init_database
from identity_mcp.user_repository import UserRepository

# Validate OAuth configuration at module load
settings.validate_oauth_config()

provider = build_provider(settings)

# Shared client for token, JWKS and userinfo calls (default timeouts)
http_client = httpx.AsyncClient()

engine = create_engine(
    settings.database_url,
    pool_size=settings.database_pool_size,
    max_overflow=settings.database_max_overflow,
    echo=settings.database_echo,
    ssl_verify=settings.database_ssl_verify,
)
user_repository = UserRepository(create_session_factory(engine))

jwks_cache = JwksCache(
    jwks_url=provider.jwks_url,
    http_client=http_client,
    ttl=timedelta(seconds=settings.jwks_cache_ttl_seconds),
)
verifier = IdTokenVerifier(provider=provider, jwks=jwks_cache, http_client=http_client)
token_exchanger = TokenExchanger(provider=provider, http_client=http_client)

login_flow = LoginFlow(
    provider=provider,
    state_store=StateStore(ttl=timedelta(seconds=settings.oauth_state_ttl_seconds)),
    exchanger=token_exchanger,
    verifier=verifier,
    repository=user_repository,
    public_base_url=settings.public_base_url,
)

logger.info(f"✓ Identity provider configured: {provider.name}, issuer={provider.issuer}")


def open_http_client() -> httpx.AsyncClient:
    """
    Return the shared HTTP client, reopening it if a previous run closed it.

    A reopened client is rebound to every component that makes outbound calls.
    """
    global http_client
    if http_client.is_closed:
        http_client = httpx.AsyncClient()
        for component in (jwks_cache, verifier, token_exchanger):
            component.http_client = http_client
        logger.debug("Reopened shared HTTP client")
    return http_client


@asynccontextmanager
async def lifespan(server: FastMCP) -> AsyncIterator[dict]:
    """Open the database and HTTP client on startup; release both on shutdown."""
    client = open_http_client()
    await init_database(engine)
    try:
        yield {}
    finally:
        logger.info("Shutting down: closing HTTP client and database pool")
        await client.aclose()
        await close_database(engine)


mcp = FastMCP(
    name=settings.app_name,
    version=settings.app_version,
    lifespan=lifespan,
)
