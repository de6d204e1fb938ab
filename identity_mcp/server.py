"""
Identity MCP Server with OAuth2/OIDC login.

Main ASGI application: MCP over Streamable HTTP at /mcp behind bearer
authentication, plus the browser login routes.
"""

from starlette.middleware import Middleware
from loguru import logger
import sys

from identity_mcp.config import settings

# Configure logging
logger.remove()  # Remove default handler
logger.add(
    sys.stdout,
    format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>",
    level=settings.log_level,
    colorize=True,
)

logger.info(f"🚀 {settings.app_name} v{settings.app_version}")
logger.info(f"✓ Identity provider: {settings.oauth_provider}")
logger.info(f"✓ Public URL: {settings.public_base_url}")
logger.info(f"✓ OAuth redirect URI: {settings.oauth_redirect_uri}")
logger.info(f"✓ OAuth protected resource metadata: {settings.resource_metadata_url}")

# Import MCP server instance and auth components (created in mcp_instance.py)
from identity_mcp.mcp_instance import login_flow, mcp, user_repository, verifier  # noqa: E402
from identity_mcp.auth.middleware import BearerAuthMiddleware  # noqa: E402
from identity_mcp.routes import register_routes  # noqa: E402

# Import tools to register them with the server
from identity_mcp.tools import system  # noqa: F401, E402

register_routes(mcp, login_flow, resource_id=settings.resource_id)

# Stateless mode runs each MCP message inside the request's own task, so the
# RequestContext bound by BearerAuthMiddleware is visible to tool handlers.
app = mcp.http_app(
    path="/mcp",
    middleware=[
        Middleware(
            BearerAuthMiddleware,
            verifier=verifier,
            repository=user_repository,
            resource_metadata_url=settings.resource_metadata_url,
        )
    ],
    json_response=True,
    stateless_http=True,
)


if __name__ == "__main__":
    import asyncio
    import signal
    import uvicorn

    logger.info(f"🌐 Starting Uvicorn on {settings.host}:{settings.port} (path=/mcp)")
    logger.info(f"✓ MCP endpoint: {settings.public_base_url.rstrip('/')}/mcp")
    logger.info(f"✓ Graceful shutdown timeout: {settings.shutdown_timeout_seconds}s")

    async def serve() -> None:
        """Run uvicorn with explicit signal handling for graceful shutdown."""
        config = uvicorn.Config(
            app,
            host=settings.host,
            port=settings.port,
            log_level=settings.log_level.lower(),
            access_log=settings.uvicorn_access_log,
            timeout_graceful_shutdown=settings.shutdown_timeout_seconds,
        )
        server = uvicorn.Server(config)

        loop = asyncio.get_running_loop()

        def handle_exit(sig: int, *_: object) -> None:
            """Stop accepting connections; in-flight requests may finish."""
            logger.info(f"Received signal {sig}, initiating graceful shutdown")
            server.should_exit = True

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, handle_exit, sig)
            except NotImplementedError:
                # Non-POSIX platforms
                pass

        await server.serve()

    asyncio.run(serve())
