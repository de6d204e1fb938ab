"""
MCP tools for basic server interaction.

say_hello and system_status need nothing beyond transport access; whoami
reads the user bound by the bearer middleware.
"""

from typing import Annotated, Optional

from fastmcp.exceptions import ToolError
from loguru import logger
from pydantic import BaseModel, Field

from identity_mcp.config import settings
from identity_mcp.mcp_instance import mcp
from identity_mcp.request_context import get_request_context


class WhoAmI(BaseModel):
    """Authenticated user as seen by the server."""

    id: str
    email: str
    name: Optional[str] = None
    avatar_url: Optional[str] = None


@mcp.tool()
async def say_hello(
    name: Annotated[str, Field(min_length=1, description="Name of the person to greet")],
) -> str:
    """Greet the user politely."""
    return f"👋 Hello {name}! This response comes from {settings.app_name}."


@mcp.tool()
async def system_status() -> str:
    """Report the server status."""
    return f"✅ {settings.app_name} v{settings.app_version} operational."


@mcp.tool()
async def whoami() -> WhoAmI:
    """
    Return the authenticated user for this request.

    Raises:
        ToolError: If the request carries no authenticated context
    """
    context = get_request_context()
    if context is None:
        logger.warning("whoami invoked without authenticated context")
        raise ToolError("Unauthorized")

    user = context.user
    return WhoAmI(id=user.id, email=user.email, name=user.name, avatar_url=user.avatar_url)
