"""
HTTP routes served next to the MCP endpoint.

- GET /auth/login: redirect to the provider
- GET /auth/callback: finish the login and hand the token to the opener window
- GET /.well-known/oauth-protected-resource: RFC 9728 metadata for /mcp
"""

from fastmcp import FastMCP
from starlette.requests import Request
from starlette.responses import HTMLResponse, JSONResponse, RedirectResponse, Response

from identity_mcp.auth.login_flow import LoginFlow
from identity_mcp.auth.middleware import protected_resource_metadata


def register_routes(mcp: FastMCP, login_flow: LoginFlow, *, resource_id: str) -> None:
    """Attach the login and metadata routes to an MCP server."""

    @mcp.custom_route("/auth/login", methods=["GET"])
    async def auth_login(request: Request) -> Response:
        return RedirectResponse(login_flow.start_login(), status_code=302)

    @mcp.custom_route("/auth/callback", methods=["GET"])
    async def auth_callback(request: Request) -> Response:
        result = await login_flow.handle_callback(request.query_params)
        return HTMLResponse(
            result.html,
            status_code=result.status_code,
            headers={"Cache-Control": "no-store"},
        )

    @mcp.custom_route("/.well-known/oauth-protected-resource", methods=["GET"])
    async def oauth_protected_resource(request: Request) -> Response:
        return JSONResponse(
            protected_resource_metadata(resource_id, login_flow.provider.issuer),
            headers={"Cache-Control": "no-store"},
        )
