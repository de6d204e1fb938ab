"""Authorization endpoint URL construction."""

from typing import Mapping, Optional, Sequence
from urllib.parse import urlencode


def build_authorize_url(
    authorize_endpoint: str,
    *,
    client_id: str,
    redirect_uri: str,
    scopes: Sequence[str],
    state: str,
    nonce: str,
    audience: Optional[str] = None,
    extra_params: Optional[Mapping[str, str]] = None,
) -> str:
    """
    Build the provider authorize URL for an authorization-code login.

    Pure function: parameters are always emitted in the same order, so equal
    inputs give byte-identical URLs.

    Args:
        authorize_endpoint: Provider authorization endpoint
        client_id: OAuth client id
        redirect_uri: Callback URL registered with the provider
        scopes: Requested scopes, joined with spaces
        state: Correlation token from the state store
        nonce: Value the provider must echo in the ID token
        audience: Optional API audience (Auth0)
        extra_params: Provider-specific parameters (e.g. Google's prompt)

    Returns:
        Absolute authorize URL with a URL-encoded query string
    """
    params = [
        ("client_id", client_id),
        ("redirect_uri", redirect_uri),
        ("response_type", "code"),
        ("scope", " ".join(scopes)),
    ]
    if audience:
        params.append(("audience", audience))
    if extra_params:
        params.extend(extra_params.items())
    params.append(("state", state))
    params.append(("nonce", nonce))

    separator = "&" if "?" in authorize_endpoint else "?"
    return f"{authorize_endpoint}{separator}{urlencode(params)}"
