"""
Authorization endpoint and mock login flow.
GET /authorize: render the two-step sign-in page (email, then an ignored password).
POST /authorize: resolve the user, issue an authorization code, redirect to redirect_uri.
Both are also served under /{tenant}/v2.0/authorize.
"""
import html
import logging
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from mock_idp.config import CODE_TTL_SECONDS, DEFAULT_CLIENT_ID, DEFAULT_SCOPE
from mock_idp.directory import resolve_user
from mock_idp.errors import invalid_request, unsupported_response_type
from mock_idp.ids import generate_secret
from mock_idp.store import AuthorizationCodeGrant, CredentialStore, get_credential_store

logger = logging.getLogger(__name__)
router = APIRouter()

# Parameters echoed from the authorize query into the login form
_FORWARDED_PARAMS = (
    "client_id",
    "redirect_uri",
    "scope",
    "state",
    "nonce",
    "code_challenge",
    "code_challenge_method",
)


def _is_absolute_url(url: str) -> bool:
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    return bool(parts.scheme and parts.netloc)


def _append_query(url: str, params: dict[str, str]) -> str:
    """Add params to url, keeping any query string it already has."""
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query.extend(params.items())
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


def _render_login(action: str, params: dict[str, str | None], login_hint: str | None) -> str:
    def e(s: str | None) -> str:
        return html.escape(s or "")

    hidden = "\n".join(
        f'    <input type="hidden" name="{name}" value="{e(params.get(name))}"/>' for name in _FORWARDED_PARAMS
    )
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>Sign in to your account</title>
  <style>
    body {{ font-family: 'Segoe UI', system-ui, sans-serif; background: #f2f2f2; display: flex; justify-content: center; padding-top: 10vh; }}
    .card {{ background: #fff; padding: 2.5rem; width: 22rem; box-shadow: 0 2px 6px rgba(0,0,0,0.2); }}
    input[type=email], input[type=password] {{ width: 100%; padding: 0.5rem 0; border: none; border-bottom: 1px solid #666; margin: 1rem 0; font-size: 1rem; }}
    button {{ background: #0067b8; color: #fff; border: none; padding: 0.5rem 2rem; float: right; cursor: pointer; }}
    .hidden {{ display: none; }}
    .note {{ clear: both; padding-top: 1.5rem; color: #666; font-size: 0.8rem; }}
  </style>
</head>
<body>
  <div class="card">
  <form method="post" action="{e(action)}" id="login">
{hidden}
    <div id="step-email">
      <h2>Sign in</h2>
      <input type="email" name="email" id="email" placeholder="Email, phone, or Skype" value="{e(login_hint)}" required/>
      <button type="button" id="next">Next</button>
    </div>
    <div id="step-password" class="hidden">
      <h2>Enter password</h2>
      <p id="who"></p>
      <input type="password" name="password" id="password" placeholder="Password"/>
      <button type="submit">Sign in</button>
    </div>
  </form>
  <p class="note">Mock identity provider for development. Any password is accepted.</p>
  </div>
  <script>
    document.getElementById("next").addEventListener("click", function () {{
      var email = document.getElementById("email");
      if (!email.reportValidity()) return;
      document.getElementById("who").textContent = email.value;
      document.getElementById("step-email").classList.add("hidden");
      document.getElementById("step-password").classList.remove("hidden");
      document.getElementById("password").focus();
    }});
  </script>
</body>
</html>"""


@router.get("/authorize", response_class=HTMLResponse)
@router.get("/{tenant}/v2.0/authorize", response_class=HTMLResponse)
def authorize_get(
    request: Request,
    response_type: str | None = None,
    client_id: str | None = None,
    redirect_uri: str | None = None,
    scope: str | None = None,
    state: str | None = None,
    nonce: str | None = None,
    login_hint: str | None = None,
    code_challenge: str | None = None,
    code_challenge_method: str | None = None,
):
    """
    OAuth2 authorization endpoint (GET). Nothing is stored; the page posts every
    parameter back to this path so the POST is self-contained.
    """
    if response_type is not None and response_type != "code":
        raise unsupported_response_type(response_type)

    params = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "scope": scope,
        "state": state,
        "nonce": nonce,
        "code_challenge": code_challenge,
        "code_challenge_method": code_challenge_method,
    }
    return HTMLResponse(_render_login(request.url.path, params, login_hint))


@router.post("/authorize")
@router.post("/{tenant}/v2.0/authorize")
def authorize_post(
    client_id: str | None = Form(None),
    redirect_uri: str | None = Form(None),
    scope: str | None = Form(None),
    state: str | None = Form(None),
    nonce: str | None = Form(None),
    email: str | None = Form(None),
    password: str | None = Form(None),
    code_challenge: str | None = Form(None),
    code_challenge_method: str | None = Form(None),
    store: CredentialStore = Depends(get_credential_store),
):
    """
    Process the sign-in form (password ignored). Issue a short-lived code bound to the
    user, scope, nonce and PKCE challenge; redirect to redirect_uri?code=...&state=...
    """
    if not redirect_uri:
        raise invalid_request("The request body must contain the following parameter: 'redirect_uri'.")
    if not _is_absolute_url(redirect_uri):
        raise invalid_request("The provided value for the input parameter 'redirect_uri' is not a valid URL.")
    if not email or not email.strip():
        raise invalid_request("The request body must contain the following parameter: 'email'.")

    user = resolve_user(email)
    client_id = client_id or DEFAULT_CLIENT_ID
    code = generate_secret(32)
    store.add_code(
        AuthorizationCodeGrant(
            code=code,
            client_id=client_id,
            redirect_uri=redirect_uri,
            scope=scope or DEFAULT_SCOPE,
            user_id=user.sub,
            email=user.email,
            display_name=user.name,
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=CODE_TTL_SECONDS),
            code_challenge=code_challenge or None,
            code_challenge_method=(code_challenge_method or "plain") if code_challenge else None,
            nonce=nonce or None,
        )
    )
    logger.info("Authorization code issued for client_id=%s sub=%s", client_id, user.sub)

    params = {"code": code}
    if state:
        params["state"] = state
    return RedirectResponse(url=_append_query(redirect_uri, params), status_code=302)
