"""
Print a signed access token for a directory user, for pasting into an API console
without going through the browser flow.

Usage: python -m mock_idp.generate_token [--email jane.smith@contoso.com] [--hours 24]
"""
import argparse

from mock_idp.config import DEFAULT_CLIENT_ID, DEFAULT_SCOPE
from mock_idp.directory import resolve_user
from mock_idp.tokens import build_access_token


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Generate a mock access token for testing.")
    parser.add_argument("--email", default="demo-user@contoso.com", help="User to issue the token for")
    parser.add_argument("--client-id", default=DEFAULT_CLIENT_ID, help="Audience / app id claim")
    parser.add_argument("--scope", default=DEFAULT_SCOPE, help="Space-separated scopes")
    parser.add_argument("--hours", type=int, default=24, help="Token lifetime in hours")
    return parser


def main(argv: list[str] | None = None) -> str:
    args = build_parser().parse_args(argv)
    user = resolve_user(args.email)
    token = build_access_token(user, args.client_id, args.scope, expires_in=args.hours * 3600)

    print("\n=== Access token ===\n")
    print(token)
    print(f"\nIssued for {user.name} <{user.email}> roles={','.join(user.roles)}")
    print("Send it as 'Authorization: Bearer <token>' or paste it into the API console's Authorize dialog.")
    print(f"Token expires in {args.hours} hours. Run this script again to get a new token.\n")
    return token


if __name__ == "__main__":
    main()
