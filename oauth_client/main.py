"""
Command-line entry point: authorize accounts and inspect stored tokens.
Usage: python -m oauth_client.main authorize google-photos me@example.com
"""
import argparse
import logging
import sys

from oauth_client.authorize import Authorizer
from oauth_client.errors import ConfigurationError, OAuthError
from oauth_client.providers import get_provider, list_providers
from oauth_client.refresh import TokenManager
from oauth_client.scopes import format_scopes
from oauth_client.token_store import default_token_store

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="oauth_client", description="OAuth2 authorization and token manager")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("providers", help="list known providers")

    p = sub.add_parser("authorize", help="run the browser authorization flow for an account")
    p.add_argument("provider", choices=list_providers())
    p.add_argument("account")
    p.add_argument("--timeout", type=float, default=None, help="seconds to wait for the browser (default from config)")

    for name, help_text in (
        ("token", "print a valid access token, refreshing if needed"),
        ("check", "verify the granted scopes with the provider"),
        ("forget", "remove stored tokens for an account"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("provider", choices=list_providers())
        p.add_argument("account")
    return parser


def _print_providers() -> None:
    for name in list_providers():
        try:
            provider = get_provider(name)
        except ConfigurationError as e:
            print(f"{name}\t(not configured: {e})")
            continue
        print(f"{name}\t{provider.label}\t{format_scopes(provider.required_scopes) or '-'}")


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if args.command == "providers":
        _print_providers()
        return 0

    try:
        provider = get_provider(args.provider)
        store = default_token_store()
        if args.command == "authorize":
            record = Authorizer(store, timeout=args.timeout).authorize(provider, args.account)
            print(f"Authorized {provider.label} account {args.account} (access token valid until {record.expires_at:%Y-%m-%d %H:%M:%S} UTC)")
        elif args.command == "token":
            print(TokenManager(store).get_access_token(provider, args.account))
        elif args.command == "check":
            granted = TokenManager(store).check_authorizations(provider, args.account)
            print(format_scopes(granted) or "(no scope reported)")
        elif args.command == "forget":
            TokenManager(store).forget(provider, args.account)
            print(f"Removed stored tokens for {provider.label} account {args.account}")
    except OAuthError as e:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("cancelled", file=sys.stderr)
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
