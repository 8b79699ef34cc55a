#!/usr/bin/env python3
"""Command-line entry point for the Mercle OAuth demo.

``serve`` runs the installable web demo locally: the page sends the user to
Mercle for Face ID verification, redeems the returned authorization code and
shows the resulting profile.  ``authorize-url`` prints a one-off authorization
URL and ``config`` shows which settings were picked up from ``.env``.

Client credentials are loaded from ``.env`` (``client_id``, ``client_secret``,
``redirect_uri``, ...) and every value can be overridden on the command line.
"""
from __future__ import annotations

import argparse
import logging
import sys
import textwrap
import webbrowser

from .config import DemoConfig, determine_env_file, load_config
from .sequencer import AuthorizationRequest
from .state_guard import StateGuard
from .web import create_app

CLIENT_SECRET_NOTICE = (
    "Note: this demo sends the client secret to the token endpoint from the client itself. "
    "That is acceptable for a local demonstration only; production apps must redeem codes "
    "from a backend that keeps the secret private."
)


def _config_from_args(args: argparse.Namespace) -> DemoConfig:
    defaults: DemoConfig = args.env_defaults
    return defaults.with_overrides(
        client_id=args.client_id,
        client_secret=args.client_secret,
        redirect_uri=args.redirect_uri,
        auth_endpoint=args.auth_endpoint,
        token_endpoint=args.token_endpoint,
        userinfo_endpoint=args.userinfo_endpoint,
        timeout=args.timeout,
    )


def handle_authorize_url(args: argparse.Namespace) -> None:
    config = _config_from_args(args)
    config.require_client()
    store: dict = {}
    request = AuthorizationRequest(
        client_id=config.client_id or "",
        redirect_uri=config.redirect_uri,
        state=StateGuard(store).generate(),
    )
    print("Open this URL in a browser to start Mercle Face ID verification:")
    print(request.to_url(config.auth_endpoint))
    print(
        "\nThe state value is not stored anywhere by this command, so the callback can only "
        "be redeemed by the `serve` demo if the flow was started from its own page."
    )


def handle_config(args: argparse.Namespace) -> None:
    config = _config_from_args(args)
    redacted = config.redacted()
    summary = textwrap.indent(
        "\n".join(
            [
                f"• Client ID present: {'yes' if config.client_id else 'no'}",
                f"• Client secret present: {'yes' if config.client_secret else 'no'}",
                f"• Session secret present: {'yes' if config.session_secret else 'no'}",
                f"• Redirect URI: {redacted['redirect_uri']}",
                f"• Authorization endpoint: {redacted['auth_endpoint']}",
                f"• Token endpoint: {redacted['token_endpoint']}",
                f"• Userinfo endpoint: {redacted['userinfo_endpoint']}",
                f"• Timeout: {redacted['timeout']}s",
            ]
        ),
        "  ",
    )
    print(f"Configuration snapshot ({args.env_file}):\n{summary}")
    if config.client_secret:
        print(f"\n{CLIENT_SECRET_NOTICE}")


def handle_serve(args: argparse.Namespace) -> None:
    config = _config_from_args(args)
    try:
        config.require_client()
    except RuntimeError as exc:
        raise SystemExit(f"{exc} Set them in {args.env_file} or pass --client-id/--redirect-uri.")
    app = create_app(config, debug_console=args.debug_console)
    demo_url = f"http://{args.host}:{args.port}"
    print(
        textwrap.dedent(
            f"""
            Mercle demo running at {demo_url}

            1. Open the URL above in a browser (it must match the registered redirect URI: {config.redirect_uri}).
            2. Click "Verify with Mercle" and complete Face ID verification.
            3. Mercle redirects back here and the demo shows the verified profile.
            """
        ).strip()
    )
    if config.client_secret:
        print(f"\n{CLIENT_SECRET_NOTICE}")
    if args.debug_console:
        print(f"\nDEVELOPMENT ONLY: debug console exposed at {demo_url}/debug")
    if args.open_browser:
        _open_browser(demo_url)
    app.run(host=args.host, port=args.port, use_reloader=False)


def _open_browser(url: str) -> None:
    try:
        webbrowser.open_new_tab(url)
    except webbrowser.Error as exc:  # pragma: no cover - best-effort helper
        print(f"Warning: failed to launch browser: {exc}", file=sys.stderr)


def _add_client_options(parser: argparse.ArgumentParser, defaults: DemoConfig) -> None:
    parser.add_argument(
        "--client-id",
        default=None,
        help=f"OAuth client identifier (default from .env: {'set' if defaults.client_id else 'unset'}).",
    )
    parser.add_argument(
        "--client-secret",
        default=None,
        help="OAuth client secret sent with the token request (demo only).",
    )
    parser.add_argument(
        "--redirect-uri",
        default=None,
        help=f"Registered redirect URI (default: {defaults.redirect_uri}).",
    )
    parser.add_argument("--auth-endpoint", default=None, help=f"Default: {defaults.auth_endpoint}.")
    parser.add_argument("--token-endpoint", default=None, help=f"Default: {defaults.token_endpoint}.")
    parser.add_argument("--userinfo-endpoint", default=None, help=f"Default: {defaults.userinfo_endpoint}.")
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help=f"HTTP timeout in seconds for the token and userinfo calls (default: {defaults.timeout}).",
    )


def build_parser(defaults: DemoConfig, env_file: str) -> argparse.ArgumentParser:
    description = textwrap.dedent(
        """
        Run the Mercle Face ID OAuth demo.

        Typical flow:
          1. Put client_id, client_secret and redirect_uri in .env.
          2. Run `serve` and open the printed URL.
          3. Click "Verify with Mercle" and complete verification.
        """
    ).strip()
    parser = argparse.ArgumentParser(
        prog="mercle-demo",
        description=description,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.set_defaults(env_defaults=defaults)
    parser.add_argument(
        "--env-file",
        "-e",
        default=env_file,
        help="Path to the .env file containing client settings (default: %(default)s).",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        help="Logging verbosity (default: %(default)s).",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the installable web demo.")
    _add_client_options(serve, defaults)
    serve.add_argument("--host", default="127.0.0.1", help="Bind address (default: %(default)s).")
    serve.add_argument("--port", type=int, default=8000, help="Port (default: %(default)s).")
    serve.add_argument(
        "--debug-console",
        action="store_true",
        help="DEVELOPMENT ONLY: expose /debug with the configuration and stored tokens.",
    )
    serve.add_argument(
        "--open-browser",
        action="store_true",
        help="Open the demo page in a browser once the server starts.",
    )
    serve.set_defaults(func=handle_serve)

    authorize = subparsers.add_parser(
        "authorize-url", help="Print a fresh authorization URL with a random state."
    )
    _add_client_options(authorize, defaults)
    authorize.set_defaults(func=handle_authorize_url)

    config = subparsers.add_parser("config", help="Show the configuration picked up from .env.")
    _add_client_options(config, defaults)
    config.set_defaults(func=handle_config)

    return parser


def main(argv: list[str] | None = None) -> None:
    if argv is None:
        argv = sys.argv[1:]
    env_file = determine_env_file(argv)
    try:
        defaults = load_config(env_file)
    except RuntimeError as exc:
        raise SystemExit(f"{env_file}: {exc}") from exc
    parser = build_parser(defaults, env_file)
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        args.func(args)
    except RuntimeError as exc:
        parser.exit(status=1, message=f"{exc}\n")


if __name__ == "__main__":
    main()
