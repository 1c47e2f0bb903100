"""CLI for livesync - live Markdown preview with synchronized scrolling."""

import argparse
import json
import logging
import platform
import sys
import webbrowser
from pathlib import Path
from typing import Any
from urllib.parse import urlencode

from . import __version__
from .core.annotator import annotate
from .errors import LiveSyncError
from .locate import cmd_locate
from .logging_utils import configure_logger, log_event
from .runtime import build_runtime


def cmd_annotate(args: argparse.Namespace, rt: Any) -> int:
    """Print the annotated HTML of a document, or its blocks as JSON."""
    path = Path(args.file)
    if not path.exists():
        print(f"File {path} not found", file=sys.stderr)
        return 1

    document = annotate(path.read_text(encoding="utf-8"))

    if args.json or args.annotate_json:
        output = {
            "path": str(path.absolute()),
            "line_offset": document.line_offset,
            "blocks": [block.to_dict() for block in document.blocks],
        }
        print(json.dumps(output, indent=2))
    else:
        print(document.html, end="")

    return 0


def cmd_config(args: argparse.Namespace, rt: Any) -> int:
    """Print effective configuration."""
    print(json.dumps(rt.config.to_dict(), indent=2))
    return 0


def preview_url(host: str, port: int, path: Path, token: str | None) -> str:
    params = {"path": str(path)}
    if token:
        params["token"] = token
    return f"http://{host}:{port}/preview?{urlencode(params)}"


def open_preview(url: str, browser: str | None = None) -> None:
    """Open ``url`` in the named browser, or the system default."""
    try:
        webbrowser.get(browser or None).open(url)
    except webbrowser.Error as e:
        log_event("browser_open_failed", level=logging.WARNING, browser=browser, error=str(e))


def cmd_serve(args: argparse.Namespace, rt: Any) -> int:
    """Start the preview server for the given documents."""
    import uvicorn

    from .api.app import create_app, generate_token

    # Determine token
    token_arg = getattr(args, 'token', 'auto')
    token = None

    if token_arg == 'auto':
        token = generate_token()
        if not args.quiet:
            print(f"Generated bearer token: {token}")
    elif token_arg == 'none':
        if not args.quiet:
            print("Warning: Running without authentication. Only use in trusted environments.")
        token = None
    else:
        token = token_arg

    # CLI flags override the [server] and [preview] sections
    host = args.host or rt.config.server.host
    port = args.port if args.port is not None else rt.config.server.port
    open_browser = args.open if args.open is not None else rt.config.preview.open_browser

    urls = [preview_url(host, port, path, token) for path in rt.sessions.paths()]

    def open_all() -> None:
        for url in urls:
            open_preview(url, rt.config.preview.browser)

    enable_cors = getattr(args, 'cors', False)
    app = create_app(
        rt, token=token, enable_cors=enable_cors, watch=not args.no_watch,
        on_ready=open_all if open_browser else None,
    )

    if not args.quiet:
        print(f"Starting server on http://{host}:{port}")
        for url in urls:
            print(f"Preview: {url}")

    uvicorn.run(app, host=host, port=port, log_level="warning" if args.quiet else "info")

    return 0


def version_string() -> str:
    return (
        f"livesync {__version__} "
        f"(python {platform.python_version()}, platform {platform.system().lower()})"
    )


def main() -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="livesync", description="Live Markdown preview with synchronized scrolling"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to config file (default: search cwd/livesync.toml, document dir)",
    )
    parser.add_argument(
        "-q", "--quiet", action="store_true", help="Minimize output"
    )
    parser.add_argument(
        "--json", action="store_true", help="Machine-readable output"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Log sync decisions (debug level)"
    )
    parser.add_argument(
        "--version", action="version", version=version_string()
    )

    subparsers = parser.add_subparsers(dest="cmd", required=True)

    # annotate command
    parser_annotate = subparsers.add_parser(
        "annotate", help="Render a document with block ids and source lines"
    )
    parser_annotate.add_argument("file", help="Markdown file")
    parser_annotate.add_argument(
        "--json", dest="annotate_json", action="store_true",
        help="Print the block table instead of HTML"
    )

    # locate command
    parser_locate = subparsers.add_parser("locate", help="Find the block showing a source line")
    parser_locate.add_argument("file", help="Markdown file")
    parser_locate.add_argument("line", type=int, help="1-based source line")
    parser_locate.add_argument(
        "--format", choices=["json", "tsv"], default="json",
        help="Output format (default: json)"
    )

    # serve command
    parser_serve = subparsers.add_parser("serve", help="Serve live previews of documents")
    parser_serve.add_argument("files", nargs="+", type=Path, help="Markdown files to preview")
    parser_serve.add_argument(
        "--host", default=None,
        help="Host to bind to (default: [server] host, 127.0.0.1)"
    )
    parser_serve.add_argument(
        "--port", type=int, default=None,
        help="Port to bind to (default: [server] port, 8765)"
    )
    parser_serve.add_argument(
        "--token", default="auto",
        help="Bearer token (auto|<string>|none, default: auto)"
    )
    parser_serve.add_argument(
        "--cors", action="store_true",
        help="Enable CORS (default: false)"
    )
    parser_serve.add_argument(
        "--no-watch", action="store_true",
        help="Do not re-render when files change on disk"
    )
    parser_serve.add_argument(
        "--open", action=argparse.BooleanOptionalAction, default=None,
        help="Open each preview in a browser (default: [preview] open_browser)"
    )

    # config command
    subparsers.add_parser("config", help="Print effective configuration as JSON")

    args = parser.parse_args()

    if args.verbose:
        configure_logger(logging.DEBUG)
    elif args.quiet:
        configure_logger(logging.WARNING)
    else:
        configure_logger(logging.INFO)

    # Build runtime
    try:
        rt = build_runtime(
            documents=getattr(args, "files", ()),
            config_path=args.config,
        )
    except LiveSyncError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    # Dispatch to command handlers
    handlers = {
        "annotate": cmd_annotate,
        "locate": cmd_locate,
        "serve": cmd_serve,
        "config": cmd_config,
    }
    handler = handlers.get(args.cmd)

    if handler:
        try:
            exit_code = handler(args, rt)
            sys.exit(exit_code)
        except Exception as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
    else:
        print(f"Unknown command: {args.cmd}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
