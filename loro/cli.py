import argparse
import json
import logging
import os
import sys
import time
from pathlib import Path
from typing import Dict, List, Optional, Union

from . import __version__
from .runtime import AUTH_LEVELS, get_function_key, invoke_function, load_spec, new_context, rotate_function_key, save_spec
from .server import serve as run_server
from .utils import ensure_dirs, log_path


def _parse_query(pairs: List[str]) -> Dict[str, Union[str, List[str]]]:
    query: Dict[str, Union[str, List[str]]] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Invalid --query '{pair}'; expected key=value")
        if key in query:
            prev = query[key]
            query[key] = (prev if isinstance(prev, list) else [prev]) + [value]
        else:
            query[key] = value
    return query


def cmd_invoke(args: argparse.Namespace) -> int:
    try:
        query = _parse_query(args.query or [])
    except ValueError as e:
        print(str(e), file=sys.stderr)
        return 2
    body = args.body or ""
    if args.body_file:
        try:
            body = Path(args.body_file).read_text(encoding="utf-8")
        except OSError as e:
            print(f"Cannot read body file: {e}", file=sys.stderr)
            return 2

    spec = load_spec()
    event = {
        "method": args.method,
        "path": f"/api/{spec.route}",
        "query": query,
        "headers": {},
        "body": body,
    }
    try:
        status, _, out = invoke_function(spec, event, new_context(spec))
    except RuntimeError as e:
        print(str(e), file=sys.stderr)
        return 2
    print(f"HTTP {status}")
    print(json.dumps(json.loads(out.decode()), indent=2))
    return 0


def cmd_keys(args: argparse.Namespace) -> int:
    key = rotate_function_key() if args.rotate else get_function_key()
    if args.rotate:
        print("Rotated function key; clients must use the new value.", file=sys.stderr)
    print(key)
    return 0


def cmd_auth(args: argparse.Namespace) -> int:
    spec = load_spec()
    spec.auth_level = args.level
    save_spec(spec)
    print(f"Authorization level for '{spec.name}' set to {args.level}")
    return 0


def cmd_logs(args: argparse.Namespace) -> int:
    name = load_spec().name
    lp = log_path(name)
    if not lp.exists():
        print(f"No logs for '{name}' yet at {lp}")
        return 0
    if not args.follow:
        print(lp.read_text(encoding="utf-8"))
        return 0
    # tail -f
    with lp.open("r", encoding="utf-8") as f:
        # go to end
        f.seek(0, os.SEEK_END)
        try:
            while True:
                line = f.readline()
                if not line:
                    time.sleep(0.5)
                    continue
                print(line, end="")
        except KeyboardInterrupt:
            return 0


def _set_logging(enabled: bool) -> int:
    spec = load_spec()
    spec.logging = enabled
    save_spec(spec)
    print(f"{'Enabled' if enabled else 'Disabled'} logging for '{spec.name}'")
    return 0


def cmd_enable_logs(_: argparse.Namespace) -> int:
    return _set_logging(True)


def cmd_disable_logs(_: argparse.Namespace) -> int:
    return _set_logging(False)


def cmd_serve(args: argparse.Namespace) -> int:
    if load_spec().auth_level == "function":
        # make sure a key exists before the first request arrives
        get_function_key()
    run_server(host=args.host, port=args.port, quiet=getattr(args, "quiet", False))
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="loro", description="Name/email/age normalizing HTTP function and local host")
    p.add_argument("--version", action="version", version=f"loro {__version__}")
    p.add_argument("-v", "--verbose", action="store_true", help="Log debug output")
    sub = p.add_subparsers(dest="cmd", required=True)

    s = sub.add_parser("serve", help="Run the HTTP server")
    s.add_argument("--host", default="127.0.0.1")
    s.add_argument("--port", type=int, default=7071)
    s.add_argument("--quiet", action="store_true", help="Suppress HTTP access logs")
    s.set_defaults(func=cmd_serve)

    i = sub.add_parser("invoke", help="Invoke the function in-process")
    i.add_argument("--method", type=str.upper, choices=["GET", "POST"], default="GET")
    i.add_argument("--query", "-q", action="append", metavar="KEY=VALUE", help="Query parameter (repeatable)")
    b = i.add_mutually_exclusive_group()
    b.add_argument("--body", help="Raw request body")
    b.add_argument("--body-file", help="Read the request body from a file")
    i.set_defaults(func=cmd_invoke)

    k = sub.add_parser("keys", help="Show the function key")
    k.add_argument("--rotate", action="store_true", help="Generate a new key")
    k.set_defaults(func=cmd_keys)

    a = sub.add_parser("auth", help="Set the authorization level")
    a.add_argument("level", choices=AUTH_LEVELS)
    a.set_defaults(func=cmd_auth)

    g = sub.add_parser("logs", help="Show or follow invocation logs")
    g.add_argument("-f", "--follow", action="store_true")
    g.set_defaults(func=cmd_logs)

    el = sub.add_parser("enable-logs", help="Enable the invocation log")
    el.set_defaults(func=cmd_enable_logs)

    dl = sub.add_parser("disable-logs", help="Disable the invocation log")
    dl.set_defaults(func=cmd_disable_logs)

    return p


def main(argv: Optional[list] = None) -> int:
    ensure_dirs()
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
