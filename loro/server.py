from http.server import BaseHTTPRequestHandler, HTTPServer
from urllib.parse import urlparse, parse_qs
from typing import Dict, Any, Optional

from . import __version__
from .runtime import TriggerSpec, load_spec, check_key, invoke_function, new_context, write_log


KEY_HEADER = "x-functions-key"
KEY_PARAM = "code"


class LoroHandler(BaseHTTPRequestHandler):
    server_version = f"loro/{__version__}"

    def log_message(self, format: str, *args) -> None:
        # Suppress access logs when server.quiet is True
        if getattr(self.server, "quiet", False):  # type: ignore[attr-defined]
            return
        return super().log_message(format, *args)

    def _read_body(self) -> bytes:
        length = int(self.headers.get("Content-Length") or 0)
        if length < 0:
            raise ValueError(f"negative Content-Length: {length}")
        if length:
            return self.rfile.read(length)
        return b""

    def _send(self, status: int, headers: Dict[str, str], body: bytes):
        self.send_response(status)
        for k, v in headers.items():
            self.send_header(k, v)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        if body:
            self.wfile.write(body)

    def _supplied_key(self, query: Dict[str, Any]) -> Optional[str]:
        key = self.headers.get(KEY_HEADER)
        if key:
            return key
        code = query.get(KEY_PARAM)
        if isinstance(code, list):
            return code[0]
        return code

    def _handle(self):
        spec: TriggerSpec = self.server.spec  # type: ignore[attr-defined]
        parsed = urlparse(self.path)
        parts = [p for p in parsed.path.split("/") if p]
        if len(parts) != 2 or parts[0] != "api" or parts[1].lower() != spec.route.lower():
            self._send(404, {"Content-Type": "text/plain"}, b"Not Found")
            return
        if self.command not in spec.methods:
            self._send(405, {"Content-Type": "text/plain", "Allow": ", ".join(spec.methods)}, b"Method Not Allowed")
            return

        query = {
            k: v if len(v) > 1 else v[0]
            for k, v in parse_qs(parsed.query, keep_blank_values=True).items()
        }
        if not check_key(spec, self._supplied_key(query)):
            self._send(401, {"Content-Type": "text/plain"}, b"Unauthorized")
            return

        try:
            body_bytes = self._read_body()
        except ValueError:
            self._send(400, {"Content-Type": "text/plain"}, b"Bad Request: invalid Content-Length")
            return
        headers = {k: v for k, v in self.headers.items() if k.lower() != KEY_HEADER}
        event: Dict[str, Any] = {
            "method": self.command,
            "path": parsed.path,
            "query": query,
            "headers": headers,
            "body": body_bytes.decode(errors="replace"),
        }
        context = new_context(spec)

        try:
            status, out_headers, out_body = invoke_function(spec, event, context)
        except Exception as e:
            status, out_headers, out_body = 500, {"Content-Type": "text/plain"}, f"Error: {e}".encode()

        if spec.logging:
            logged_query = {k: ("***" if k == KEY_PARAM else v) for k, v in query.items()}
            try:
                write_log(spec.name, {
                    "invocationId": context["invocationId"],
                    "request": {**event, "query": logged_query},
                    "response": {
                        "status": status,
                        "headers": out_headers,
                        "bodyPreview": out_body[:256].decode(errors="ignore"),
                    },
                })
            except OSError as e:
                self.log_error("could not write invocation log: %s", e)

        self._send(status, out_headers, out_body)

    def do_GET(self):
        self._handle()

    def do_POST(self):
        self._handle()


def make_server(host: str = "127.0.0.1", port: int = 7071, quiet: bool = False, spec: Optional[TriggerSpec] = None) -> HTTPServer:
    httpd = HTTPServer((host, port), LoroHandler)
    # Attach the trigger and a flag the handler reads for access logging
    setattr(httpd, "spec", spec or load_spec())
    setattr(httpd, "quiet", bool(quiet))
    return httpd


def serve(host: str = "127.0.0.1", port: int = 7071, quiet: bool = False):
    httpd = make_server(host, port, quiet)
    spec = httpd.spec  # type: ignore[attr-defined]
    print(f"loro server listening on http://{host}:{port}/api/{spec.route} (auth: {spec.auth_level})")
    try:
        httpd.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        httpd.server_close()
