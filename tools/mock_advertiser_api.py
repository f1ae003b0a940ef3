"""
Lightweight mock advertiser endpoint for live forwarding tests.

Endpoints:
- POST /leads            -> verifies X-Signature when MOCK_ADVERTISER_SECRET is set,
                            stores the delivery, returns MOCK_ADVERTISER_STATUS (default 201)
- GET  /_last            -> returns last delivery
- POST /_reset           -> clears stored delivery
- GET  /_health          -> returns 200
"""
import hashlib
import hmac
import json
import os
import time
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Optional


SECRET = os.getenv("MOCK_ADVERTISER_SECRET", "")
RESPONSE_STATUS = int(os.getenv("MOCK_ADVERTISER_STATUS", "201"))
TOLERANCE_SECONDS = 300

LAST_REQUEST: Optional[dict] = None


def signature_valid(timestamp: str, body: str, signature: str) -> bool:
    algorithm, _, digest = (signature or "").partition("=")
    if algorithm != "sha256" or not timestamp or not timestamp.isdigit():
        return False
    if abs(int(time.time()) - int(timestamp)) > TOLERANCE_SECONDS:
        return False
    expected = hmac.new(SECRET.encode("utf-8"), f"{timestamp}:{body}".encode("utf-8"), hashlib.sha256).hexdigest()
    return hmac.compare_digest(digest, expected)


class Handler(BaseHTTPRequestHandler):
    def _send_json(self, status_code: int, payload: dict) -> None:
        body = json.dumps(payload).encode("utf-8")
        self.send_response(status_code)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def do_GET(self):  # noqa: N802
        if self.path == "/_health":
            return self._send_json(200, {"status": "ok"})

        if self.path == "/_last":
            return self._send_json(200, {"last": LAST_REQUEST})

        return self._send_json(404, {"error": "not_found"})

    def do_POST(self):  # noqa: N802
        global LAST_REQUEST

        if self.path == "/_reset":
            LAST_REQUEST = None
            return self._send_json(200, {"status": "reset"})

        if self.path.startswith("/leads"):
            length = int(self.headers.get("Content-Length", "0"))
            raw = self.rfile.read(length).decode("utf-8") if length else ""

            if SECRET and not signature_valid(
                self.headers.get("X-Signature-Timestamp", ""),
                raw,
                self.headers.get("X-Signature", ""),
            ):
                return self._send_json(401, {"error": "invalid_signature"})

            try:
                payload = json.loads(raw) if raw else {}
            except json.JSONDecodeError:
                return self._send_json(400, {"error": "malformed_json"})

            LAST_REQUEST = {
                "path": self.path,
                "headers": {k.lower(): v for k, v in self.headers.items()},
                "payload": payload,
            }
            return self._send_json(RESPONSE_STATUS, {"id": f"mock-{payload.get('az_tx_id', '')}"})

        return self._send_json(404, {"error": "not_found"})

    def log_message(self, format, *args):  # noqa: A003
        return


def main() -> None:
    port = int(os.getenv("MOCK_ADVERTISER_PORT", "8080"))
    server = HTTPServer(("0.0.0.0", port), Handler)
    server.serve_forever()


if __name__ == "__main__":
    main()
