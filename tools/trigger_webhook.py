import base64, json, os, sys
import requests
from webhook_server.util import signature_header_value

BASE = os.environ.get("WEBHOOK_URL", "http://127.0.0.1:8000")
SECRET = os.environ.get("WEBHOOK_SECRET")
USER = os.environ.get("WEBHOOK_USER")
PASSWORD = os.environ.get("WEBHOOK_PASSWORD")

def main(name: str, pairs):
    parameters = dict(p.split("=", 1) for p in pairs)
    # The signature covers these exact bytes, so they are sent with data= rather than json=
    body = json.dumps({"parameters": parameters}).encode("utf-8")
    headers = {"Content-Type": "application/json"}
    if SECRET:
        headers["Signature"] = signature_header_value(SECRET, body)
    if USER and PASSWORD:
        headers["Authorization"] = "Basic " + base64.b64encode(f"{USER}:{PASSWORD}".encode("utf-8")).decode("ascii")
    resp = requests.post(f"{BASE}/{name}", data=body, headers=headers)
    print("Response:", resp.status_code, resp.text)

if __name__ == "__main__":
    if len(sys.argv) < 2 or any("=" not in p for p in sys.argv[2:]):
        print("Usage: python tools/trigger_webhook.py <webhook> [key=value ...]"); raise SystemExit(2)
    main(sys.argv[1], sys.argv[2:])
