import sys
from webhook_server.util import SIGNATURE_ALGORITHMS, signature_header_value

def main(secret: str, body_path: str, algorithm: str = "sha1"):
    if algorithm not in SIGNATURE_ALGORITHMS:
        print(f"Unsupported algorithm {algorithm}, use one of {', '.join(SIGNATURE_ALGORITHMS)}"); raise SystemExit(2)
    body = open(body_path, "rb").read()
    print(signature_header_value(secret, body, algorithm))

if __name__ == "__main__":
    if len(sys.argv) not in (3, 4):
        print("Usage: python tools/sign_payload.py <secret> <body_file> [sha1|sha256]"); raise SystemExit(2)
    main(*sys.argv[1:])
