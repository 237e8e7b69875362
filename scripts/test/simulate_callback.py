# scripts/test/simulate_callback.py
"""
Send a Chapa-style callback to the backend, as the gateway would after a payment.
The backend re-verifies every callback with Chapa, so this only applies a
payment that Chapa (test mode) really reports as successful.
"""

import argparse
import requests

BACKEND_URL = "http://127.0.0.1:4000/api/v1/payment/callback"


def simulate_webhook(tx_ref, status, backend_url):
    body = {"data": {"tx_ref": tx_ref, "status": status}}
    resp = requests.post(backend_url, json=body, timeout=10)
    print(f"✅ webhook ({status}) → HTTP {resp.status_code}: {resp.json()}")


def simulate_redirect(tx_ref, status, backend_url):
    resp = requests.get(backend_url, params={"trx_ref": tx_ref, "status": status}, timeout=10)
    print(f"✅ redirect ({status}) → HTTP {resp.status_code}: {resp.json()}")


def simulate_verify(tx_ref, backend_url):
    verify_url = backend_url.replace("/callback", f"/verify/{tx_ref}")
    resp = requests.get(verify_url, timeout=30)
    print(f"🔍 verify → HTTP {resp.status_code}: {resp.json()}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Simulate Chapa payment callbacks")
    parser.add_argument("tx_ref", help="txRef issued by /payment/initialize or /payment/initialize-package")
    parser.add_argument("--status", default="success", help="success | failed | cancelled")
    parser.add_argument("--mode", choices=["webhook", "redirect", "verify"], default="webhook")
    parser.add_argument("--url", default=BACKEND_URL)
    args = parser.parse_args()

    if args.mode == "webhook":
        simulate_webhook(args.tx_ref, args.status, args.url)
    elif args.mode == "redirect":
        simulate_redirect(args.tx_ref, args.status, args.url)
    else:
        simulate_verify(args.tx_ref, args.url)
