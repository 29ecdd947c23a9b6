# Purpose: Command-line client for onboarding_server.py.

import argparse
import requests
import json
import os

from onboarding_server import issue_agent_token, PAYMENT_SCHEMES, ACCOUNT_TYPES
from qr_parser import load_payload

PORT = 5020
HOST = "127.0.0.1"
BASE_URL = f"http://{HOST}:{PORT}"


def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}


def print_response(response):
    print(f"ONBOARDING_CLIENT: [*] Status Code: {response.status_code}")
    try:
        resp_json = response.json()
        print("ONBOARDING_CLIENT: [*] Response Body:")
        print(json.dumps(resp_json, indent=4))
    except json.JSONDecodeError:
        print("ONBOARDING_CLIENT: [*] Response Body (Text):")
        print(response.text)


def send(method, url, token, payload=None):
    print(f"ONBOARDING_CLIENT: [*] Sending {method} request to {url}")
    try:
        response = requests.request(method, url, json=payload, headers=auth_headers(token))
        print_response(response)
        return response
    except requests.exceptions.ConnectionError:
        print(f"ONBOARDING_CLIENT: [!] Error: Could not connect to {url}. Is onboarding_server.py running?")
    except requests.exceptions.RequestException as e:
        print(f"ONBOARDING_CLIENT: [!] Error during request: {e}")
    return None


def test_parse(qr_input, token, scheme=None):
    payload = {"qrRawPayload": load_payload(qr_input)}
    if scheme:
        payload["paymentScheme"] = scheme
    return send("POST", f"{BASE_URL}/parse-qr-code", token, payload)


def test_add(venue_id, qr_input, token, scheme, photo_url, account_type=None, primary=False):
    payload = {
        "paymentScheme": scheme,
        "qrRawPayload": load_payload(qr_input),
        "qrPhotoUrl": photo_url,
        "isPrimary": primary,
    }
    if account_type:
        payload["accountType"] = account_type
    return send("POST", f"{BASE_URL}/venues/{venue_id}/upi-qr-payments", token, payload)


def test_list(venue_id, token):
    return send("GET", f"{BASE_URL}/venues/{venue_id}/upi-qr-payments", token)


def test_delete(venue_id, qr_id, token):
    return send("DELETE", f"{BASE_URL}/venues/{venue_id}/upi-qr-payments/{qr_id}", token)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Client for the Onboarding Server")
    parser.add_argument("--parse", help="QR content string or path to a file containing it")
    parser.add_argument("--add", metavar="VENUE_ID", help="Store a QR payment for this venue (needs --qr and --photo)")
    parser.add_argument("--list", metavar="VENUE_ID", help="List the active QR payments of a venue")
    parser.add_argument("--delete", nargs=2, metavar=("VENUE_ID", "QR_ID"), help="Deactivate a stored QR payment")
    parser.add_argument("--qr", default="qrcode.txt", help="QR content or file for --add (default: qrcode.txt)")
    parser.add_argument("--scheme", choices=PAYMENT_SCHEMES, help="Payment scheme")
    parser.add_argument("--photo", help="URL of the uploaded QR photograph")
    parser.add_argument("--account-type", choices=ACCOUNT_TYPES, help="Agent-confirmed account type")
    parser.add_argument("--primary", action="store_true", help="Mark the stored payment as the venue's primary one")
    parser.add_argument("--token", help="Bearer token")
    parser.add_argument("--secret", default=os.environ.get("JWT_SECRET"), help="JWT secret used to mint a token when --token is absent")
    parser.add_argument("--user", default="agent-cli", help="userId claim for a minted token")

    args = parser.parse_args()

    token = args.token
    if not token:
        if not args.secret:
            print("ONBOARDING_CLIENT: [!] Error: pass --token, --secret or set JWT_SECRET.")
            exit(1)
        token = issue_agent_token(args.user, "agent", args.secret)

    if args.parse:
        test_parse(args.parse, token, args.scheme)
    elif args.add:
        if not args.photo:
            print("ONBOARDING_CLIENT: [!] Error: --add needs --photo.")
            exit(1)
        test_add(args.add, args.qr, token, args.scheme or "PROMPTPAY", args.photo, args.account_type, args.primary)
    elif args.list:
        test_list(args.list, token)
    elif args.delete:
        test_delete(args.delete[0], args.delete[1], token)
    else:
        parser.print_help()
