# Purpose: Agent onboarding API for venue payment QR codes (PromptPay, UPI, ...).
# Decodes the scanned QR text and stores the payment method against the venue.

import os
import re
import json
import time
import uuid
import threading
import argparse
from datetime import datetime, timezone
from urllib.parse import urlsplit, parse_qs

import yaml
from flask import Flask, request, jsonify
from flask_cors import CORS
from werkzeug.exceptions import HTTPException
from jose import jwt, JWTError
from jsonschema import Draft7Validator
import referencing
from referencing.jsonschema import DRAFT7

from promptpay_parser import (
    SCHEME_PROMPTPAY,
    extract_promptpay_info,
    account_type_from_promptpay_type,
    diagnose_payload,
)

app = Flask(__name__)
CORS(app)

# --- CONFIGURATION ---
PORT = 5020
HOST = "127.0.0.1"
STORE_DIR = "agent_db/payments"
JWT_ALGORITHM = "HS256"
TOKEN_TTL = 86400

PAYMENT_SCHEMES = ("UPI", "PROMPTPAY", "PIX", "PAYNOW", "OTHER")
ACCOUNT_TYPES = ("Personal", "Business", "Unknown")

SAFE_ID = re.compile(r"^[A-Za-z0-9_-]{1,64}$")
QR_ID = re.compile(r"^[0-9a-f]{32}$")

OPENAPI_URI = "http://onboarding.local/openapi.yaml"
_openapi_registry = None
_seq_lock = threading.Lock()
_last_seq = 0


# --- Helper Functions ---

def now_iso():
    now = datetime.now(timezone.utc)
    return now.strftime('%Y-%m-%dT%H:%M:%S.%f')[:-3] + 'Z'


def load_openapi_registry():
    """Loads api/openapi.yaml once into a referencing registry."""
    global _openapi_registry
    if _openapi_registry is None:
        openapi_path = os.path.join(os.path.dirname(os.path.abspath(__file__)), "api", "openapi.yaml")
        with open(openapi_path, 'r') as f:
            openapi = yaml.safe_load(f)
        resource = referencing.Resource.from_contents(openapi, default_specification=DRAFT7)
        _openapi_registry = referencing.Registry().with_resource(uri=OPENAPI_URI, resource=resource)
    return _openapi_registry


def validate_against_openapi(data, schema_name):
    """Validates JSON against a schema from api/openapi.yaml. Returns (is_valid, error_msg)."""
    target_schema = {"$ref": f"{OPENAPI_URI}#/components/schemas/{schema_name}"}
    validator = Draft7Validator(target_schema, registry=load_openapi_registry())
    error = next(iter(validator.iter_errors(data)), None)
    if error is not None:
        location = ".".join(str(p) for p in error.absolute_path) or "$"
        msg = f"{location}: {error.message}"
        print(f"ONBOARDING_SERVER: [!] Schema Validation Error ({schema_name}): {msg}")
        return False, msg
    print(f"ONBOARDING_SERVER: [OK] JSON validated against {schema_name}")
    return True, None


def next_sequence():
    """Strictly increasing nanosecond stamp; orders records created within the same millisecond."""
    global _last_seq
    with _seq_lock:
        _last_seq = max(time.time_ns(), _last_seq + 1)
        return _last_seq


def get_jwt_secret():
    return app.config.get("JWT_SECRET") or os.environ.get("JWT_SECRET")


def issue_agent_token(user_id, role, secret, expires_in=TOKEN_TTL):
    """Signs an agent bearer token carrying userId and role claims."""
    iat = int(time.time())
    claims = {"userId": user_id, "role": role, "iat": iat, "exp": iat + expires_in}
    return jwt.encode(claims, secret, algorithm=JWT_ALGORITHM)


def authenticate_request():
    """Verifies the bearer token. Returns (claims, None) or (None, error_response)."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        print("ONBOARDING_SERVER: [!] Authorization header missing or malformed")
        return None, (jsonify({"error": "Authorization header missing or malformed"}), 401)

    secret = get_jwt_secret()
    if not secret:
        print("ONBOARDING_SERVER: [!] JWT_SECRET not configured")
        return None, (jsonify({"error": "Server configuration error"}), 500)

    try:
        claims = jwt.decode(auth_header[7:], secret, algorithms=[JWT_ALGORITHM])
    except JWTError as e:
        print(f"ONBOARDING_SERVER: [!] Token verification failed: {e}")
        return None, (jsonify({"error": "Invalid or expired token"}), 401)

    if not claims.get("userId"):
        return None, (jsonify({"error": "Token has no userId"}), 401)
    return claims, None


def parse_upi_uri(uri):
    """Extracts payee details from a upi://pay?pa=...&pn=... QR payload."""
    parts = urlsplit(uri.strip())
    if parts.scheme.lower() != "upi":
        raise ValueError("Not a UPI payment URI.")

    params = {k.lower(): v[0] for k, v in parse_qs(parts.query).items()}
    vpa = params.get("pa")
    if not vpa:
        raise ValueError("UPI payload has no payee address (pa).")

    return {
        "upiVpa": vpa,
        "upiPayeeName": params.get("pn"),
        "upiMerchantCode": params.get("mid"),
        "upiCategoryCode": params.get("mc"),
        "upiIsStatic": not params.get("am"),
    }


def upi_account_type(upi_info):
    category_code = upi_info.get("upiCategoryCode")
    if category_code and category_code != "0000":
        return "Business"
    return "Personal"


def detect_payment_scheme(payload):
    if payload.strip().lower().startswith("upi:"):
        return "UPI"
    if extract_promptpay_info(payload)["scheme"] == SCHEME_PROMPTPAY:
        return "PROMPTPAY"
    return "OTHER"


def decode_payment_qr(payment_scheme, payload):
    """
    Decodes a QR payload for the given scheme into the fields stored on a payment record.

    Raises ValueError when a UPI payload cannot be read.
    """
    if payment_scheme == "UPI":
        upi_info = parse_upi_uri(payload)
        return {
            "detectedType": "vpa",
            "accountType": upi_account_type(upi_info),
            "accountId": upi_info["upiVpa"],
            "payeeName": upi_info["upiPayeeName"],
            "decodeStatus": None,
            "templateStatus": None,
            "upi": upi_info,
            "promptpay": extract_promptpay_info(payload),
        }

    info = extract_promptpay_info(payload)
    diagnosis = diagnose_payload(payload)
    return {
        "detectedType": info["type"],
        "accountType": account_type_from_promptpay_type(info["type"]),
        "accountId": info["id"],
        "payeeName": info.get("payeeName"),
        "decodeStatus": diagnosis["decodeStatus"],
        "templateStatus": diagnosis["templateStatus"],
        "upi": None,
        "promptpay": info,
    }


# --- Store (one JSON file per record) ---

def venue_dir(venue_id):
    return os.path.join(app.config.get("STORE_DIR", STORE_DIR), venue_id)


def load_payments(venue_id):
    path = venue_dir(venue_id)
    if not os.path.isdir(path):
        return []
    records = []
    for name in os.listdir(path):
        if name.endswith(".json"):
            with open(os.path.join(path, name), "r") as f:
                records.append(json.load(f))
    return records


def save_payment(record):
    path = venue_dir(record["venueId"])
    os.makedirs(path, exist_ok=True)
    with open(os.path.join(path, f"{record['qrId']}.json"), "w") as f:
        json.dump(record, f, indent=4)


def clear_primary(venue_id, keep_qr_id):
    for other in load_payments(venue_id):
        if other["qrId"] != keep_qr_id and other.get("isActive") and other.get("isPrimary"):
            other["isPrimary"] = False
            other["updatedAt"] = now_iso()
            save_payment(other)
            print(f"ONBOARDING_SERVER: [*] Cleared primary flag on {other['qrId']}")


# --- Routes ---

@app.route('/parse-qr-code', methods=['POST'])
def parse_qr_code():
    """Decodes a scanned QR payload and reports what was detected. Nothing is stored."""
    _, error = authenticate_request()
    if error:
        return error

    data = request.get_json(silent=True)
    if not data:
        print("ONBOARDING_SERVER: [!] Received invalid JSON payload")
        return jsonify({"error": "Invalid JSON"}), 400

    is_valid, msg = validate_against_openapi(data, "ParseQrRequest")
    if not is_valid:
        return jsonify({"error": msg}), 400

    payload = data["qrRawPayload"]
    payment_scheme = data.get("paymentScheme") or detect_payment_scheme(payload)
    print(f"ONBOARDING_SERVER: [*] Parsing {payment_scheme} QR payload ({len(payload)} chars)")

    try:
        decoded = decode_payment_qr(payment_scheme, payload)
    except ValueError as e:
        return jsonify({"error": f"Invalid QR Content: {e}"}), 400

    response_data = {
        "paymentScheme": payment_scheme,
        "detectedType": decoded["detectedType"],
        "accountType": decoded["accountType"],
        "accountId": decoded["accountId"],
        "payeeName": decoded["payeeName"],
        "decodeStatus": decoded["decodeStatus"],
        "templateStatus": decoded["templateStatus"],
        "promptpay": decoded["promptpay"],
    }
    validate_against_openapi(response_data, "ParseQrResponse")
    return jsonify(response_data)


@app.route('/venues/<venue_id>/upi-qr-payments', methods=['POST'])
def add_upi_qr_payment(venue_id):
    """Stores a scanned QR payment method against a venue."""
    claims, error = authenticate_request()
    if error:
        return error

    if not SAFE_ID.match(venue_id):
        return jsonify({"error": "Invalid venueId"}), 400

    data = request.get_json(silent=True)
    if not data:
        print("ONBOARDING_SERVER: [!] Received invalid JSON payload")
        return jsonify({"error": "Invalid JSON"}), 400

    is_valid, msg = validate_against_openapi(data, "UpiQrPaymentRequest")
    if not is_valid:
        return jsonify({"error": msg}), 400

    payment_scheme = data["paymentScheme"]
    payload = data["qrRawPayload"]

    try:
        decoded = decode_payment_qr(payment_scheme, payload)
    except ValueError as e:
        return jsonify({"error": f"Invalid QR Content: {e}"}), 400

    upi_info = decoded["upi"] or {}
    timestamp = now_iso()
    record = {
        "qrId": uuid.uuid4().hex,
        "venueId": venue_id,
        "paymentScheme": payment_scheme,
        "qrRawPayload": payload,
        # PromptPay ids and payee names share the UPI columns.
        "upiVpa": decoded["accountId"],
        "upiPayeeName": decoded["payeeName"],
        "upiMerchantCode": upi_info.get("upiMerchantCode"),
        "upiCategoryCode": upi_info.get("upiCategoryCode"),
        "upiIsStatic": upi_info.get("upiIsStatic"),
        "accountType": data.get("accountType") or decoded["accountType"],
        "detectedType": decoded["detectedType"],
        "ownerClaimName": data.get("ownerClaimName"),
        "zoneId": data.get("zoneId"),
        "isPrimary": bool(data.get("isPrimary", False)),
        "qrPhotoUrl": data["qrPhotoUrl"],
        "qrImageHash": data.get("qrImageHash"),
        "createdBy": str(claims["userId"]),
        "isActive": True,
        "createdAt": timestamp,
        "updatedAt": timestamp,
        "createdSeq": next_sequence(),
    }

    try:
        save_payment(record)
        if record["isPrimary"]:
            clear_primary(venue_id, record["qrId"])
    except OSError as e:
        print(f"ONBOARDING_SERVER: [!] Error saving payment record: {e}")
        return jsonify({"error": str(e)}), 500

    print(f"ONBOARDING_SERVER: [*] Stored {payment_scheme} payment {record['qrId']} for venue {venue_id} ({record['detectedType']}, {record['accountType']})")
    validate_against_openapi(record, "UpiQrPayment")
    return jsonify(record), 201


@app.route('/venues/<venue_id>/upi-qr-payments', methods=['GET'])
def get_upi_qr_payments(venue_id):
    """Lists the active QR payment methods of a venue, newest first."""
    _, error = authenticate_request()
    if error:
        return error

    if not SAFE_ID.match(venue_id):
        return jsonify({"error": "Invalid venueId"}), 400

    payments = [p for p in load_payments(venue_id) if p.get("isActive")]
    payments.sort(key=lambda p: (p["createdAt"], p.get("createdSeq", 0)), reverse=True)

    response_data = {"venueId": venue_id, "payments": payments}
    validate_against_openapi(response_data, "UpiQrPaymentList")
    return jsonify(response_data)


@app.route('/venues/<venue_id>/upi-qr-payments/<qr_id>', methods=['DELETE'])
def delete_upi_qr_payment(venue_id, qr_id):
    """Deactivates a stored payment method; the record stays on disk."""
    _, error = authenticate_request()
    if error:
        return error

    if not SAFE_ID.match(venue_id) or not QR_ID.match(qr_id):
        return jsonify({"error": "Payment not found"}), 404

    record_path = os.path.join(venue_dir(venue_id), f"{qr_id}.json")
    if not os.path.exists(record_path):
        return jsonify({"error": "Payment not found"}), 404

    with open(record_path, "r") as f:
        record = json.load(f)

    if not record.get("isActive"):
        return jsonify({"error": "Payment not found"}), 404

    record["isActive"] = False
    record["isPrimary"] = False
    record["updatedAt"] = now_iso()
    save_payment(record)

    print(f"ONBOARDING_SERVER: [*] Deactivated payment {qr_id} for venue {venue_id}")
    return jsonify({"qrId": qr_id, "isActive": False})


@app.errorhandler(Exception)
def handle_unexpected_error(e):
    if isinstance(e, HTTPException):
        return jsonify({"error": e.description}), e.code
    print(f"ONBOARDING_SERVER: [!] Exception: {e}")
    return jsonify({"error": str(e)}), 500


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description="Agent Payment-Method Onboarding Server")
    parser.add_argument("--port", type=int, default=PORT, help="Port to listen on.")
    parser.add_argument("--store", default=STORE_DIR, help="Directory for payment records.")
    args = parser.parse_args()

    app.config["STORE_DIR"] = args.store
    os.makedirs(args.store, exist_ok=True)

    if not get_jwt_secret():
        print("ONBOARDING_SERVER: [!] Warning: JWT_SECRET is not set; every request will be rejected.")

    print(f"ONBOARDING_SERVER: Starting Onboarding Server on port {args.port}...")
    app.run(host=HOST, port=args.port)
