# Purpose: Dump the fields of a scanned PromptPay / EMV QR payload for agents and support.

import argparse
import os
import re

from promptpay_parser import (
    MERCHANT_ACCOUNT_TAG,
    extract_promptpay_info,
    account_type_from_promptpay_type,
    diagnose_payload,
    parse_length_field,
)

# --- CONFIGURATION ---
QR_TEXT_FILE = "qrcode.txt"

# EMV MPM tag definitions and basic format rules
TAG_INFO = {
    "00": {"desc": "Payload Format Indicator", "min_len": 2, "max_len": 2, "pattern": r"^01$"},
    "01": {"desc": "Point of Initiation Method", "min_len": 2, "max_len": 2, "pattern": r"^(11|12)$"},
    "29": {"desc": "Merchant Account Information (PromptPay)", "min_len": 1, "max_len": 99},
    "52": {"desc": "Merchant Category Code (MCC)", "min_len": 4, "max_len": 4, "pattern": r"^\d{4}$"},
    "53": {"desc": "Transaction Currency", "min_len": 3, "max_len": 3, "pattern": r"^\d{3}$"},
    "54": {"desc": "Transaction Amount", "min_len": 1, "max_len": 13, "pattern": r"^\d+(\.\d{1,2})?$"},
    "58": {"desc": "Country Code", "min_len": 2, "max_len": 2, "pattern": r"^[A-Z]{2}$"},
    "59": {"desc": "Merchant Name", "min_len": 1, "max_len": 25},
    "60": {"desc": "Merchant City", "min_len": 1, "max_len": 15},
    "62": {"desc": "Additional Data Field Template", "min_len": 1, "max_len": 99},
    "63": {"desc": "CRC", "min_len": 4, "max_len": 4, "pattern": r"^[0-9A-F]{4}$"},
}

SUBTAG_INFO = {
    "29": {
        "00": {"desc": "Application Identifier (AID)", "pattern": r"^A00000067701"},
        "01": {"desc": "Mobile Number", "pattern": r"^\d{13}$"},
        "02": {"desc": "National ID", "pattern": r"^\d{13}$"},
        "03": {"desc": "Tax ID", "pattern": r"^\d{13}$"},
        "04": {"desc": "E-Wallet ID", "pattern": r"^\d{15}$"},
    }
}


def _tag_info(tag, parent_tag=None):
    if parent_tag:
        return SUBTAG_INFO.get(parent_tag, {}).get(tag)
    return TAG_INFO.get(tag)


def validate_field(tag, value, parent_tag=None):
    """Checks a value against the EMV / PromptPay format rules for its tag."""
    info = _tag_info(tag, parent_tag)
    if not info:
        return True, "N/A"

    if "min_len" in info and len(value) < info["min_len"]:
        return False, f"ERR: Too short (min {info['min_len']})"
    if "max_len" in info and len(value) > info["max_len"]:
        return False, f"ERR: Too long (max {info['max_len']})"

    if "pattern" in info and not re.match(info["pattern"], value):
        return False, "ERR: Format mismatch"

    return True, "OK"


def describe_fields(data, parent_tag=None):
    """
    Lists the TLV fields of data in scan order, duplicates included.

    Uses the same stopping rules as the decoder, so the listing ends where
    decoding ended.
    """
    results = []
    i = 0
    while i + 4 <= len(data):
        tag = data[i:i+2]
        length = parse_length_field(data[i+2:i+4])
        if length is None:
            break
        if i + 4 + length > len(data):
            break
        value = data[i+4:i+4+length]

        info = _tag_info(tag, parent_tag)
        if info:
            desc = info["desc"]
        else:
            desc = "Unknown Subtag" if parent_tag else "Unknown Tag"

        is_valid, msg = validate_field(tag, value, parent_tag)

        results.append({
            "tag": tag,
            "length": length,
            "value": value,
            "description": desc,
            "is_valid": is_valid,
            "validation_msg": msg,
        })
        i += 4 + length
    return results


def load_payload(qr_input):
    """Accepts either a raw payload string or a path to a file holding one."""
    if os.path.exists(qr_input):
        with open(qr_input, "r") as f:
            return f.read().strip()
    return qr_input.strip()


def print_report(qr_content):
    print("=" * 110)
    print("EMV QR PARSER - PROMPTPAY")
    print("=" * 110)
    print(f"Raw Content: {qr_content}\n")

    print(f"{'TAG':5} | {'LEN':3} | {'VALID':24} | {'DESCRIPTION':40} | {'VALUE'}")
    print("-" * 110)

    for field in describe_fields(qr_content):
        status = "[OK]" if field['is_valid'] else f"[{field['validation_msg']}]"
        print(f"{field['tag']:5} | {field['length']:02}  | {status:24} | {field['description']:40} | {field['value']}")

        if field['tag'] == MERCHANT_ACCOUNT_TAG:
            for sub in describe_fields(field['value'], parent_tag=MERCHANT_ACCOUNT_TAG):
                sub_status = "[OK]" if sub['is_valid'] else f"[{sub['validation_msg']}]"
                print(f"29.{sub['tag']:2} | {sub['length']:02}  | {sub_status:24} | {sub['description']:40} | {sub['value']}")

    print("-" * 110)
    diagnosis = diagnose_payload(qr_content)
    print(f"Decode Status:   {diagnosis['decodeStatus']}")
    if diagnosis['templateStatus'] is not None:
        print(f"Template Status: {diagnosis['templateStatus']}")

    info = extract_promptpay_info(qr_content)
    print(f"Scheme:          {info['scheme']}")
    print(f"Detected Type:   {info['type']}")
    print(f"Account ID:      {info['id'] or '-'}")
    if "payeeName" in info:
        print(f"Payee Name:      {info['payeeName'] or '-'}")
    print(f"Account Type:    {account_type_from_promptpay_type(info['type'])}")
    print("=" * 110)


def main():
    parser = argparse.ArgumentParser(description="Dump the fields of an EMV / PromptPay QR payload")
    parser.add_argument("qr_input", nargs="?", default=QR_TEXT_FILE, help="QR content string or path to a file containing it")
    args = parser.parse_args()

    if args.qr_input == QR_TEXT_FILE and not os.path.exists(QR_TEXT_FILE):
        print(f"[!] Error: {QR_TEXT_FILE} not found. Run promptpay_generator.py first or pass the payload.")
        return

    qr_content = load_payload(args.qr_input)
    if not qr_content:
        print("[!] Error: Empty QR content.")
        return

    print_report(qr_content)


if __name__ == "__main__":
    main()
