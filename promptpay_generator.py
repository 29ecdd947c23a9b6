# Purpose: Build PromptPay EMV QR payloads (and images) for onboarding demos and tests.

import argparse
import qrcode

from promptpay_parser import (
    MERCHANT_ACCOUNT_TAG,
    MERCHANT_NAME_TAG,
    AID_SUBTAG,
    PROMPTPAY_SUBTAGS,
)

# --- CONFIGURATION ---
QR_TEXT_FILE = "qrcode.txt"
QR_IMAGE_FILE = "qrcode.png"
PROMPTPAY_AID = "A000000677010111"
THB_NUMERIC = "764"
MAX_NAME_LEN = 25

SUBTAG_BY_TYPE = {promptpay_type: subtag for subtag, promptpay_type in PROMPTPAY_SUBTAGS}


def tlv(tag, value):
    if len(value) > 99:
        raise ValueError(f"Value for tag {tag} is too long ({len(value)} > 99)")
    return f"{tag}{len(value):02}{value}"


def calculate_crc(data_string):
    """Calculates the CRC-16/CCITT-FALSE (0xFFFF, 0x1021) for EMV QR."""
    crc = 0xFFFF
    polynomial = 0x1021

    for byte in data_string.encode('utf-8'):
        crc ^= (byte << 8)
        for _ in range(8):
            if crc & 0x8000:
                crc = (crc << 1) ^ polynomial
            else:
                crc = crc << 1
            crc &= 0xFFFF
    return f"{crc:04X}"


def format_target(account_type, account_id):
    """Normalises the account identifier the way PromptPay encodes it."""
    if account_type not in SUBTAG_BY_TYPE:
        raise ValueError(f"Unsupported PromptPay account type: {account_type}")

    target = "".join(c for c in account_id if c.isalnum())
    if account_type == "mobile":
        digits = "".join(c for c in target if c.isdigit())
        # 0812345678 -> 0066812345678
        if digits.startswith("0066"):
            digits = digits[4:]
        elif digits.startswith("66"):
            digits = digits[2:]
        elif digits.startswith("0"):
            digits = digits[1:]
        target = ("66" + digits).rjust(13, "0")
    if not target:
        raise ValueError("Account identifier is empty")
    return target


def format_promptpay_qr(account_type, account_id, payee_name=None, amount=None):
    """Constructs the EMVCo Merchant Presented Mode string for a PromptPay account."""
    target = format_target(account_type, account_id)
    template = tlv(AID_SUBTAG, PROMPTPAY_AID) + tlv(SUBTAG_BY_TYPE[account_type], target)

    data = [
        tlv("00", "01"),
        # 11 = static (reusable), 12 = dynamic (amount fixed)
        tlv("01", "12" if amount else "11"),
        tlv(MERCHANT_ACCOUNT_TAG, template),
        tlv("53", THB_NUMERIC),
    ]
    if amount:
        data.append(tlv("54", f"{float(amount):.2f}"[:13]))
    data.append(tlv("58", "TH"))
    if payee_name:
        data.append(tlv(MERCHANT_NAME_TAG, payee_name[:MAX_NAME_LEN]))

    raw_str = "".join(data) + "6304"
    return raw_str + calculate_crc(raw_str)


def save_qr_image(content, path):
    qr = qrcode.QRCode(version=1, box_size=10, border=4)
    qr.add_data(content)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    img.save(path)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="PromptPay QR Code Generator")
    parser.add_argument("account_type", choices=sorted(SUBTAG_BY_TYPE), help="PromptPay account type")
    parser.add_argument("account_id", help="Mobile number, national ID, tax ID or e-wallet ID")
    parser.add_argument("--name", help="Payee name (tag 59)")
    parser.add_argument("--amount", type=float, help="Fixed amount in THB")
    parser.add_argument("--no-image", action="store_true", help="Only write the raw QR string.")
    args = parser.parse_args()

    try:
        emv_qr_string = format_promptpay_qr(args.account_type, args.account_id, args.name, args.amount)
    except ValueError as e:
        print(f"[!] Error: {e}")
        exit(1)

    print(f"[*] QR content: {emv_qr_string}")
    with open(QR_TEXT_FILE, "w") as f:
        f.write(emv_qr_string)
    print(f"[*] Raw QR string saved to '{QR_TEXT_FILE}'.")

    if not args.no_image:
        print("[*] Generating QR Code Image...")
        save_qr_image(emv_qr_string, QR_IMAGE_FILE)
        print(f"[*] QR Code image saved as '{QR_IMAGE_FILE}'.")
