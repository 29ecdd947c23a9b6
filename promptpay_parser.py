# Purpose: Decode EMV QR payment payloads (PromptPay) into payee/account information.
# Pure functions only; safe to call from any request thread.

# --- EMV / PROMPTPAY CONSTANTS ---
MERCHANT_ACCOUNT_TAG = "29"
MERCHANT_NAME_TAG = "59"
AID_SUBTAG = "00"
PROMPTPAY_AID_PREFIX = "A00000067701"

SCHEME_PROMPTPAY = "PROMPTPAY"
SCHEME_UNKNOWN = "UNKNOWN"

# Sub-tags of the Merchant Account Information template, in tie-break order.
PROMPTPAY_SUBTAGS = (
    ("01", "mobile"),
    ("02", "national_id"),
    ("03", "tax_id"),
    ("04", "ewallet"),
)

ACCOUNT_TYPE_BY_PROMPTPAY_TYPE = {
    "tax_id": "Business",
    "mobile": "Personal",
    "national_id": "Personal",
}

DECODE_OK = "OK"
DECODE_INVALID_LENGTH = "INVALID_LENGTH"
DECODE_TRUNCATED = "TRUNCATED"

DIGITS = "0123456789"


def parse_length_field(field):
    """
    Reads a base-10 length the lenient way: leading whitespace and a sign are
    allowed, and parsing stops at the first non-digit ("1X" -> 1, " 2" -> 2).

    Returns None when no digit is found or the value is negative.
    """
    text = field.lstrip()
    negative = text[:1] == "-"
    if text[:1] in ("+", "-"):
        text = text[1:]

    digits = ""
    for c in text:
        if c not in DIGITS:
            break
        digits += c
    if not digits:
        return None

    length = int(digits)
    if negative and length:
        return None
    return length


def inspect_emv_tlv(data):
    """
    Scans EMV TLV records left to right and reports why scanning stopped.

    Returns (tag_map, status). Status is DECODE_OK when the records ran to the
    end (a tail shorter than a tag+length header is ignored), DECODE_INVALID_LENGTH
    when a length field holds no number (or a negative one), and DECODE_TRUNCATED
    when a declared length runs past the end of the data. The record that stopped
    the scan is never added.
    """
    results = {}
    i = 0
    while i + 4 <= len(data):
        tag = data[i:i+2]
        length = parse_length_field(data[i+2:i+4])
        if length is None:
            return results, DECODE_INVALID_LENGTH

        value_start = i + 4
        value_end = value_start + length
        if value_end > len(data):
            return results, DECODE_TRUNCATED

        # Repeated tags: the later value wins.
        results[tag] = data[value_start:value_end]
        i = value_end
    return results, DECODE_OK


def parse_emv_tlv(data):
    """Parses a flat EMV TLV string into a tag -> value dict. Never raises."""
    results, _ = inspect_emv_tlv(data)
    return results


def parse_nested_emv_tlv(value):
    """Parses the value of a template tag (e.g. tag 29) as its own TLV record set."""
    return parse_emv_tlv(value)


def _unknown_result(payload):
    return {
        "type": "unknown",
        "id": None,
        "rawPayload": payload,
        "scheme": SCHEME_UNKNOWN,
    }


def extract_promptpay_info(payload):
    """
    Extracts the PromptPay account identifier and payee name from a QR payload.

    Anything that is not a PromptPay payload (no tag 29, missing or foreign AID,
    corrupt TLV) comes back as type "unknown" with scheme "UNKNOWN" and no
    payeeName. A PromptPay payload without a recognised account sub-tag comes
    back as type "unknown" with scheme "PROMPTPAY".
    """
    top = parse_emv_tlv(payload)

    template = top.get(MERCHANT_ACCOUNT_TAG)
    if not template:
        return _unknown_result(payload)

    nested = parse_nested_emv_tlv(template)

    aid = nested.get(AID_SUBTAG)
    if not aid or not aid.startswith(PROMPTPAY_AID_PREFIX):
        return _unknown_result(payload)

    payee_name = top.get(MERCHANT_NAME_TAG) or ""

    for subtag, promptpay_type in PROMPTPAY_SUBTAGS:
        if nested.get(subtag):
            return {
                "type": promptpay_type,
                "id": nested[subtag],
                "rawPayload": payload,
                "scheme": SCHEME_PROMPTPAY,
                "payeeName": payee_name,
            }

    return {
        "type": "unknown",
        "id": None,
        "rawPayload": payload,
        "scheme": SCHEME_PROMPTPAY,
        "payeeName": payee_name,
    }


def account_type_from_promptpay_type(promptpay_type):
    """Maps a PromptPay account type to Business / Personal / Unknown."""
    return ACCOUNT_TYPE_BY_PROMPTPAY_TYPE.get(promptpay_type, "Unknown")


def diagnose_payload(payload):
    """
    Reports how far the payload and its tag 29 template decoded.

    templateStatus is None when the payload carries no tag 29.
    """
    top, decode_status = inspect_emv_tlv(payload)
    template_status = None
    if MERCHANT_ACCOUNT_TAG in top:
        _, template_status = inspect_emv_tlv(top[MERCHANT_ACCOUNT_TAG])
    return {
        "decodeStatus": decode_status,
        "templateStatus": template_status,
    }
