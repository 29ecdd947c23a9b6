import os
import tempfile
import unittest

from promptpay_generator import (
    tlv,
    calculate_crc,
    format_target,
    format_promptpay_qr,
    save_qr_image,
)
from promptpay_parser import parse_emv_tlv, extract_promptpay_info


class TlvTests(unittest.TestCase):
    def test_pads_length(self):
        self.assertEqual(tlv("59", "Jo"), "5902Jo")
        self.assertEqual(tlv("00", ""), "0000")

    def test_rejects_values_longer_than_99(self):
        with self.assertRaises(ValueError):
            tlv("62", "x" * 100)


class CrcTests(unittest.TestCase):
    def test_ccitt_false_check_value(self):
        self.assertEqual(calculate_crc("123456789"), "29B1")

    def test_payload_ends_with_its_crc(self):
        payload = format_promptpay_qr("mobile", "0812345678")
        self.assertEqual(payload[-8:-4], "6304")
        self.assertEqual(payload[-4:], calculate_crc(payload[:-4]))


class FormatTargetTests(unittest.TestCase):
    def test_mobile_numbers_are_normalised(self):
        self.assertEqual(format_target("mobile", "0812345678"), "0066812345678")
        self.assertEqual(format_target("mobile", "081-234-5678"), "0066812345678")
        self.assertEqual(format_target("mobile", "+66812345678"), "0066812345678")
        self.assertEqual(format_target("mobile", "0066812345678"), "0066812345678")

    def test_ids_keep_their_digits(self):
        self.assertEqual(format_target("national_id", "1-1017-00230-70-5"), "1101700230705")
        self.assertEqual(format_target("tax_id", "0105536000001"), "0105536000001")

    def test_unsupported_type(self):
        with self.assertRaises(ValueError):
            format_target("unknown", "123")

    def test_empty_id(self):
        with self.assertRaises(ValueError):
            format_target("tax_id", "--")


class FormatPromptPayQrTests(unittest.TestCase):
    def test_static_mobile_payload_decodes(self):
        payload = format_promptpay_qr("mobile", "0812345678", "Jo")
        self.assertTrue(payload.startswith("000201010211"))

        info = extract_promptpay_info(payload)
        self.assertEqual(info["type"], "mobile")
        self.assertEqual(info["id"], "0066812345678")
        self.assertEqual(info["scheme"], "PROMPTPAY")
        self.assertEqual(info["payeeName"], "Jo")

    def test_amount_makes_payload_dynamic(self):
        top = parse_emv_tlv(format_promptpay_qr("national_id", "1101700230705", amount=50))
        self.assertEqual(top["01"], "12")
        self.assertEqual(top["54"], "50.00")
        self.assertEqual(top["53"], "764")
        self.assertEqual(top["58"], "TH")

    def test_each_type_round_trips_through_extractor(self):
        for account_type, account_id in [("tax_id", "0105536000001"), ("ewallet", "004999000288505")]:
            with self.subTest(account_type=account_type):
                info = extract_promptpay_info(format_promptpay_qr(account_type, account_id))
                self.assertEqual(info["type"], account_type)
                self.assertEqual(info["id"], account_id)
                self.assertEqual(info["payeeName"], "")

    def test_long_payee_name_is_cut(self):
        top = parse_emv_tlv(format_promptpay_qr("mobile", "0812345678", "A" * 40))
        self.assertEqual(top["59"], "A" * 25)


class SaveQrImageTests(unittest.TestCase):
    def test_writes_png(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "qrcode.png")
            save_qr_image(format_promptpay_qr("mobile", "0812345678"), path)
            with open(path, "rb") as f:
                self.assertEqual(f.read(8), b"\x89PNG\r\n\x1a\n")


if __name__ == "__main__":
    unittest.main()
