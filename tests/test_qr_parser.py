import io
import os
import tempfile
import unittest
from contextlib import redirect_stdout

from qr_parser import describe_fields, validate_field, load_payload, print_report
from promptpay_generator import format_promptpay_qr


class DescribeFieldsTests(unittest.TestCase):
    def setUp(self):
        self.payload = format_promptpay_qr("mobile", "0812345678", "Jo")

    def test_top_level_fields_in_order(self):
        tags = [f["tag"] for f in describe_fields(self.payload)]
        self.assertEqual(tags, ["00", "01", "29", "53", "58", "59", "63"])

    def test_all_generated_fields_are_valid(self):
        for field in describe_fields(self.payload):
            self.assertTrue(field["is_valid"], field)

    def test_template_subfields(self):
        template = next(f for f in describe_fields(self.payload) if f["tag"] == "29")
        subfields = describe_fields(template["value"], parent_tag="29")
        self.assertEqual([s["description"] for s in subfields], ["Application Identifier (AID)", "Mobile Number"])
        self.assertEqual(subfields[1]["value"], "0066812345678")

    def test_duplicates_are_listed(self):
        fields = describe_fields("0101a0101b")
        self.assertEqual([(f["tag"], f["value"]) for f in fields], [("01", "a"), ("01", "b")])

    def test_stops_like_the_decoder(self):
        self.assertEqual(describe_fields("000512"), [])
        self.assertEqual(len(describe_fields("0000" + "00XY12345")), 1)

    def test_length_read_like_the_decoder(self):
        fields = describe_fields("01 2ab" + "021Xc")
        self.assertEqual([(f["tag"], f["length"], f["value"]) for f in fields], [("01", 2, "ab"), ("02", 1, "c")])
        self.assertEqual(describe_fields("01-1ab"), [])

    def test_unknown_tags(self):
        self.assertEqual(describe_fields("9902ab")[0]["description"], "Unknown Tag")
        self.assertEqual(describe_fields("9902ab", parent_tag="29")[0]["description"], "Unknown Subtag")


class ValidateFieldTests(unittest.TestCase):
    def test_ok(self):
        self.assertEqual(validate_field("58", "TH"), (True, "OK"))

    def test_too_long(self):
        self.assertEqual(validate_field("58", "THA"), (False, "ERR: Too long (max 2)"))

    def test_format_mismatch(self):
        self.assertEqual(validate_field("01", "13"), (False, "ERR: Format mismatch"))
        self.assertEqual(validate_field("00", "9999", parent_tag="29"), (False, "ERR: Format mismatch"))

    def test_unknown_tag(self):
        self.assertEqual(validate_field("99", "anything"), (True, "N/A"))


class LoadPayloadTests(unittest.TestCase):
    def test_raw_string(self):
        self.assertEqual(load_payload(" 000201 "), "000201")

    def test_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "qrcode.txt")
            with open(path, "w") as f:
                f.write("000201\n")
            self.assertEqual(load_payload(path), "000201")


class PrintReportTests(unittest.TestCase):
    def test_report_includes_summary(self):
        out = io.StringIO()
        with redirect_stdout(out):
            print_report(format_promptpay_qr("tax_id", "0105536000001", "Acme Co"))
        text = out.getvalue()
        self.assertIn("Detected Type:   tax_id", text)
        self.assertIn("Account Type:    Business", text)
        self.assertIn("Payee Name:      Acme Co", text)
        self.assertIn("29.03", text)

    def test_report_for_foreign_payload(self):
        out = io.StringIO()
        with redirect_stdout(out):
            print_report("2912000899999999")
        text = out.getvalue()
        self.assertIn("Scheme:          UNKNOWN", text)
        self.assertNotIn("Payee Name:", text)


if __name__ == "__main__":
    unittest.main()
