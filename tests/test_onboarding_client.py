import io
import unittest
from contextlib import redirect_stdout
from unittest.mock import patch, MagicMock

import requests

import onboarding_client


def fake_response(status_code, body):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = body
    return response


class OnboardingClientTests(unittest.TestCase):
    @patch("onboarding_client.requests.request")
    def test_parse_sends_payload_with_token(self, mock_request):
        mock_request.return_value = fake_response(200, {"detectedType": "mobile"})
        with redirect_stdout(io.StringIO()):
            onboarding_client.test_parse("29230012A0000006770101031235902Jo", "tok", "PROMPTPAY")

        mock_request.assert_called_once_with(
            "POST",
            f"{onboarding_client.BASE_URL}/parse-qr-code",
            json={"qrRawPayload": "29230012A0000006770101031235902Jo", "paymentScheme": "PROMPTPAY"},
            headers={"Authorization": "Bearer tok"},
        )

    @patch("onboarding_client.requests.request")
    def test_add_builds_record_request(self, mock_request):
        mock_request.return_value = fake_response(201, {"qrId": "a" * 32})
        with redirect_stdout(io.StringIO()):
            onboarding_client.test_add("v1", "000201", "tok", "PROMPTPAY", "https://cdn/x.jpg", "Business", True)

        method, url = mock_request.call_args.args
        self.assertEqual(method, "POST")
        self.assertEqual(url, f"{onboarding_client.BASE_URL}/venues/v1/upi-qr-payments")
        self.assertEqual(mock_request.call_args.kwargs["json"], {
            "paymentScheme": "PROMPTPAY",
            "qrRawPayload": "000201",
            "qrPhotoUrl": "https://cdn/x.jpg",
            "isPrimary": True,
            "accountType": "Business",
        })

    @patch("onboarding_client.requests.request")
    def test_connection_error_is_reported(self, mock_request):
        mock_request.side_effect = requests.exceptions.ConnectionError()
        out = io.StringIO()
        with redirect_stdout(out):
            result = onboarding_client.test_list("v1", "tok")
        self.assertIsNone(result)
        self.assertIn("Could not connect", out.getvalue())


if __name__ == "__main__":
    unittest.main()
