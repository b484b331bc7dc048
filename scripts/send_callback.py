"""Post a sample STK result notification to a running checkout service.

Useful for sandbox testing when the gateway cannot reach the callback URL,
and for duplicate-delivery testing (use --repeat).
"""

import argparse
import json
from pathlib import Path

import httpx


def build_payload(checkout_request_id: str, result_code: int, receipt: str, amount: int, phone: str) -> dict:
    callback = {
        "MerchantRequestID": "manual",
        "CheckoutRequestID": checkout_request_id,
        "ResultCode": result_code,
        "ResultDesc": "The service request is processed successfully."
        if result_code == 0
        else "Request cancelled by user",
    }
    if result_code == 0:
        callback["CallbackMetadata"] = {
            "Item": [
                {"Name": "Amount", "Value": amount},
                {"Name": "MpesaReceiptNumber", "Value": receipt},
                {"Name": "PhoneNumber", "Value": int(phone)},
            ]
        }
    return {"Body": {"stkCallback": callback}}


def main() -> None:
    """Parse CLI args and post one (or several identical) notifications."""

    parser = argparse.ArgumentParser(description="Send a sample STK callback.")
    parser.add_argument("--url", default="http://localhost:3000/callback")
    parser.add_argument("--checkout-request-id", default=None)
    parser.add_argument("--result-code", type=int, default=0)
    parser.add_argument("--receipt", default="TEST000001")
    parser.add_argument("--amount", type=int, default=1)
    parser.add_argument("--phone", default="254712345678")
    parser.add_argument("--file", dest="json_file", default=None, help="Path to a raw JSON payload")
    parser.add_argument("--repeat", type=int, default=1)
    args = parser.parse_args()

    if bool(args.checkout_request_id) == bool(args.json_file):
        raise SystemExit("Provide exactly one of --checkout-request-id or --file")

    if args.json_file:
        payload = json.loads(Path(args.json_file).read_text())
    else:
        payload = build_payload(args.checkout_request_id, args.result_code, args.receipt, args.amount, args.phone)

    for _ in range(args.repeat):
        resp = httpx.post(args.url, json=payload, timeout=10.0)
        print(f"status={resp.status_code} body={resp.text}")


if __name__ == "__main__":
    main()
