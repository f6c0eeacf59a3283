"""Unit tests for the STK callback decoder."""

from __future__ import annotations

import json
from datetime import datetime
from decimal import Decimal

import pytest

from conftest import failed_callback, success_callback
from feepay.services.mpesa.callback_parser import CallbackMetadata, parse_callback


class TestParseCallback:
    def test_success_payload(self):
        cb = parse_callback(success_callback(amount=1.0))

        assert cb is not None
        assert cb.succeeded
        assert cb.checkout_request_id == "ws_CO_191220191020363925"
        assert cb.merchant_request_id == "29115-34620561-1"
        assert cb.metadata.amount == Decimal("1.00")
        assert cb.metadata.receipt_number == "NLJ7RT61SV"
        assert cb.metadata.transaction_date == datetime(2024, 1, 15, 10, 21, 15)
        assert cb.metadata.phone_number == "254712345678"

    def test_raw_bytes_are_decoded(self):
        raw = json.dumps(success_callback()).encode("utf-8")
        cb = parse_callback(raw)
        assert cb is not None
        assert cb.metadata.amount == Decimal("4000.00")

    def test_cancelled_payload_has_empty_metadata(self):
        cb = parse_callback(failed_callback())

        assert cb is not None
        assert not cb.succeeded
        assert cb.result_code == 1032
        assert cb.result_desc == "Request cancelled by user"
        assert cb.metadata == CallbackMetadata()

    def test_string_result_code_is_coerced(self):
        cb = parse_callback(failed_callback(result_code="2001"))
        assert cb is not None
        assert cb.result_code == 2001

    def test_unknown_metadata_names_are_ignored(self):
        payload = success_callback()
        payload["Body"]["stkCallback"]["CallbackMetadata"]["Item"].append(
            {"Name": "SomethingNew", "Value": "x"}
        )
        cb = parse_callback(payload)
        assert cb is not None
        assert cb.metadata.receipt_number == "NLJ7RT61SV"

    def test_missing_metadata_items(self):
        payload = success_callback()
        payload["Body"]["stkCallback"]["CallbackMetadata"] = {"Item": []}
        cb = parse_callback(payload)
        assert cb is not None
        assert cb.metadata.amount is None
        assert cb.metadata.receipt_number is None

    @pytest.mark.parametrize(
        "payload",
        [
            b"not json",
            b"",
            "[]",
            {},
            {"Body": {}},
            {"Body": "oops"},
            {"Body": {"stkCallback": {"ResultCode": 0}}},
            {"Body": {"stkCallback": {"CheckoutRequestID": "ws_CO_1"}}},
            {"Body": {"stkCallback": {"CheckoutRequestID": "ws_CO_1", "ResultCode": "x"}}},
            {"Body": {"stkCallback": {"CheckoutRequestID": "ws_CO_1", "ResultCode": None}}},
        ],
    )
    def test_invalid_envelopes_return_none(self, payload):
        assert parse_callback(payload) is None


class TestResolveMetadata:
    def test_missing_fields_fall_back_to_stored_values(self):
        now = datetime(2024, 2, 1, 12, 0, 0)
        resolved = CallbackMetadata().resolve(
            stored_amount=Decimal("2500.00"),
            stored_phone="254700000000",
            now=now,
        )
        assert resolved.amount == Decimal("2500.00")
        assert resolved.phone_number == "254700000000"
        assert resolved.receipt_number == ""
        assert resolved.transaction_date == now

    def test_present_fields_win(self):
        meta = CallbackMetadata(
            amount=Decimal("100.00"),
            receipt_number="ABC123",
            transaction_date=datetime(2024, 1, 1),
            phone_number="254711111111",
        )
        resolved = meta.resolve(Decimal("999"), "254700000000")
        assert resolved == meta
