"""Tests for canonical JSON and payload digests."""

from datetime import datetime, timedelta, timezone

from workflow_kernel.domain.entities import TransactionStatus
from workflow_kernel.utils.hashing import canonicalize_json, hash_payload


def test_key_order_does_not_matter():
    assert hash_payload({"a": 1, "b": 2}) == hash_payload({"b": 2, "a": 1})


def test_enums_by_name_and_ints_as_text():
    assert canonicalize_json({"status": TransactionStatus.ACTIVE, "amount": 2**200}) == (
        '{"amount":"%d","status":"ACTIVE"}' % 2**200
    )


def test_naive_and_aware_utc_hash_alike():
    aware = datetime(2024, 1, 1, 12, tzinfo=timezone.utc)
    shifted = aware.astimezone(timezone(timedelta(hours=2)))
    naive = datetime(2024, 1, 1, 12)
    assert hash_payload([aware]) == hash_payload([shifted]) == hash_payload([naive])


def test_digest_is_hex_sha256():
    digest = hash_payload({})
    assert len(digest) == 64
    int(digest, 16)
