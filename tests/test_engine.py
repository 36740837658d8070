import threading
from datetime import datetime, timedelta, timezone

import pytest

from concert.engine import ReconcileEngine, needs_issuance
from concert.selector import select_domains
from concert.storage import CertificateRecordStore, InMemoryStorage, KVError

from conftest import FakeAuthority, make_cert

THRESHOLD = timedelta(hours=720)


def engine_for(cert_store, authority=None, now=None):
    if now is None:
        return ReconcileEngine(authority or FakeAuthority(), cert_store, THRESHOLD)
    return ReconcileEngine(authority or FakeAuthority(), cert_store, THRESHOLD, clock=lambda: now)


@pytest.mark.parametrize(
    "remaining, expected",
    [
        (THRESHOLD - timedelta(seconds=1), True),
        (THRESHOLD, False),
        (THRESHOLD + timedelta(seconds=1), False),
        (timedelta(0), True),
        (-timedelta(days=3), True),
    ],
)
def test_renewal_boundary(remaining, expected, fixed_now):
    assert needs_issuance(fixed_now + remaining, fixed_now, THRESHOLD) is expected


def test_missing_expiry_always_needs_issuance(fixed_now):
    assert needs_issuance(None, fixed_now, THRESHOLD)


def test_reconcile_renews_just_inside_threshold_only(cert_store, fixed_now):
    cert_store.put("inside.example.com", *make_cert("inside.example.com", fixed_now + THRESHOLD - timedelta(seconds=1)))
    cert_store.put("outside.example.com", *make_cert("outside.example.com", fixed_now + THRESHOLD + timedelta(seconds=1)))
    authority = FakeAuthority()

    result = engine_for(cert_store, authority, now=fixed_now).reconcile(
        {"inside.example.com", "outside.example.com"}
    )

    assert authority.obtained == ["inside.example.com"]
    assert result.issued == ["inside.example.com"]
    assert result.current == ["outside.example.com"]
    assert result.ok


def test_domain_without_record_is_issued(cert_store):
    authority = FakeAuthority()
    result = engine_for(cert_store, authority).reconcile({"new.example.com"})
    assert authority.obtained == ["new.example.com"]
    assert "new.example.com" in cert_store.list_expiries()
    assert result.issued == ["new.example.com"]


def test_failure_for_one_domain_does_not_stop_the_others(cert_store):
    authority = FakeAuthority(failing={"b.example.com"})
    result = engine_for(cert_store, authority).reconcile(
        {"a.example.com", "b.example.com", "c.example.com"}
    )

    assert sorted(authority.obtained) == ["a.example.com", "b.example.com", "c.example.com"]
    assert set(cert_store.list_expiries()) == {"a.example.com", "c.example.com"}
    assert list(result.failed) == ["b.example.com"]
    assert "rejected b.example.com" in result.failed["b.example.com"]
    assert not result.ok


def test_storage_failure_during_issue_is_per_domain():
    class FlakyKV(InMemoryStorage):
        def put_many(self, items):
            if any("bad.example.com" in k for k in items):
                raise KVError("write refused")
            super().put_many(items)

    store = CertificateRecordStore(FlakyKV(), "concert/certs")
    result = engine_for(store).reconcile({"bad.example.com", "good.example.com"})
    assert result.issued == ["good.example.com"]
    assert "write refused" in result.failed["bad.example.com"]


def test_listing_failure_aborts_the_pass():
    class DownKV(InMemoryStorage):
        def list_by_prefix(self, prefix):
            raise KVError("consul unreachable")

    authority = FakeAuthority()
    result = engine_for(CertificateRecordStore(DownKV(), "concert/certs"), authority).reconcile({"a.example.com"})
    assert result.aborted == "consul unreachable"
    assert authority.obtained == []
    assert not result.ok


def test_expiries_are_listed_once_per_pass(cert_store):
    calls = []
    real = cert_store.list_expiries

    def counting():
        calls.append(1)
        return real()

    cert_store.list_expiries = counting
    engine_for(cert_store).reconcile({"a.example.com", "b.example.com", "c.example.com"})
    assert len(calls) == 1


def test_concurrent_passes_issue_each_domain_once(cert_store):
    authority = FakeAuthority(delay=0.2)
    engine = engine_for(cert_store, authority)
    threads = [
        threading.Thread(target=engine.reconcile, args=({"a.example.com"},), kwargs={"reason": f"t{i}"})
        for i in range(3)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join(10)

    assert authority.obtained == ["a.example.com"]


def test_end_to_end_single_service(cert_store):
    services = {"web": ["concert-api.example.com"]}
    before = datetime.now(timezone.utc)

    engine_for(cert_store).reconcile(select_domains(services))

    expiries = cert_store.list_expiries()
    assert list(expiries) == ["api.example.com"]
    assert expiries["api.example.com"] - before > THRESHOLD
