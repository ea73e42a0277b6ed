import hashlib
from datetime import timedelta

import pytest

from authgate.models.device import RequestMetadata
from authgate.services.device_trust_service import DeviceTrustService

CHROME_ON_WINDOWS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0 Safari/537.36"
)


@pytest.fixture
def metadata():
    return RequestMetadata(
        user_agent=CHROME_ON_WINDOWS,
        accept_language="pt-BR,pt;q=0.9",
        accept_encoding="gzip, deflate, br",
        ip_address="203.0.113.7",
        accept="text/html",
    )


def test_fingerprint_is_deterministic(device_trust, metadata):
    first = device_trust.fingerprint(metadata)

    assert first == device_trust.fingerprint(metadata.model_copy())
    assert len(first) == 32


def test_fingerprint_changes_with_any_attribute(device_trust, metadata):
    original = device_trust.fingerprint(metadata)

    assert device_trust.fingerprint(metadata.model_copy(update={"ip_address": "198.51.100.1"})) != original
    assert device_trust.fingerprint(metadata.model_copy(update={"user_agent": "curl/8.0"})) != original


def test_fingerprint_of_empty_metadata(device_trust):
    assert device_trust.fingerprint(RequestMetadata()) == hashlib.sha256(b"||||").hexdigest()[:32]


def test_fingerprint_covers_attributes_after_the_user_agent(device_trust, metadata):
    original = device_trust.fingerprint(metadata)

    for field, value in [
        ("accept_language", "ru-RU"),
        ("accept_encoding", "br"),
        ("ip_address", "198.51.100.99"),
        ("accept", "application/json"),
    ]:
        assert device_trust.fingerprint(metadata.model_copy(update={field: value})) != original


def test_trusted_device_is_recognized(device_trust, metadata):
    fingerprint = device_trust.fingerprint(metadata)

    assert not device_trust.is_trusted("user@example.com", fingerprint)

    device_id = device_trust.trust("user@example.com", fingerprint, metadata)

    assert len(device_id) == 32
    assert device_trust.is_trusted("user@example.com", fingerprint)
    assert not device_trust.is_trusted("other@example.com", fingerprint)


def test_other_device_of_same_user_is_not_trusted(device_trust, metadata):
    device_trust.trust("user@example.com", device_trust.fingerprint(metadata), metadata)

    # Mesmo prefixo de User-Agent, resto diferente
    stranger = RequestMetadata(
        user_agent="Mozilla/5.0 (Windows NT 6.1; rv:115.0) Gecko/20100101 Firefox/115.0",
        accept_language="ru",
        accept_encoding="br",
        ip_address="198.51.100.99",
        accept="*/*",
    )

    assert device_trust.fingerprint(stranger) != device_trust.fingerprint(metadata)
    assert not device_trust.is_trusted("user@example.com", device_trust.fingerprint(stranger))

    assessment = device_trust.assess_risk("user@example.com", stranger, None)
    assert assessment.required
    assert assessment.risk_level == "medium"


def test_use_bumps_last_used_but_not_expiry(device_trust, metadata, clock):
    fingerprint = device_trust.fingerprint(metadata)
    device_trust.trust("user@example.com", fingerprint, metadata)
    created = device_trust.list("user@example.com")[0]

    clock.advance(days=10)
    assert device_trust.is_trusted("user@example.com", fingerprint)

    device = device_trust.list("user@example.com")[0]
    assert device.last_used == clock.now
    assert device.expires_at == created.expires_at == created.created_at + timedelta(days=30)


def test_trust_expires_after_thirty_days(device_trust, metadata, clock):
    fingerprint = device_trust.fingerprint(metadata)
    device_trust.trust("user@example.com", fingerprint, metadata)

    clock.advance(days=30)
    assert device_trust.is_trusted("user@example.com", fingerprint)

    clock.advance(seconds=1)
    assert not device_trust.is_trusted("user@example.com", fingerprint)
    # Verificação preguiçosa remove o registro vencido
    assert len(device_trust.store) == 0


def test_list_hides_expired_devices_before_sweep(device_trust, metadata, clock):
    device_trust.trust("user@example.com", device_trust.fingerprint(metadata), metadata)

    clock.advance(days=31)

    assert device_trust.list("user@example.com") == []
    assert len(device_trust.store) == 1


def test_list_is_sorted_by_most_recent_use(device_trust, metadata, clock):
    older = device_trust.fingerprint(metadata)
    device_trust.trust("user@example.com", older, metadata)

    clock.advance(hours=1)
    phone = metadata.model_copy(update={"user_agent": "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0) Safari/604.1"})
    device_trust.trust("user@example.com", device_trust.fingerprint(phone), phone)

    assert [d.name for d in device_trust.list("user@example.com")] == ["iPhone", "Chrome Browser on Windows"]

    clock.advance(hours=1)
    device_trust.is_trusted("user@example.com", older)

    assert [d.name for d in device_trust.list("user@example.com")] == ["Chrome Browser on Windows", "iPhone"]


def test_remove_device(device_trust, metadata):
    fingerprint = device_trust.fingerprint(metadata)
    device_id = device_trust.trust("user@example.com", fingerprint, metadata)

    assert not device_trust.remove("other@example.com", device_id)
    assert not device_trust.remove("user@example.com", "unknown-id")
    assert device_trust.remove("user@example.com", device_id)
    assert not device_trust.is_trusted("user@example.com", fingerprint)


@pytest.mark.parametrize(
    "user_agent, expected",
    [
        (CHROME_ON_WINDOWS, "Chrome Browser on Windows"),
        ("Mozilla/5.0 (Macintosh; Intel Mac OS X 14_0) Firefox/121.0", "Firefox Browser on macOS"),
        ("Mozilla/5.0 (Macintosh; Intel Mac OS X 14_0) Version/17.0 Safari/605.1", "Safari Browser on macOS"),
        ("Mozilla/5.0 (iPhone; CPU iPhone OS 17_0) Safari/604.1", "iPhone"),
        ("Mozilla/5.0 (Linux; Android 14) Chrome/120.0 Mobile", "Android Device"),
        ("Mozilla/5.0 (X11; Linux x86_64) Firefox/121.0", "Firefox Browser"),
        ("curl/8.0", "Unknown Device"),
        ("", "Unknown Device"),
    ],
)
def test_describe_device(user_agent, expected):
    assert DeviceTrustService.describe_device(user_agent) == expected


def test_risk_is_low_for_trusted_device(device_trust, metadata):
    device_trust.trust("user@example.com", device_trust.fingerprint(metadata), metadata)

    assessment = device_trust.assess_risk("user@example.com", metadata, None)

    assert not assessment.required
    assert assessment.risk_level == "low"
    assert assessment.reason == "Trusted device within 30-day window"


def test_risk_is_high_during_unusual_hours(device_trust, metadata, clock):
    clock.now = clock.now.replace(hour=3)

    assessment = device_trust.assess_risk("user@example.com", metadata, clock.now - timedelta(hours=1))

    assert assessment.required
    assert assessment.risk_level == "high"
    assert assessment.reason == "Login attempt during unusual hours"


@pytest.mark.parametrize("hour, unusual", [(5, True), (6, False), (22, False), (23, True)])
def test_unusual_hour_boundaries(device_trust, metadata, clock, hour, unusual):
    clock.now = clock.now.replace(hour=hour)

    assessment = device_trust.assess_risk("user@example.com", metadata, None)

    assert (assessment.reason == "Login attempt during unusual hours") is unusual


def test_risk_is_high_after_long_absence(device_trust, metadata, clock):
    assessment = device_trust.assess_risk("user@example.com", metadata, clock.now - timedelta(days=8))

    assert assessment.required
    assert assessment.risk_level == "high"
    assert assessment.reason == "Long time since last login"


@pytest.mark.parametrize("last_login_delta", [timedelta(days=1), None])
def test_risk_is_medium_for_new_device(device_trust, metadata, clock, last_login_delta):
    last_login = clock.now - last_login_delta if last_login_delta else None

    assessment = device_trust.assess_risk("user@example.com", metadata, last_login)

    assert assessment.required
    assert assessment.risk_level == "medium"
    assert assessment.reason == "New device detected"


def test_expired_device_falls_back_to_risk_heuristics(device_trust, metadata, clock):
    device_trust.trust("user@example.com", device_trust.fingerprint(metadata), metadata)
    clock.advance(days=31)

    assessment = device_trust.assess_risk("user@example.com", metadata, None)

    assert assessment.required
    assert assessment.reason == "New device detected"


def test_sweep_and_statistics(device_trust, metadata, clock):
    device_trust.trust("a@example.com", device_trust.fingerprint(metadata), metadata)
    clock.advance(days=20)
    other = metadata.model_copy(update={"ip_address": "198.51.100.1"})
    device_trust.trust("b@example.com", device_trust.fingerprint(other), other)
    clock.advance(days=15)

    stats = device_trust.statistics()
    assert stats.total_trusted_devices == 2
    assert stats.active_devices == 1
    assert stats.expired_devices == 1

    assert device_trust.sweep_expired() == 1
    assert device_trust.sweep_expired() == 0
    assert len(device_trust.store) == 1
    assert device_trust.list("b@example.com")[0].user_id == "b@example.com"
