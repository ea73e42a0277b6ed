import base64
import re
from datetime import datetime, timedelta
from urllib.parse import parse_qs, urlsplit

import pyotp
import pytest

from authgate.core.errors import GenerationError, RateLimitExceeded

SECRET = "JBSWY3DPEHPK3PXPJBSWY3DPEHPK3PXP"
MOMENT = datetime(2026, 3, 10, 12, 0, 0)


def code_at(moment, secret=SECRET):
    return pyotp.TOTP(secret).at(moment)


def test_enrollment_data_has_all_material(two_factor):
    data = two_factor.generate_enrollment_data("user@example.com")

    assert len(data.secret) == 32
    assert len(base64.b32decode(data.secret)) == 20
    assert data.qr_code_url.startswith("data:image/png;base64,")
    assert base64.b64decode(data.qr_code_url.split(",", 1)[1])[:8] == b"\x89PNG\r\n\x1a\n"

    assert len(data.backup_codes) == 8
    assert len(set(data.backup_codes)) == 8
    for code in data.backup_codes:
        assert re.fullmatch(r"[A-Z2-9]{4}-[A-Z2-9]{4}", code)

    assert data.manual_entry_key.replace(" ", "") == data.secret
    assert all(len(group) == 4 for group in data.manual_entry_key.split(" "))


def test_generated_secret_round_trips(two_factor):
    data = two_factor.generate_enrollment_data("user@example.com")

    assert two_factor.verify_code(data.secret, pyotp.TOTP(data.secret).now())


def test_generated_secrets_are_unique(two_factor):
    assert two_factor.generate_secret() != two_factor.generate_secret()


def test_provisioning_uri_carries_all_parameters(two_factor):
    uri = two_factor.build_provisioning_uri("user@example.com", SECRET)
    parts = urlsplit(uri)
    params = parse_qs(parts.query)

    assert parts.scheme == "otpauth"
    assert parts.netloc == "totp"
    assert "user%40example.com" in parts.path or "user@example.com" in parts.path
    assert params["secret"] == [SECRET]
    assert params["issuer"] == ["SalesKik"]
    assert params["algorithm"] == ["SHA1"]
    assert params["digits"] == ["6"]
    assert params["period"] == ["30"]


def test_generation_failure_raises_generation_error(two_factor, monkeypatch):
    def broken_render(data):
        raise OSError("no image backend")

    monkeypatch.setattr(two_factor, "render_qr_code", broken_render)

    with pytest.raises(GenerationError) as exc_info:
        two_factor.generate_enrollment_data("user@example.com")
    assert exc_info.value.status_code == 500


@pytest.mark.parametrize("offset", [0, -30, 30])
def test_code_accepted_within_window(two_factor, offset):
    code = code_at(MOMENT + timedelta(seconds=offset))

    assert two_factor.verify_code(SECRET, code, for_time=MOMENT)


@pytest.mark.parametrize("offset", [-90, 90])
def test_code_rejected_outside_window(two_factor, offset):
    code = code_at(MOMENT + timedelta(seconds=offset))

    assert not two_factor.verify_code(SECRET, code, for_time=MOMENT)


def test_zero_tolerance_only_accepts_current_step(two_factor):
    assert two_factor.verify_code(SECRET, code_at(MOMENT), tolerance_window=0, for_time=MOMENT)
    assert not two_factor.verify_code(
        SECRET, code_at(MOMENT + timedelta(seconds=30)), tolerance_window=0, for_time=MOMENT
    )


def test_whitespace_in_code_is_ignored(two_factor):
    code = code_at(MOMENT)

    assert two_factor.verify_code(SECRET, f" {code[:3]} {code[3:]}\t", for_time=MOMENT)


@pytest.mark.parametrize(
    "submitted",
    ["", "12345", "1234567", "abcdef", "12a456", "١٢٣٤٥٦", "123-456", None, 123456],
)
def test_malformed_codes_are_rejected(two_factor, submitted):
    assert two_factor.verify_code(SECRET, submitted, for_time=MOMENT) is False


def test_invalid_secret_fails_closed(two_factor):
    assert two_factor.verify_code("not-base32!!", "123456", for_time=MOMENT) is False


def test_validate_setup_accepts_current_code(two_factor):
    result = two_factor.validate_setup("user@example.com", SECRET, pyotp.TOTP(SECRET).now())

    assert result.valid
    assert result.error is None


@pytest.mark.parametrize(
    "email, secret, error",
    [
        ("not-an-email", SECRET, "Invalid email format"),
        ("user@example.com", "has spaces 1890", "Invalid secret format"),
        ("user@example.com", SECRET, "Invalid verification code"),
    ],
)
def test_validate_setup_reports_first_failure(two_factor, email, secret, error):
    # O código é malformado; só importa quando e-mail e segredo passam
    result = two_factor.validate_setup(email, secret, "abc")

    assert not result.valid
    assert result.error == error


def test_backup_code_is_single_use(two_factor):
    codes = ["ABCD-EFGH", "JKLM-NPQR", "STUV-WXYZ"]

    first = two_factor.verify_backup_code(codes, "jklm-npqr")
    assert first.valid
    assert first.remaining_codes == ["ABCD-EFGH", "STUV-WXYZ"]

    second = two_factor.verify_backup_code(first.remaining_codes, "JKLM-NPQR")
    assert not second.valid
    assert second.remaining_codes == ["ABCD-EFGH", "STUV-WXYZ"]

    # A lista original não é alterada
    assert codes == ["ABCD-EFGH", "JKLM-NPQR", "STUV-WXYZ"]


def test_backup_code_normalizes_whitespace_and_case(two_factor):
    result = two_factor.verify_backup_code(["ABCD-EFGH"], "  abcd-\nefgh ")

    assert result.valid
    assert result.remaining_codes == []


def test_unknown_backup_code_leaves_set_unchanged(two_factor):
    result = two_factor.verify_backup_code(["ABCD-EFGH"], "ZZZZ-ZZZZ")

    assert not result.valid
    assert result.remaining_codes == ["ABCD-EFGH"]


def test_enforce_rate_limit_raises_with_wait_time(two_factor):
    for _ in range(3):
        two_factor.enforce_rate_limit("2fa_generate:a@b.co", 3, 300000, "Too many attempts.")

    with pytest.raises(RateLimitExceeded) as exc_info:
        two_factor.enforce_rate_limit("2fa_generate:a@b.co", 3, 300000, "Too many attempts.")

    assert exc_info.value.message == "Too many attempts. Please wait 5 minutes."
    assert 0 < exc_info.value.retry_after <= 300
