import pytest

from starwin.auth import check_password, verify_password
from starwin.errors import AuthMismatchError


def test_verify_password():
    assert verify_password("123451", "123451")
    assert not verify_password("12345", "123451")
    assert not verify_password("", "123451")


def test_check_password_raises_on_mismatch(caplog):
    check_password("s3cret", "s3cret")
    with pytest.raises(AuthMismatchError):
        check_password("wrong", "s3cret")
    assert "wrong" not in caplog.text


def test_empty_secret_never_matches():
    with pytest.raises(AuthMismatchError):
        check_password("", "")
