from __future__ import annotations

import string

import pytest

from passwords import generate_password, hash_password, validate_password_policy, verify_password
from services.identity import fold_to_ascii, generate_username, username_base
from utils import ApiError
from validation import (
    check_cv_metadata,
    is_valid_national_id,
    is_valid_phone,
    validate_candidate,
    validate_decision,
    validate_employee_profile,
    validate_interview,
    validate_login,
    validate_position,
    validate_user,
)


def _candidate(**overrides):
    data = {
        "fullName": "Lê Minh Châu",
        "email": "Chau.Le@Example.com",
        "phone": "0912345678",
        "positionId": "POS-1",
        "cvUrl": "https://files.example.com/cv/chau.pdf",
    }
    data.update(overrides)
    return data


def test_username_folds_vietnamese_names():
    assert fold_to_ascii("Nguyễn Văn Đức") == "Nguyen Van Duc"
    assert username_base("Đặng Thị Hồng") == "dangthihong"
    assert generate_username("Nguyễn Văn An", []) == "nguyenvanan"


def test_username_appends_smallest_free_suffix():
    assert generate_username("Nguyễn Văn An", {"nguyenvanan"}) == "nguyenvanan1"
    taken = {"nguyenvanan", "nguyenvanan1", "nguyenvanan3"}
    assert generate_username("Nguyễn Văn An", taken) == "nguyenvanan2"
    # Existing usernames are compared case-insensitively.
    assert generate_username("Nguyen Van An", ["NguyenVanAn"]) == "nguyenvanan1"


def test_username_falls_back_when_name_has_no_letters():
    assert generate_username("!!! ???", []) == "user"
    assert generate_username("", {"user"}) == "user1"


def test_generated_passwords_meet_policy():
    seen = set()
    for _ in range(200):
        pwd = generate_password()
        assert len(pwd) == 10
        assert any(c in string.ascii_uppercase for c in pwd)
        assert any(c in string.ascii_lowercase for c in pwd)
        assert any(c in string.digits for c in pwd)
        validate_password_policy(pwd)
        seen.add(pwd)
    assert len(seen) > 190


def test_hash_and_verify_password():
    hashed = hash_password("Str0ngPassword")
    assert hashed.startswith("scrypt:")
    assert verify_password("Str0ngPassword", hashed) is True
    assert verify_password("str0ngpassword", hashed) is False
    assert verify_password("anything", "") is False


@pytest.mark.parametrize("weak", ["", "Sh0rt", "alllowercase1", "ALLUPPERCASE1", "NoDigitsHere", "FullwidthDigit１"])
def test_password_policy_rejects_weak_passwords(weak):
    with pytest.raises(ApiError) as ei:
        validate_password_policy(weak)
    assert ei.value.code == "BAD_REQUEST"


def test_login_validation_normalizes_email():
    assert validate_login({"email": " Admin@Company.com ", "password": "secret1"})["email"] == "admin@company.com"
    with pytest.raises(ApiError) as ei:
        validate_login({"email": "not-an-email", "password": "12345"})
    assert ei.value.code == "VALIDATION"
    assert set(ei.value.details["fields"]) == {"email", "password"}


def test_candidate_validation_reports_every_field():
    clean = validate_candidate(_candidate(), cv_max_bytes=1024)
    assert clean["email"] == "chau.le@example.com"

    with pytest.raises(ApiError) as ei:
        validate_candidate(
            _candidate(fullName="A", email="x@", phone="12345", positionId="", cvUrl=""),
            cv_max_bytes=1024,
        )
    fields = ei.value.details["fields"]
    assert set(fields) == {"fullName", "email", "phone", "positionId", "cvUrl"}
    assert ei.value.message == fields["fullName"]


def test_cv_metadata_checks_type_and_size():
    max_bytes = 10 * 1024 * 1024
    assert check_cv_metadata(mime_type="application/pdf", size=2048, file_name="cv.pdf", max_bytes=max_bytes) is None
    assert check_cv_metadata(mime_type="", size=None, file_name="https://x/cv.docx?sig=1", max_bytes=max_bytes) is None
    assert check_cv_metadata(mime_type="image/png", size=10, file_name="cv.png", max_bytes=max_bytes)
    assert check_cv_metadata(mime_type="", size=None, file_name="resume.exe", max_bytes=max_bytes)
    assert "10MB" in check_cv_metadata(mime_type="application/pdf", size=max_bytes + 1, file_name="", max_bytes=max_bytes)
    assert check_cv_metadata(mime_type="", size="abc", file_name="", max_bytes=max_bytes) == "Invalid CV size"


def test_interview_and_decision_notes_need_ten_characters():
    ok = validate_interview({"techNotes": "Solid SQL skills", "softNotes": "Clear communicator", "result": "pass"})
    assert ok["result"] == "PASS"
    with pytest.raises(ApiError) as ei:
        validate_interview({"techNotes": "ok", "softNotes": "ok", "result": "MAYBE"})
    assert set(ei.value.details["fields"]) == {"techNotes", "softNotes", "result"}

    assert validate_decision({"decision": "no_hire", "decisionNotes": "Not a fit for the team"})["decision"] == "NO_HIRE"
    with pytest.raises(ApiError):
        validate_decision({"decision": "HIRE", "decisionNotes": "short"})


def test_employee_profile_requires_twelve_digit_national_id():
    data = {"placeOfResidence": "12 Le Loi, Hue", "hometown": "Da Nang", "nationalId": "012345678901"}
    assert validate_employee_profile(data)["nationalId"] == "012345678901"
    with pytest.raises(ApiError) as ei:
        validate_employee_profile({**data, "nationalId": "01234567890"})
    assert list(ei.value.details["fields"]) == ["nationalId"]


@pytest.mark.parametrize(
    "value, valid",
    [
        ("012345678901", True),
        ("01234567890", False),
        ("0123456789012", False),
        ("01234567890a", False),
        ("0123 5678901", False),
        ("１２３４５６７８９０１２", False),
        ("١" * 12, False),
        ("", False),
    ],
)
def test_national_id_is_exactly_twelve_ascii_digits(value, valid):
    assert is_valid_national_id(value) is valid


@pytest.mark.parametrize(
    "value, valid",
    [
        ("091234567", True),
        ("091234567890", True),
        ("09123456", False),
        ("0912345678901", False),
        ("+84912345678", False),
        ("0912-345-678", False),
        ("٠" * 10, False),
        ("０９１２３４５６７８", False),
    ],
)
def test_phone_is_nine_to_twelve_ascii_digits(value, valid):
    assert is_valid_phone(value) is valid


def test_profile_rejects_non_ascii_national_id():
    data = {"placeOfResidence": "12 Le Loi, Hue", "hometown": "Da Nang", "nationalId": "１２３４５６７８９０１２"}
    with pytest.raises(ApiError) as ei:
        validate_employee_profile(data)
    assert list(ei.value.details["fields"]) == ["nationalId"]


@pytest.mark.parametrize("raw, expected", [("false", False), ("0", False), ("true", True), (True, True), (False, False)])
def test_position_is_open_parses_strings(raw, expected):
    assert validate_position({"title": "Data Engineer", "isOpen": raw})["isOpen"] is expected


def test_partial_user_validation_only_checks_supplied_keys():
    assert validate_user({"phone": "0987654321"}, partial=True) == {"phone": "0987654321"}
    with pytest.raises(ApiError) as ei:
        validate_user({"role": "OWNER"}, partial=True)
    assert list(ei.value.details["fields"]) == ["role"]
    with pytest.raises(ApiError):
        validate_user({"username": "ab", "email": "a@b.co", "phone": "0987654321", "fullName": "An", "role": "HR"})
