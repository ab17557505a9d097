from __future__ import annotations

import pytest

from imagegate.models import GenerateImageRequest, LoginRequest, clamp_count


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (2, 2),
        ("2", 2),
        (9, 4),
        (0, 1),
        (2.7, 2),
        (None, 1),
        (True, 1),
        ("many", 1),
        (float("inf"), 4),
        ("1e999", 4),
        (float("-inf"), 1),
        (float("nan"), 1),
        ("nan", 1),
    ],
)
def test_clamp_count(value, expected):
    assert clamp_count(value) == expected


def test_request_count_is_clamped_on_parse():
    request = GenerateImageRequest.model_validate({"prompt": "a cat", "count": float("inf")})
    assert request.count == 4


def test_login_password_is_coerced_to_text():
    assert LoginRequest.model_validate({"password": 123}).password == "123"
    assert LoginRequest.model_validate({"password": None}).password == ""
    assert LoginRequest.model_validate({}).password == ""
