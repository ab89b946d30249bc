import re
from datetime import datetime, timezone

from services.naming_service import (
    NICKNAME_PREFIXES,
    default_session_name,
    generate_nickname,
    generate_session_code,
)


def test_session_code_format():
    for _ in range(50):
        assert re.fullmatch(r"[A-Z0-9]{6}", generate_session_code())


def test_nickname_format():
    for _ in range(50):
        nickname = generate_nickname()
        prefix, number = nickname.rsplit(" #", 1)
        assert prefix in NICKNAME_PREFIXES
        assert 0 <= int(number) < 10000


def test_default_session_name_uses_creation_date():
    created = datetime(2026, 3, 14, 21, 30, tzinfo=timezone.utc)
    assert default_session_name(created) == "Poker Night 2026-03-14"
