import time

from itsdangerous.timed import TimestampSigner

from auth import issue_session_token, user_id_from_token


def test_token_round_trip() -> None:
    token = issue_session_token(42)
    assert user_id_from_token(token) == 42


def test_tampered_or_missing_tokens_are_anonymous() -> None:
    token = issue_session_token(42)
    assert user_id_from_token(None) is None
    assert user_id_from_token("") is None
    assert user_id_from_token(token[:-2] + "xx") is None
    assert user_id_from_token("not-a-token") is None


def test_non_positive_user_ids_are_rejected() -> None:
    assert user_id_from_token(issue_session_token(0)) is None
    assert user_id_from_token(issue_session_token(-3)) is None


def test_expired_token(monkeypatch) -> None:
    two_days_ago = int(time.time()) - 48 * 3600
    monkeypatch.setattr(TimestampSigner, "get_timestamp", lambda self: two_days_ago)
    token = issue_session_token(7)
    monkeypatch.undo()
    assert user_id_from_token(token) is None
