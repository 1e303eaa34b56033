"""
Telegram login and session tokens

Telegram sends two kinds of signed payloads: Mini-App initData (a query
string) and Login Widget data (a flat object). Both are checked against
the bot token before a user is looked up or created. Sessions are signed,
time-limited bearer tokens.
"""

import hashlib
import hmac
import json
import time
from typing import Any, Dict, Mapping, Optional
from urllib.parse import parse_qsl

import structlog
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

logger = structlog.get_logger(__name__)


class TelegramAuthError(ValueError):
    pass


class InvalidSession(ValueError):
    pass


def _data_check_string(data: Mapping[str, Any]) -> str:
    return "\n".join(f"{key}={data[key]}" for key in sorted(data) if key != "hash")


def _check_auth_date(auth_date: Any, max_age: int, now: Optional[float]) -> None:
    if not max_age:
        return
    try:
        auth_date = int(auth_date)
    except (TypeError, ValueError):
        raise TelegramAuthError("Invalid Telegram data: auth_date is missing") from None
    now = now if now is not None else time.time()
    if now - auth_date > max_age:
        raise TelegramAuthError("Invalid Telegram data: payload is too old")


def validate_init_data(init_data: str, bot_token: str, max_age: int = 0, now: Optional[float] = None) -> Dict[str, Any]:
    """Verify Mini-App initData and return the Telegram user it carries."""
    data = dict(parse_qsl(init_data, keep_blank_values=True))
    received_hash = data.get("hash")
    raw_user = data.get("user")
    if not received_hash or not raw_user:
        raise TelegramAuthError("Invalid Telegram data: hash or user is missing")

    secret = hmac.new(b"WebAppData", bot_token.encode(), hashlib.sha256).digest()
    expected = hmac.new(secret, _data_check_string(data).encode(), hashlib.sha256).hexdigest()
    if not hmac.compare_digest(expected, received_hash):
        logger.warning("telegram_hash_mismatch", source="init_data")
        raise TelegramAuthError("Invalid Telegram data: hash mismatch")

    _check_auth_date(data.get("auth_date"), max_age, now)
    try:
        user = json.loads(raw_user)
    except json.JSONDecodeError:
        raise TelegramAuthError("Invalid Telegram data: user is not JSON") from None
    if not isinstance(user, dict) or "id" not in user:
        raise TelegramAuthError("Invalid Telegram data: user has no id")
    return user


def validate_widget_data(payload: Mapping[str, Any], bot_token: str, max_age: int = 0, now: Optional[float] = None) -> Dict[str, Any]:
    """Verify Login Widget data; returns the payload without the hash."""
    data = {k: v for k, v in payload.items() if v is not None}
    received_hash = data.get("hash")
    if not received_hash:
        raise TelegramAuthError("Invalid Telegram data: hash is missing")

    secret = hashlib.sha256(bot_token.encode()).digest()
    expected = hmac.new(secret, _data_check_string(data).encode(), hashlib.sha256).hexdigest()
    if not hmac.compare_digest(expected, str(received_hash)):
        logger.warning("telegram_hash_mismatch", source="widget")
        raise TelegramAuthError("Invalid Telegram data: hash mismatch")

    _check_auth_date(data.get("auth_date"), max_age, now)
    return {k: v for k, v in data.items() if k != "hash"}


def telegram_display_name(tg_user: Mapping[str, Any]) -> str:
    return f"{tg_user.get('first_name', '')} {tg_user.get('last_name') or ''}".strip()


class SessionService:
    """Issues and checks signed session tokens."""

    def __init__(self, secret_key: str, max_age: int):
        self.max_age = max_age
        self._serializer = URLSafeTimedSerializer(secret_key, salt="cryptocraft-session")

    def issue(self, user_id: str) -> str:
        return self._serializer.dumps({"sub": user_id})

    def verify(self, token: str) -> str:
        try:
            payload = self._serializer.loads(token, max_age=self.max_age)
        except SignatureExpired:
            raise InvalidSession("Session expired") from None
        except BadSignature:
            raise InvalidSession("Invalid session token") from None
        return payload["sub"]
