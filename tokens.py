from typing import Optional

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from config import get_settings
from errors import TokenExpired, TokenInvalid


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.token_secret, salt="auth-token")


def issue_token(user_id: str, email: str) -> str:
    serializer = _serializer()
    return serializer.dumps({"id": user_id, "email": email})


def verify_token(token: str, max_age: Optional[int] = None) -> dict[str, str]:
    if max_age is None:
        max_age = get_settings().token_max_age_secs
    serializer = _serializer()
    try:
        data = serializer.loads(token, max_age=max_age)
    except SignatureExpired as exc:
        raise TokenExpired() from exc
    except BadSignature as exc:
        raise TokenInvalid() from exc

    if not isinstance(data, dict) or not data.get("id") or not data.get("email"):
        raise TokenInvalid()
    return {"id": str(data["id"]), "email": str(data["email"])}
