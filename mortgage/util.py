import hashlib
import hmac
from enum import Enum

from mortgage.settings import app_settings


# https://fastapi.tiangolo.com/tutorial/path-operation-configuration/#tags-with-enums
class Tags(Enum):
    applications = "applications"
    meta = "meta"
    webhooks = "webhooks"


def get_signature(payload: bytes, secret: str | None = None) -> str:
    """
    Calculate the hex HMAC-SHA256 of a payload, with which webhook providers sign request bodies.

    :param payload: The raw request body.
    :param secret: The shared secret. Defaults to :attr:`~mortgage.settings.Settings.webhook_secret`.
    """
    key = (secret if secret is not None else app_settings.webhook_secret).encode()
    return hmac.new(key, payload, digestmod=hashlib.sha256).hexdigest()


def is_valid_signature(payload: bytes, signature: str, secret: str | None = None) -> bool:
    return hmac.compare_digest(get_signature(payload, secret).encode(), signature.strip().lower().encode())
