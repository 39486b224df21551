import os
from typing import Optional
from cryptography.fernet import Fernet, InvalidToken

from tradebot.core.errors import ConfigError

def decrypt(token: Optional[str], key: Optional[str] = None) -> Optional[str]:
    if not token:
        return None
    key = key or os.getenv("TRADEBOT_ENC_KEY")
    if not key:
        raise ConfigError("TRADEBOT_ENC_KEY is required to decrypt encrypted credentials")
    try:
        return Fernet(key.encode("utf-8")).decrypt(token.encode("utf-8")).decode("utf-8")
    except (InvalidToken, ValueError) as exc:
        raise ConfigError(f"Unable to decrypt credential: {type(exc).__name__}") from exc
