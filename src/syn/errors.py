from __future__ import annotations


class ConfigError(ValueError):
    pass


class ChatError(RuntimeError):
    pass


class APIError(ChatError):
    def __init__(self, status_code: int, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(f"API error (status {status_code}): {body.strip()[:500]}")
