"""Failure types raised by the components; main.py maps them to HTTP responses."""


class StorefrontError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(StorefrontError):
    status_code = 400


class AuthError(StorefrontError):
    status_code = 401


class NotFoundError(StorefrontError):
    status_code = 404


class PersistenceError(StorefrontError):
    status_code = 400


class ConfigError(Exception):
    """Bad or missing configuration, raised at start-up only."""
