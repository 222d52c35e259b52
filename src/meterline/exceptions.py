"""Custom exception classes for usage metering and billing reconciliation."""


class MeterlineError(Exception):
    """Base exception carrying the HTTP status it maps to."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ConfigurationError(MeterlineError):
    """Raised when required configuration is missing or invalid."""


class MissingSettingsError(ConfigurationError):
    """Raised when required settings are absent at startup."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(f"Missing required configuration: {', '.join(missing)}")


class MissingWebhookSecretError(ConfigurationError):
    """Raised when the webhook signing secret is not configured."""

    def __init__(self) -> None:
        super().__init__(
            "STRIPE_WEBHOOK_SECRET must be set. Webhook signature verification is mandatory."
        )


class InvalidTierConfigError(ConfigurationError):
    """Raised when tier definitions cannot be loaded."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Invalid tier configuration: {reason}")


class AuthenticationError(MeterlineError):
    """Raised when the caller identity cannot be verified."""

    status_code = 401

    def __init__(self, reason: str = "Invalid token") -> None:
        super().__init__(reason)


class RateLimitExceeded(MeterlineError):
    """Raised when the per-minute rate window is saturated."""

    status_code = 429

    def __init__(self, limit: int, retry_after: int) -> None:
        self.limit = limit
        self.retry_after = retry_after
        super().__init__(f"Maximum {limit} requests per minute")


class QuotaExceeded(MeterlineError):
    """Raised when the monthly quota for the caller's tier is used up."""

    status_code = 403

    def __init__(self, count: int, limit: int, tier: str) -> None:
        self.count = count
        self.limit = limit
        self.tier = tier
        super().__init__(f"Monthly limit of {limit} requests reached for the '{tier}' tier")


class WebhookSignatureInvalid(MeterlineError):
    """Raised when a webhook body fails signature verification."""

    status_code = 400

    def __init__(self, reason: str) -> None:
        super().__init__(f"Webhook signature verification failed: {reason}")


class WebhookPayloadInvalid(MeterlineError):
    """Raised when a verified webhook event lacks required data."""

    status_code = 400

    def __init__(self, event_id: str | None, reason: str) -> None:
        self.event_id = event_id
        self.reason = reason
        super().__init__(reason)


class IdentityProviderError(MeterlineError):
    """Raised when the identity provider rejects or fails a metadata update."""

    status_code = 500

    def __init__(self, user_id: str, detail: str, upstream_status: int | None = None) -> None:
        self.user_id = user_id
        self.detail = detail
        self.upstream_status = upstream_status
        super().__init__(f"Failed to update user metadata for {user_id}: {detail}")


class StorageError(MeterlineError):
    """Raised when a key-value store operation fails."""

    status_code = 503

    def __init__(self, operation: str, key: str, detail: str) -> None:
        self.operation = operation
        self.key = key
        self.detail = detail
        super().__init__(f"Key-value store {operation} failed for '{key}': {detail}")
