"""
Custom exception hierarchy for the portal notification monitor.
Cycle-fatal and per-record failures are separate branches so the
orchestrator can tell them apart.
"""


class MonitorException(Exception):
    """Base exception for all monitor-related errors."""

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self):
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


# =============================================================================
# Session Exceptions
# =============================================================================


class AuthenticationError(MonitorException):
    """Login could not be completed after the bounded number of attempts."""

    pass


class SessionTimeoutError(AuthenticationError):
    """A probe or login call exceeded its timeout."""

    pass


# =============================================================================
# Scraper Exceptions
# =============================================================================


class ScrapeError(MonitorException):
    """Hard scrape failure: no snapshot could be produced."""

    pass


class SessionExpiredError(ScrapeError):
    """The scraper was redirected to the login gate."""

    pass


# =============================================================================
# Notification Exceptions
# =============================================================================


class NotifierError(MonitorException):
    """The notification channel rejected or failed to deliver a message."""

    pass


class DispatchError(MonitorException):
    """Per-record delivery failure. Never fatal to a cycle."""

    pass


# =============================================================================
# Persistence Exceptions
# =============================================================================


class PersistenceError(MonitorException):
    """State Store failure. Fatal to the cycle."""

    pass


# =============================================================================
# Configuration Exceptions
# =============================================================================


class ConfigurationException(MonitorException):
    """Exception for configuration errors."""

    pass
