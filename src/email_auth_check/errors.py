"""Error taxonomy shared by the resolver and the record validators."""

from typing import Optional

import dns.exception


class EmailAuthError(Exception):
    """Base class for every error raised by email_auth_check."""


class InvalidInput(EmailAuthError, ValueError):
    """A domain, selector or query URL failed syntax checks. Never retried."""


class StructuralError(EmailAuthError):
    """A record exists but cannot be parsed or carries an invalid policy."""


class DnsQueryError(EmailAuthError, dns.exception.DNSException):
    """A DNS-over-HTTPS query failed."""

    def __init__(self, message: str, name: str = "", rdtype: str = ""):
        super().__init__(message)
        self.name = name
        self.rdtype = rdtype


class NameNotFound(DnsQueryError):
    """NXDOMAIN: the queried name does not exist."""


class Timeout(DnsQueryError):
    def __init__(self, message: str, name: str = "", rdtype: str = "", budget_ms: int = 0):
        super().__init__(message, name, rdtype)
        self.budget_ms = budget_ms


class TransportError(DnsQueryError):
    """The HTTP transport failed or answered with a non-success status."""

    def __init__(self, message: str, name: str = "", rdtype: str = "",
                 status_code: Optional[int] = None, body: str = ""):
        super().__init__(message, name, rdtype)
        self.status_code = status_code
        self.body = body


class ResolutionError(DnsQueryError):
    """The DNS response carried a non-zero status other than NXDOMAIN."""

    def __init__(self, message: str, name: str = "", rdtype: str = "", status: Optional[int] = None):
        super().__init__(message, name, rdtype)
        self.status = status
