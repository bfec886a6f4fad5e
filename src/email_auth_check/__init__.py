"""SPF, DKIM and DMARC record evaluation with a weighted compliance score."""

from .config import CheckerConfig, ResolverConfig, SPFLimits
from .core import generate_report, human_report
from .dkim import DKIMValidator
from .dmarc import DMARCValidator
from .dns_utils import DohResolver
from .errors import (
    DnsQueryError,
    EmailAuthError,
    InvalidInput,
    NameNotFound,
    ResolutionError,
    StructuralError,
    Timeout,
    TransportError,
)
from .scoring import score
from .spf import SPFEvaluator, parse_spf

__version__ = "0.2.0"

__all__ = [
    "CheckerConfig",
    "DKIMValidator",
    "DMARCValidator",
    "DnsQueryError",
    "DohResolver",
    "EmailAuthError",
    "InvalidInput",
    "NameNotFound",
    "ResolutionError",
    "ResolverConfig",
    "SPFEvaluator",
    "SPFLimits",
    "StructuralError",
    "Timeout",
    "TransportError",
    "generate_report",
    "human_report",
    "parse_spf",
    "score",
]
