from typing import List

from pydantic import BaseModel, Field

# ---------- Configuration ----------
DOH_ENDPOINT = "https://cloudflare-dns.com/dns-query"
DNS_TIMEOUT_MS = 5000
MAX_URL_LENGTH = 2048
MAX_DOMAIN_LENGTH = 253
MAX_TXT_SEGMENT_LENGTH = 255
USER_AGENT = "email-auth-check/0.2"

SPF_PREFIX = "v=spf1"
SPF_MAX_RECURSION_DEPTH = 5
SPF_MAX_INCLUDES = 10
SPF_DNS_LOOKUP_LIMIT = 10
SPF_EVALUATION_TIMEOUT_MS = 15000

DEFAULT_DKIM_SELECTORS = [
    "default", "google", "selector1", "selector2", "k1", "mx",
    "dkim", "s1", "s2", "mx1", "mx2", "fm1", "fm2", "k2", "protonmail",
    "everlytickey1", "everlytickey2", "mail", "mail1", "mail2"
]
# -----------------------------------


class ResolverConfig(BaseModel):
    """DNS-over-HTTPS transport settings."""

    endpoint: str = Field(default=DOH_ENDPOINT, description="DoH JSON endpoint URL")
    timeout_ms: int = Field(default=DNS_TIMEOUT_MS, gt=0, description="Per-query budget in milliseconds")
    max_url_length: int = Field(default=MAX_URL_LENGTH, gt=0)
    user_agent: str = USER_AGENT


class SPFLimits(BaseModel):
    """Budgets applied while walking an SPF include/redirect chain."""

    max_depth: int = Field(default=SPF_MAX_RECURSION_DEPTH, ge=0)
    max_includes: int = Field(default=SPF_MAX_INCLUDES, ge=0, description="Includes/redirects across the whole chain")
    max_dns_lookups: int = Field(default=SPF_DNS_LOOKUP_LIMIT, ge=1)
    evaluation_timeout_ms: int = Field(default=SPF_EVALUATION_TIMEOUT_MS, gt=0)


class CheckerConfig(BaseModel):
    resolver: ResolverConfig = Field(default_factory=ResolverConfig)
    spf: SPFLimits = Field(default_factory=SPFLimits)
    dkim_selectors: List[str] = Field(
        default_factory=lambda: DEFAULT_DKIM_SELECTORS.copy(),
        description="DKIM selectors probed in order",
    )
