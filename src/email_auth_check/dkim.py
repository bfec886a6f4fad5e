import logging
import re
from typing import Iterable, Optional

from .dns_utils import DohResolver, flatten_txt, is_valid_domain, is_valid_selector
from .errors import EmailAuthError, NameNotFound
from .models import DKIMCheck, DKIMValidationResult

logger = logging.getLogger(__name__)

DKIM_RECORD_RE = re.compile(r"v=DKIM1\s*;[^\n]+", re.I)
DKIM_BITS_RE = re.compile(r"\bbits=(\d+)")
DKIM_KEY_RE = re.compile(r"\bp=([A-Za-z0-9+/=]+)")


def estimate_key_bits(record: str) -> int:
    """Rough public-key size for a DKIM record.

    An explicit ``bits=`` tag wins; otherwise the decoded length of the
    base64 ``p=`` value is bucketed into 2048, 1024 or 512. Returns 0 when
    the record carries no key.
    """
    if not record:
        return 0
    m = DKIM_BITS_RE.search(record)
    if m:
        return int(m.group(1))
    key = DKIM_KEY_RE.search(record)
    if not key:
        return 0
    key_bytes = len(key.group(1)) * 6 / 8
    if key_bytes > 256:
        return 2048
    if key_bytes > 128:
        return 1024
    return 512


class DKIMValidator:
    def __init__(self, resolver: DohResolver):
        self.resolver = resolver

    async def validate(self, selector: str, domain: str) -> DKIMValidationResult:
        """Look up <selector>._domainkey.<domain> and extract the DKIM1 record."""
        if not is_valid_selector(selector):
            return DKIMValidationResult(selector=selector, domain=domain, valid=False,
                                        error="Invalid DKIM selector")
        if not is_valid_domain(domain):
            return DKIMValidationResult(selector=selector, domain=domain, valid=False, error="Invalid domain")

        name = f"{selector}._domainkey.{domain}"
        try:
            txts = await self.resolver.resolve_txt(name)
        except NameNotFound:
            logger.warning(f"No DKIM record for selector '{selector}' on domain '{domain}' (NXDOMAIN)")
            return DKIMValidationResult(selector=selector, domain=domain, valid=False,
                                        error="No DKIM record found (NXDOMAIN)")
        except EmailAuthError as e:
            logger.warning(f"DNS error for selector '{selector}' on domain '{domain}': {e}")
            return DKIMValidationResult(selector=selector, domain=domain, valid=False, error=str(e))

        match = DKIM_RECORD_RE.search("\n".join(flatten_txt(txts)))
        if not match:
            return DKIMValidationResult(selector=selector, domain=domain, valid=False,
                                        error="No DKIM record found")
        logger.debug(f"Found DKIM record for {name}")
        return DKIMValidationResult(selector=selector, domain=domain, valid=True, record=match.group(0))

    async def probe_selectors(self, domain: str, selectors: Iterable[str]) -> DKIMCheck:
        """Validate each selector in order; the first valid one is reported."""
        results = []
        first_error: Optional[str] = None
        # sequential so that "first match wins" is deterministic
        for sel in selectors:
            res = await self.validate(sel, domain)
            results.append(res)
            if res.error and first_error is None:
                first_error = res.error

        check = DKIMCheck(
            selectors=sorted(results, key=lambda r: not r.valid),
            selectors_checked=[r.selector for r in results],
        )
        first_valid = next((r for r in results if r.valid), None)
        if first_valid:
            check.valid = True
            check.selector = first_valid.selector
            check.record = first_valid.record
        else:
            check.error = first_error or "No DKIM selectors checked"
        return check
