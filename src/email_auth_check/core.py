import logging
import time
from typing import List, Optional

from .config import CheckerConfig
from .dkim import DKIMValidator, estimate_key_bits
from .dmarc import DMARCValidator
from .dns_utils import DohResolver
from .models import Report, SPFValidationResult
from .scoring import score
from .spf import SPFEvaluator

logger = logging.getLogger(__name__)


async def generate_report(domain: str, selectors: Optional[List[str]] = None,
                          config: Optional[CheckerConfig] = None,
                          resolver: Optional[DohResolver] = None) -> Report:
    """Run the SPF, DMARC and DKIM checks for one domain and score them.

    ``selectors`` overrides ``config.dkim_selectors``. When no resolver is
    given, one is created from ``config.resolver`` and closed afterwards.
    """
    config = config or CheckerConfig()
    selectors = list(selectors) if selectors is not None else config.dkim_selectors
    owns_resolver = resolver is None
    resolver = resolver or DohResolver(config.resolver)

    t0 = time.time()
    time_utc = time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
    logger.info(f"Starting email authentication check for domain: {domain}")
    try:
        spf = await SPFEvaluator(resolver, config.spf).evaluate(domain)
        dmarc = await DMARCValidator(resolver).validate(domain)
        dkim = await DKIMValidator(resolver).probe_selectors(domain, selectors)
        mx = await resolver.resolve_mx(domain)
    finally:
        if owns_resolver:
            await resolver.aclose()

    breakdown = score(spf, dkim, dmarc)
    logger.info(f"Email authentication check completed for domain: {domain} (score {breakdown.total})")
    return Report(
        domain=domain,
        time_utc=time_utc,
        spf=spf,
        dkim=dkim,
        dmarc=dmarc,
        mx=mx,
        score=breakdown,
        elapsed_seconds=round(time.time() - t0, 2),
    )


def _spf_tree_lines(result: SPFValidationResult, indent: int = 2) -> List[str]:
    lines = []
    pad = " " * indent
    for relation, links in (("include", result.includes), ("redirect", result.redirects)):
        for link in links:
            state = "valid" if link.result.is_valid else "invalid"
            lines.append(f"{pad}- {relation}:{link.domain} ({state}) {link.result.record or ''}".rstrip())
            lines.extend(_spf_tree_lines(link.result, indent + 2))
    return lines


def human_report(report: Report) -> str:
    lines = []
    d = report
    lines.append(f"Email authentication report for: {d.domain}")
    lines.append(f"Checked at (UTC): {d.time_utc}")
    lines.append("-" * 60)
    lines.append("SPF:")
    if not d.spf.record:
        lines.append("  - No SPF TXT record found.")
    else:
        lines.append(f"  - Record: {d.spf.record}")
        lines.append(f"  - Valid: {'yes' if d.spf.is_valid else 'no'}")
        lines.append(f"  - DNS lookups performed: {d.spf.dns_lookup_count}")
        if d.spf.effective_all:
            lines.append(f"  - Effective 'all' mechanism: {d.spf.effective_all}")
        lines.extend(_spf_tree_lines(d.spf))
    for e in d.spf.errors:
        lines.append(f"    ! error: {e}")
    for w in d.spf.warnings:
        lines.append(f"    ? warning: {w}")
    lines.append("")
    lines.append("DMARC:")
    if not d.dmarc.record:
        lines.append("  - No DMARC record (no _dmarc.domain TXT).")
    else:
        lines.append(f"  - DMARC record: {d.dmarc.record}")
        for k, v in d.dmarc.tags.items():
            lines.append(f"    - {k} = {v}")
    if d.dmarc.error:
        lines.append(f"    ! error: {d.dmarc.error}")
    lines.append("")
    lines.append("DKIM:")
    found = [s for s in d.dkim.selectors if s.valid]
    if not found:
        lines.append(f"  - No DKIM record found for {len(d.dkim.selectors_checked)} selectors checked.")
    else:
        for info in found:
            lines.append(f"  - Selector: {info.selector} (DNS name: {info.selector}._domainkey.{info.domain})")
            bits = estimate_key_bits(info.record)
            if bits:
                lines.append(f"    - approx key bits: {bits}")
            lines.append(f"    - raw TXT (first 200 chars): {(info.record or '')[:200]}")
    lines.append("")
    lines.append("MX:")
    if not d.mx:
        lines.append("  - No MX records.")
    for mx in d.mx:
        lines.append(f"  - {mx.priority} {mx.exchange}")
    lines.append("")
    lines.append("Summary & score:")
    lines.append(f"  - Score: {d.score.total} (SPF {d.score.spf}/30, DKIM {d.score.dkim}/30, DMARC {d.score.dmarc}/40)")
    for category in ("spf", "dkim", "dmarc"):
        lines.append(f"    - {category.upper()}: {d.score.reasons.get(category, '')}")
        lines.append(f"      -> {d.score.recommendations.get(category, '')}")
    lines.append("-" * 60)
    lines.append(f"Elapsed time: {d.elapsed_seconds}s")
    return "\n".join(lines)
