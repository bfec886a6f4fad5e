"""SPF record parsing and recursive include/redirect evaluation.

Only record existence, syntax and policy strength are checked; no sending IP
is ever matched against the mechanisms.
"""

import asyncio
import ipaddress
import logging
import re
from typing import Optional, Sequence

from .config import SPF_PREFIX, SPFLimits
from .dns_utils import DohResolver, clean_domain, flatten_txt, is_valid_domain
from .errors import EmailAuthError, NameNotFound
from .models import SPFLink, SPFRecord, SPFValidationResult

logger = logging.getLogger(__name__)

SPF_TERM_RE = re.compile(r"^([+\-~?]?)([a-z][a-z0-9_.-]*)([:=/]?)(.*)$", re.I)
ALL_QUALIFIERS = ("+all", "-all", "~all", "?all")
MAX_MECHANISM_LENGTH = 255


def _target_domain(value: str) -> str:
    return value.split("/", 1)[0]


def _is_valid_target(value: str) -> bool:
    domain = _target_domain(value)
    return len(domain) <= MAX_MECHANISM_LENGTH and is_valid_domain(domain)


def _is_network(value: str, version: int) -> bool:
    try:
        return ipaddress.ip_network(value, strict=False).version == version
    except ValueError:
        return False


def parse_spf(spf_text: str) -> Optional[SPFRecord]:
    """Parse an SPF string into an SPFRecord.

    Returns None when the text is not an SPF record at all. Terms that are
    malformed are dropped and reported in ``SPFRecord.warnings``.
    """
    if not spf_text or not isinstance(spf_text, str):
        return None
    text = spf_text.strip()
    head, _, rest = text.partition(" ")
    if head.lower() != SPF_PREFIX:
        return None

    record = SPFRecord(raw=spf_text)
    for term in rest.split():
        m = SPF_TERM_RE.match(term)
        if not m:
            record.warnings.append(f"Skipping malformed SPF term: {term}")
            continue
        qualifier, name, sep, value = m.groups()
        name = name.lower()
        value = value.strip()

        if name == "all":
            if sep or value:
                record.warnings.append(f"Ignoring malformed 'all' mechanism: {term}")
            elif record.all is not None:
                record.warnings.append(f"Ignoring repeated 'all' mechanism: {term}")
            elif not qualifier:
                record.warnings.append("Ignoring 'all' mechanism without an explicit qualifier")
            else:
                record.all = f"{qualifier}all"
        elif name in ("ip4", "ip6"):
            if sep == ":" and _is_network(value, 4 if name == "ip4" else 6):
                getattr(record, name).append(value)
            else:
                record.warnings.append(f"Dropping {name} mechanism with invalid address: {term}")
        elif name in ("a", "mx"):
            if sep == "/":
                value = "/" + value
            elif sep and sep != ":":
                record.warnings.append(f"Dropping malformed {name} mechanism: {term}")
                continue
            domain = _target_domain(value)
            if not domain or _is_valid_target(value):
                getattr(record, name).append(value)
            else:
                record.warnings.append(f"Dropping {name} mechanism with invalid domain: {term}")
        elif name in ("include", "exists"):
            if sep == ":" and value and _is_valid_target(value):
                getattr(record, name).append(value)
            else:
                record.warnings.append(f"Dropping {name} mechanism with invalid domain: {term}")
        elif name == "ptr":
            record.ptr.append(value)
            record.warnings.append("The 'ptr' mechanism is deprecated (RFC 7208 5.5)")
        elif name == "redirect" and sep == "=":
            if not (value and _is_valid_target(value)):
                record.warnings.append(f"Ignoring redirect with invalid domain: {term}")
            elif record.redirect is not None:
                record.warnings.append(f"Ignoring additional redirect modifier: {term}")
            else:
                record.redirect = value
        elif name == "exp" and sep == "=":
            if value:
                record.exp = value
        elif sep == "=" and value:
            record.modifiers[name] = value
        else:
            record.warnings.append(f"Unknown SPF mechanism: {term}")
    return record


def _count_links(result: SPFValidationResult) -> int:
    return sum(1 + _count_links(link.result) for link in result.includes + result.redirects)


def _lookup_terms(result: SPFValidationResult) -> int:
    """DNS-querying terms across the tree, as counted by RFC 7208 4.6.4."""
    total = 0
    if result.parsed is not None:
        p = result.parsed
        total += len(p.include) + len(p.a) + len(p.mx) + len(p.exists) + len(p.ptr)
        total += 1 if p.redirect else 0
    for link in result.includes + result.redirects:
        total += _lookup_terms(link.result)
    return total


class SPFEvaluator:
    """Walks an SPF include/redirect chain with depth, cycle and budget limits."""

    def __init__(self, resolver: DohResolver, limits: Optional[SPFLimits] = None):
        self.resolver = resolver
        self.limits = limits or SPFLimits()

    async def evaluate(self, domain: str, depth: int = 0, visited: Sequence[str] = (),
                       include_count: int = 0) -> SPFValidationResult:
        limits = self.limits
        if depth > limits.max_depth:
            return SPFValidationResult.failed(domain, f"Maximum recursion depth ({limits.max_depth}) exceeded")
        if include_count > limits.max_includes:
            return SPFValidationResult.failed(
                domain, f"Maximum number of includes/redirects ({limits.max_includes}) exceeded"
            )
        cleaned = clean_domain(domain)
        if not cleaned:
            return SPFValidationResult.failed(domain, f"Invalid domain format: {domain}")
        if cleaned in visited:
            chain = " -> ".join(list(visited) + [cleaned])
            return SPFValidationResult.failed(cleaned, f"Circular reference detected in SPF records: {chain}")

        chain = tuple(visited) + (cleaned,)
        seconds = limits.evaluation_timeout_ms / 1000
        try:
            result = await asyncio.wait_for(
                self._evaluate_record(cleaned, depth, chain, include_count), timeout=seconds
            )
        except asyncio.TimeoutError:
            logger.error(f"SPF validation timed out for {cleaned} after {seconds:g} seconds")
            return SPFValidationResult.failed(
                cleaned, f"SPF validation timed out for {cleaned} after {seconds:g} seconds"
            )

        if depth == 0:
            lookups = _lookup_terms(result)
            if lookups > limits.max_dns_lookups:
                result.warnings.append(
                    f"SPF record requires {lookups} DNS lookups (limit is {limits.max_dns_lookups})"
                )
        return result

    async def _evaluate_record(self, domain: str, depth: int, chain: tuple,
                               include_count: int) -> SPFValidationResult:
        result = SPFValidationResult(domain=domain)

        try:
            answers = await self.resolver.resolve_txt(domain)
        except NameNotFound:
            result.is_valid = False
            result.errors.append("No SPF record found (NXDOMAIN)")
            return result
        except EmailAuthError as e:
            logger.error(f"SPF lookup failed for {domain}: {e}")
            result.is_valid = False
            result.errors.append(str(e))
            return result

        spf_records = [t for t in flatten_txt(answers) if t.strip().lower().startswith(SPF_PREFIX)]
        if not spf_records:
            result.is_valid = False
            result.errors.append("No SPF record found")
            return result
        if len(spf_records) > 1:
            result.is_valid = False
            result.errors.append("Multiple SPF records found. Only one SPF record is allowed per domain")

        spf_text = spf_records[0]
        result.record = spf_text
        parsed = parse_spf(spf_text)
        if parsed is None:
            result.is_valid = False
            result.errors.append("Invalid SPF record format")
            return result
        result.parsed = parsed
        result.warnings.extend(parsed.warnings)
        result.dns_lookup_count += 1

        includes_ok = True
        for target in parsed.include:
            if include_count >= self.limits.max_includes:
                result.errors.append(
                    f"Maximum number of includes/redirects ({self.limits.max_includes}) reached"
                )
                result.is_valid = includes_ok = False
                break
            include_count += 1
            child = await self.evaluate(target, depth + 1, chain, include_count)
            include_count += _count_links(child)
            self._attach(result, "include", target, child)
            if not child.is_valid:
                result.is_valid = includes_ok = False

        effective_all = parsed.all
        if includes_ok and parsed.redirect:
            target = parsed.redirect
            if include_count >= self.limits.max_includes:
                result.errors.append(
                    f"Maximum number of includes/redirects ({self.limits.max_includes}) reached"
                )
                result.is_valid = False
            else:
                child = await self.evaluate(target, depth + 1, chain, include_count + 1)
                self._attach(result, "redirect", target, child)
                if child.is_valid:
                    effective_all = child.effective_all
                else:
                    result.is_valid = False

        result.all_mechanisms = [effective_all] if effective_all in ALL_QUALIFIERS else []
        return result

    @staticmethod
    def _attach(result: SPFValidationResult, relation: str, target: str, child: SPFValidationResult):
        link = SPFLink(domain=target, result=child)
        if relation == "redirect":
            result.redirects.append(link)
        else:
            result.includes.append(link)
        result.dns_lookup_count += child.dns_lookup_count
        result.errors.extend(f"{relation} {target}: {msg}" for msg in child.errors)
        result.warnings.extend(f"{relation} {target}: {msg}" for msg in child.warnings)
