import logging
import re
from typing import Dict

from .dns_utils import DohResolver, flatten_txt
from .errors import EmailAuthError, InvalidInput, NameNotFound, StructuralError
from .models import DMARCValidationResult

logger = logging.getLogger(__name__)

DMARC_PREFIX = "v=DMARC1"
DMARC_RECORD_RE = re.compile(r"v=DMARC1\s*;[^\n]+", re.I)
DMARC_POLICIES = ("none", "quarantine", "reject")


def parse_dmarc(dmarc_text: str) -> Dict[str, str]:
    """Parse a DMARC record into a tag:value dict.

    Raises StructuralError when the record lacks a usable ``p`` tag.
    """
    if not dmarc_text or not dmarc_text.strip().lower().startswith(DMARC_PREFIX.lower()):
        raise StructuralError(f"Record does not start with {DMARC_PREFIX}")
    tags = {}
    for part in dmarc_text.split(";"):
        part = part.strip()
        if "=" not in part:
            continue
        k, v = part.split("=", 1)
        if k.strip():
            tags[k.strip()] = v.strip()
    if not tags.get("p"):
        raise StructuralError("Missing required policy (p=) tag")
    if tags["p"] not in DMARC_POLICIES:
        raise StructuralError(f"Invalid policy value: {tags['p']}")
    return tags


class DMARCValidator:
    def __init__(self, resolver: DohResolver):
        self.resolver = resolver

    async def validate(self, domain: str) -> DMARCValidationResult:
        name = f"_dmarc.{domain}"
        try:
            txts = await self.resolver.resolve_txt(name)
        except NameNotFound:
            return DMARCValidationResult(domain=domain, valid=False, error="No DMARC record found (NXDOMAIN)")
        except InvalidInput as e:
            return DMARCValidationResult(domain=domain, valid=False, error=str(e))
        except EmailAuthError as e:
            logger.error(f"DMARC lookup failed for {domain}: {e}")
            return DMARCValidationResult(domain=domain, valid=False, error=str(e) or "DNS error")

        match = DMARC_RECORD_RE.search("\n".join(flatten_txt(txts)))
        if not match:
            return DMARCValidationResult(domain=domain, valid=False, error="No DMARC record found")
        record = match.group(0)
        try:
            tags = parse_dmarc(record)
        except StructuralError as e:
            logger.debug(f"Invalid DMARC record for {domain}: {e}")
            return DMARCValidationResult(domain=domain, valid=False, record=record, error=str(e))
        return DMARCValidationResult(domain=domain, valid=True, record=record, policy=tags["p"], tags=tags)
