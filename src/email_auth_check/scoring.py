"""Weighted compliance score for SPF, DKIM and DMARC results.

SPF: up to 30, DKIM: up to 30, DMARC: up to 40. Bonus points are part of
their category, so every category total is the sum of its ``details`` keys
and the overall total is the sum of the three categories.
"""

import re
from typing import Dict, List, Optional, Sequence, Tuple, Union

from .dkim import estimate_key_bits
from .models import DKIMCheck, DKIMValidationResult, DMARCValidationResult, ScoreBreakdown, SPFValidationResult

SPF_KEYS = ("spf_exists", "spf_syntax", "spf_all", "spf_no_plusall", "spf_plusall_penalty")
DKIM_KEYS = ("dkim_exists", "dkim_key_strength", "dkim_multiple_selectors_bonus")
DMARC_KEYS = ("dmarc_exists", "dmarc_policy", "dmarc_rua_bonus")

# a probe summary, a single selector result, or a list of selector results
DKIMInput = Union[DKIMCheck, DKIMValidationResult, Sequence[DKIMValidationResult], None]

OPTIMAL = "No change needed. This is optimal."

# (reason, recommendation) pairs
SPF_MESSAGES = {
    "missing": ("SPF record is missing or invalid.",
                'Add a valid SPF record with proper syntax and a strict "-all" policy.'),
    "plusall": ('SPF uses permissive "+all" which is insecure.',
                'Remove or replace "+all" with "-all" or "~all" to prevent spoofing.'),
    "no_all": ('SPF record does not specify an "all" mechanism.',
               'Add an "all" mechanism (preferably "-all") to define policy for all mail sources.'),
    "neutral": ('SPF uses neutral "?all" policy.',
                'Switch to "~all" or, preferably, strict "-all".'),
    "softfail": ('SPF uses softfail "~all" policy.',
                 'Consider switching to strict "-all" for maximum protection.'),
    "syntax": ("SPF record has syntax errors.",
               "Fix SPF syntax errors to ensure proper evaluation."),
    "strict": ('SPF uses strict "-all" policy.', OPTIMAL),
}
DKIM_MESSAGES = {
    "missing": ("DKIM record is missing or invalid.",
                "Add a valid DKIM record with at least 1024-bit key and enable key rotation if possible."),
    "weak": ("DKIM key strength is weak (<1024 bits).",
             "Upgrade DKIM keys to at least 1024 bits for security."),
    "rotation": ("Multiple DKIM selectors detected (key rotation enabled).",
                 "No change needed. Key rotation is a best practice."),
    "adequate": ("DKIM key strength is adequate (>=1024 bits).",
                 "No change needed. This is industry standard."),
}
DMARC_MESSAGES = {
    "missing": ("DMARC record is missing or invalid.",
                'Add a valid DMARC record with policy set to "reject" and enable rua reporting.'),
    "unknown": ("DMARC policy is not set or unrecognized.",
                'Set DMARC policy to "reject" or "quarantine" for enforcement.'),
    "none": ('DMARC policy is set to "none" (monitoring only).',
             'Increase DMARC policy to "quarantine" or "reject" to enforce protection.'),
    "quarantine": ('DMARC policy is set to "quarantine" (partial enforcement).',
                   'Consider upgrading DMARC policy to "reject" for full protection.'),
    "reporting": ("DMARC reporting (rua) is enabled.",
                  "No change needed. Reporting is recommended."),
    "reject": ('DMARC policy is set to "reject" (full enforcement).', OPTIMAL),
}


def _first(findings: List[str], messages: Dict[str, Tuple[str, str]]) -> Tuple[str, str]:
    """Pick the highest-precedence finding (messages are declared in precedence order)."""
    for key in messages:
        if key in findings:
            return messages[key]
    return ("", "")


def _score_spf(spf: Optional[SPFValidationResult], details: Dict[str, int]) -> List[str]:
    for k in SPF_KEYS:
        details[k] = 0
    if not (spf and spf.is_valid and isinstance(spf.record, str) and "v=spf1" in spf.record.lower()):
        return ["missing"]

    findings = []
    details["spf_exists"] = 10
    if not spf.errors:
        details["spf_syntax"] = 5
    else:
        findings.append("syntax")

    all_mech = next((m for m in spf.all_mechanisms if re.search(r"[-~?+]all", m)), "")
    if all_mech.startswith("-all"):
        details["spf_all"] = 10
        findings.append("strict")
    elif all_mech.startswith("~all"):
        details["spf_all"] = 8
        findings.append("softfail")
    elif all_mech.startswith("+all"):
        details["spf_plusall_penalty"] = -5
        findings.append("plusall")
    elif all_mech.startswith("?all"):
        findings.append("neutral")
    else:
        findings.append("no_all")
    if all_mech and not all_mech.startswith("+all"):
        details["spf_no_plusall"] = 5
    return findings


def _dkim_selectors(dkim: DKIMInput) -> List[DKIMValidationResult]:
    if dkim is None:
        return []
    if isinstance(dkim, DKIMCheck):
        return list(dkim.selectors)
    if isinstance(dkim, DKIMValidationResult):
        return [dkim]
    return list(dkim)


def _score_dkim(dkim: DKIMInput, details: Dict[str, int]) -> List[str]:
    for k in DKIM_KEYS:
        details[k] = 0
    valid = [s for s in _dkim_selectors(dkim) if s.valid and s.record]
    if not valid:
        return ["missing"]

    findings = []
    details["dkim_exists"] = 15
    max_bits = max(estimate_key_bits(s.record) for s in valid)
    if max_bits >= 1024:
        details["dkim_key_strength"] = 10
        findings.append("adequate")
    else:
        findings.append("weak")
    if len(valid) > 1:
        details["dkim_multiple_selectors_bonus"] = 5
        findings.append("rotation")
    return findings


def _score_dmarc(dmarc: Optional[DMARCValidationResult], details: Dict[str, int]) -> List[str]:
    for k in DMARC_KEYS:
        details[k] = 0
    if not (dmarc and dmarc.valid and isinstance(dmarc.record, str) and "v=dmarc1" in dmarc.record.lower()):
        return ["missing"]

    details["dmarc_exists"] = 10
    points = {"reject": 20, "quarantine": 15, "none": 5}
    details["dmarc_policy"] = points.get(dmarc.policy, 0)
    findings = [dmarc.policy if dmarc.policy in points else "unknown"]
    if re.search(r"rua=", dmarc.record, re.I):
        details["dmarc_rua_bonus"] = 5
        findings.append("reporting")
    return findings


def score(spf: Optional[SPFValidationResult], dkim: DKIMInput,
          dmarc: Optional[DMARCValidationResult]) -> ScoreBreakdown:
    """Compute the score breakdown. Pure; a missing category scores 0."""
    details: Dict[str, int] = {}
    reasons: Dict[str, str] = {}
    recommendations: Dict[str, str] = {}

    for category, scorer, result, messages in (
        ("spf", _score_spf, spf, SPF_MESSAGES),
        ("dkim", _score_dkim, dkim, DKIM_MESSAGES),
        ("dmarc", _score_dmarc, dmarc, DMARC_MESSAGES),
    ):
        findings = scorer(result, details)
        reasons[category], recommendations[category] = _first(findings, messages)

    spf_score = sum(details[k] for k in SPF_KEYS)
    dkim_score = sum(details[k] for k in DKIM_KEYS)
    dmarc_score = sum(details[k] for k in DMARC_KEYS)
    return ScoreBreakdown(
        total=spf_score + dkim_score + dmarc_score,
        spf=spf_score,
        dkim=dkim_score,
        dmarc=dmarc_score,
        details=details,
        reasons=reasons,
        recommendations=recommendations,
    )
