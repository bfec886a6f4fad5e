from pydantic import BaseModel, Field
from typing import List, Optional, Dict


class MxRecord(BaseModel):
    priority: int
    exchange: str


class SPFRecord(BaseModel):
    raw: str
    version: str = "v=spf1"
    all: Optional[str] = None
    ip4: List[str] = Field(default_factory=list)
    ip6: List[str] = Field(default_factory=list)
    a: List[str] = Field(default_factory=list)
    mx: List[str] = Field(default_factory=list)
    include: List[str] = Field(default_factory=list)
    exists: List[str] = Field(default_factory=list)
    ptr: List[str] = Field(default_factory=list)
    redirect: Optional[str] = None
    exp: Optional[str] = None
    modifiers: Dict[str, str] = Field(default_factory=dict)
    warnings: List[str] = Field(default_factory=list)

    def mechanisms(self) -> List[str]:
        """Flat listing of the parsed terms, in category order."""
        terms = [f"ip4:{v}" for v in self.ip4] + [f"ip6:{v}" for v in self.ip6]
        terms += [f"a:{v}" if v else "a" for v in self.a]
        terms += [f"mx:{v}" if v else "mx" for v in self.mx]
        terms += [f"include:{v}" for v in self.include] + [f"exists:{v}" for v in self.exists]
        if self.redirect:
            terms.append(f"redirect={self.redirect}")
        if self.exp:
            terms.append(f"exp={self.exp}")
        if self.all:
            terms.append(self.all)
        return terms


class SPFLink(BaseModel):
    domain: str
    result: "SPFValidationResult"


class SPFValidationResult(BaseModel):
    domain: str
    is_valid: bool = True
    record: Optional[str] = None
    parsed: Optional[SPFRecord] = None
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    dns_lookup_count: int = 0
    includes: List[SPFLink] = Field(default_factory=list)
    redirects: List[SPFLink] = Field(default_factory=list)
    all_mechanisms: List[str] = Field(default_factory=list)

    @property
    def effective_all(self) -> Optional[str]:
        return self.all_mechanisms[0] if self.all_mechanisms else None

    @classmethod
    def failed(cls, domain: str, error: str) -> "SPFValidationResult":
        return cls(domain=domain, is_valid=False, errors=[error])


SPFLink.model_rebuild()


class DKIMValidationResult(BaseModel):
    selector: str
    domain: str
    valid: bool
    record: Optional[str] = None
    error: Optional[str] = None


class DKIMCheck(BaseModel):
    """Outcome of probing an ordered list of selectors for one domain."""
    valid: bool = False
    selectors: List[DKIMValidationResult] = Field(default_factory=list)
    selector: Optional[str] = None
    record: Optional[str] = None
    selectors_checked: List[str] = Field(default_factory=list)
    error: Optional[str] = None


class DMARCValidationResult(BaseModel):
    domain: str
    valid: bool
    record: Optional[str] = None
    policy: Optional[str] = None
    tags: Dict[str, str] = Field(default_factory=dict)
    error: Optional[str] = None


class ScoreBreakdown(BaseModel):
    total: int = 0
    spf: int = 0
    dkim: int = 0
    dmarc: int = 0
    details: Dict[str, int] = Field(default_factory=dict)
    reasons: Dict[str, str] = Field(default_factory=dict)
    recommendations: Dict[str, str] = Field(default_factory=dict)


class Report(BaseModel):
    domain: str
    time_utc: str
    spf: SPFValidationResult
    dkim: DKIMCheck
    dmarc: DMARCValidationResult
    mx: List[MxRecord] = Field(default_factory=list)
    score: ScoreBreakdown
    elapsed_seconds: float = 0.0
