"""
String normalization for company and job matching.

Pure functions only. Every matcher in the engine compares the output of
these functions, never raw provider strings.
"""

import hashlib
import re
from typing import List, Optional

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")
_LEGAL_SUFFIXES = re.compile(r"\b(ltd|limited|plc|llp|inc|corp|corporation)\b\.?")

_TITLE_ABBREVIATIONS = [
    (re.compile(r"\bsr\b\.?"), "senior"),
    (re.compile(r"\bjr\b\.?"), "junior"),
    (re.compile(r"\bmgr\b\.?"), "manager"),
    (re.compile(r"\beng\b\.?"), "engineer"),
    (re.compile(r"\bdev\b\.?"), "developer"),
    (re.compile(r"\bqty\b\.?"), "quantity"),
    (re.compile(r"\bsurv\b\.?"), "surveyor"),
    (re.compile(r"\bproj\b\.?"), "project"),
    (re.compile(r"\bexec\b\.?"), "executive"),
    (re.compile(r"\basst\b\.?"), "assistant"),
    (re.compile(r"\bco\b\.?"), "company"),
]

_SENIORITY_WORDS = {"senior", "junior", "lead", "principal", "head", "trainee", "graduate", "snr"}

_COUNTRY_WORDS = re.compile(r"\b(uk|united kingdom|england|scotland|wales|northern ireland)\b")

_TOKEN_STOP_WORDS = {"the", "and", "of", "for", "uk", "group", "holdings", "services"}


def _squash(s: str) -> str:
    s = _NON_ALNUM.sub("", s)
    return _WHITESPACE.sub(" ", s).strip()


def normalize_company_name(name: str) -> str:
    """Lowercase, strip legal suffixes and punctuation, collapse whitespace."""
    return _squash(_LEGAL_SUFFIXES.sub("", (name or "").lower()))


def normalize_domain(domain: Optional[str]) -> Optional[str]:
    """Lowercase a domain and drop scheme, www. prefix and path."""
    if not domain or not domain.strip():
        return None
    d = domain.strip().lower()
    d = re.sub(r"^[a-z]+://", "", d)
    d = d.split("/", 1)[0]
    if d.startswith("www."):
        d = d[4:]
    return d or None


def normalize_registry_number(number: Optional[str]) -> Optional[str]:
    if not number or not str(number).strip():
        return None
    return re.sub(r"\s+", "", str(number)).upper()


def normalize_job_title(title: str) -> str:
    """Lowercase, expand common abbreviations (Sr -> senior), strip punctuation."""
    t = (title or "").lower()
    for pattern, replacement in _TITLE_ABBREVIATIONS:
        t = pattern.sub(replacement, t)
    return _squash(t)


def normalize_location(location: str) -> str:
    """Lowercase and drop country words so 'London, UK' equals 'London'."""
    return _squash(_COUNTRY_WORDS.sub("", (location or "").lower()))


def job_fingerprint(title: str, company_id: str, location: str) -> str:
    """
    Deterministic identity of "the same posting" across sources and runs.

    Keyed on the resolved company id, so one fingerprint always belongs to
    exactly one company however the employer name was spelled.
    """
    key = "|".join([
        normalize_job_title(title),
        company_id,
        normalize_location(location),
    ])
    return hashlib.sha256(key.encode("utf-8")).hexdigest()[:32]


def levenshtein(a: str, b: str) -> int:
    if a == b:
        return 0
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(min(
                previous[j] + 1,         # deletion
                current[j - 1] + 1,      # insertion
                previous[j - 1] + cost,  # substitution
            ))
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """
    Percentage similarity (0-100) of two already-normalized strings.

    Computed as 100 * (max_len - distance) / max_len so exact boundaries
    such as 85.0 are not lost to float rounding.
    """
    if a == b:
        return 100.0
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 100.0
    return 100.0 * (max_len - levenshtein(a, b)) / max_len


def core_title(title: str) -> str:
    """Normalized title with seniority qualifiers removed."""
    words = [w for w in normalize_job_title(title).split() if w not in _SENIORITY_WORDS]
    return " ".join(words)


def title_similarity(a: str, b: str) -> float:
    """Similarity of two job titles, ignoring seniority qualifiers."""
    full = similarity(normalize_job_title(a), normalize_job_title(b))
    core_a, core_b = core_title(a), core_title(b)
    if not core_a or not core_b:
        return full
    return max(full, similarity(core_a, core_b))


def locations_compatible(a: str, b: str) -> bool:
    """Same general area: equal, or one normalized location contains the other."""
    la, lb = normalize_location(a), normalize_location(b)
    return la == lb or la in lb or lb in la


def name_tokens(normalized_name: str) -> List[str]:
    """Distinct search tokens of a normalized company name."""
    seen = []
    for token in normalized_name.split():
        if len(token) < 2 or token in _TOKEN_STOP_WORDS or token in seen:
            continue
        seen.append(token)
    return seen


INDUSTRY_PATTERNS = [
    ("Technology & Software", re.compile(
        r"\b(developer|engineer|devops|software|frontend|backend|full.?stack|data scientist|"
        r"machine learning|ai|cloud|architect|sre|platform)\b", re.I)),
    ("Construction & Infrastructure", re.compile(
        r"\b(site manager|quantity surveyor|project manager|contracts manager|civil|groundworks|"
        r"construction|surveyor|estimator|bim|clerk of works|site engineer)\b", re.I)),
    ("Healthcare & Life Sciences", re.compile(
        r"\b(nurse|doctor|clinical|healthcare|medical|pharmacist|care manager|therapist|surgeon|gp|nhs)\b", re.I)),
    ("Financial Services", re.compile(
        r"\b(accountant|auditor|financial|banker|analyst|compliance|risk|actuary|underwriter|"
        r"fund manager|wealth|investment)\b", re.I)),
    ("Legal & Professional Services", re.compile(
        r"\b(solicitor|lawyer|paralegal|legal|barrister|conveyancer|litigation)\b", re.I)),
    ("Engineering & Manufacturing", re.compile(
        r"\b(mechanical engineer|electrical engineer|manufacturing|production|quality|cnc|"
        r"maintenance engineer|plant manager|process engineer)\b", re.I)),
    ("Energy & Utilities", re.compile(
        r"\b(renewable|solar|wind|energy|utilities|oil|gas|nuclear|grid|power|sustainability|carbon)\b", re.I)),
    ("Logistics & Supply Chain", re.compile(
        r"\b(warehouse|logistics|supply chain|transport|fleet|distribution|freight|procurement|buyer)\b", re.I)),
    ("Education", re.compile(
        r"\b(teacher|headteacher|lecturer|professor|education|school|senco|teaching assistant)\b", re.I)),
    ("Hospitality & Leisure", re.compile(
        r"\b(hotel|restaurant|chef|hospitality|events manager|catering)\b", re.I)),
]


def detect_industry(title: str) -> str:
    """First industry whose title keywords match, else 'Other'."""
    for industry, pattern in INDUSTRY_PATTERNS:
        if pattern.search(title or ""):
            return industry
    return "Other"
