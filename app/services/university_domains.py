"""Recognising university email addresses and scoring sign-up risk."""
import logging
import re
from app.extensions import db
from app.errors import ConflictError, NotFoundError
from app.models import AuditLog, University, UniversityDomain, User

logger = logging.getLogger(__name__)

# Generic academic domains: recognised, but a human has to confirm
UNIVERSITY_PATTERNS = [
    re.compile(r"\.edu\.uz$"),
    re.compile(r"\.ac\.uz$"),
    re.compile(r"\.univ\.uz"),
]

STUDENT_PATTERNS = [
    re.compile(r"student\.", re.I),
    re.compile(r"edu\.", re.I),
    re.compile(r"learn\.", re.I),
    re.compile(r"campus\.", re.I),
    re.compile(r"mail\.student\.", re.I),
    re.compile(r"academia\.", re.I),
]

DISPOSABLE_PROVIDERS = [
    "10minutemail", "guerrillamail", "mailinator", "tempmail", "yopmail",
    "throwaway", "tempinbox", "temp-mail", "maildrop", "sharklasers",
    "mailcatch", "mohmal",
]

SUSPICIOUS_PATTERNS = [
    re.compile(r"\d+[a-z]+\d+", re.I),
    re.compile(r"[a-z]{20,}", re.I),
    re.compile(r"\+[0-9]+@"),
]

FRAUD_REJECTION_ACTION = "verification_rejected_fraud"
SUSPICIOUS_SCORE = 40
REVIEW_SCORE = 30
CROWDED_DOMAIN_ACCOUNTS = 50


def extract_domain(email):
    """``"a@WIUT.uz"`` -> ``"@wiut.uz"``; empty string if there is no ``@``."""
    at = email.rfind("@")
    if at == -1:
        return ""
    return email[at:].lower()


def normalize_domain(domain):
    domain = domain.strip().lower()
    return domain if domain.startswith("@") else f"@{domain}"


def analyze_email(email):
    domain = extract_domain(email)
    email = email.lower()

    match = UniversityDomain.query.filter_by(domain=domain, is_active=True).first()
    if match:
        return {
            "is_university": True,
            "domain": domain,
            "university_id": match.university_id,
            "university_name": match.university.name if match.university else None,
            "auto_verify": match.auto_verify,
            "confidence": "high",
            "requires_manual_review": False,
        }

    if any(p.search(email) for p in UNIVERSITY_PATTERNS):
        return {
            "is_university": True,
            "domain": domain,
            "auto_verify": False,
            "confidence": "medium",
            "requires_manual_review": True,
        }

    return {
        "is_university": False,
        "domain": domain,
        "auto_verify": False,
        "confidence": "low",
        "requires_manual_review": any(p.search(email) for p in STUDENT_PATTERNS),
    }


def is_disposable(email):
    domain = extract_domain(email)
    return any(provider in domain for provider in DISPOSABLE_PROVIDERS)


def has_suspicious_pattern(email):
    return any(p.search(email) for p in SUSPICIOUS_PATTERNS)


def fraud_history_count(domain):
    return AuditLog.query.filter_by(action=FRAUD_REJECTION_ACTION, entity_id=domain).count()


def accounts_on_domain(domain):
    return User.query.filter(User.email.ilike(f"%{domain}")).count()


def check_email_suspicion(email):
    reasons = []
    score = 0
    domain = extract_domain(email)

    if is_disposable(email):
        reasons.append("Disposable email service detected")
        score += 30

    if has_suspicious_pattern(email):
        reasons.append("Suspicious email pattern")
        score += 20

    incidents = fraud_history_count(domain)
    if incidents > 0:
        reasons.append(f"Previous fraud activity with this domain ({incidents} incidents)")
        score += incidents * 10

    accounts = accounts_on_domain(domain)
    if accounts > CROWDED_DOMAIN_ACCOUNTS:
        reasons.append(f"High number of accounts from this domain ({accounts})")
        score += min(accounts / 5, 25)

    return {
        "suspicious": score >= SUSPICIOUS_SCORE,
        "reasons": reasons,
        "score": score,
        "requires_review": score >= REVIEW_SCORE,
    }


def list_domains(include_inactive=False):
    query = UniversityDomain.query
    if not include_inactive:
        query = query.filter_by(is_active=True)
    domains = query.all()
    return sorted(domains, key=lambda d: (d.university.name if d.university else "", d.domain))


def add_domain(university_id, domain, auto_verify=True):
    if not db.session.get(University, university_id):
        raise NotFoundError("University not found")

    domain = normalize_domain(domain)
    if UniversityDomain.query.filter_by(domain=domain).first():
        raise ConflictError("Domain is already registered")

    entry = UniversityDomain(domain=domain, university_id=university_id, auto_verify=auto_verify, is_active=True)
    db.session.add(entry)
    db.session.commit()
    logger.info(f"Added university domain {domain} for university {university_id}")
    return entry


def set_domain_active(domain_id, is_active):
    entry = db.session.get(UniversityDomain, domain_id)
    if not entry:
        raise NotFoundError("University domain not found")
    entry.is_active = is_active
    db.session.commit()
    return entry
