"""Find the roster entry a scan refers to.

The intranet returns logins in several shapes (``jean.dupont``,
``jean.dupont@epitech.eu``, sometimes the e-mail in the login field), so a
scan is compared against each entry through a fixed list of rules, in
precedence order.
"""

from __future__ import annotations

from typing import Callable, List, Optional, Sequence, Tuple

from .errors import AmbiguousMatch, NotFoundInRoster
from .models import NormalizedLogin, Roster, ScanOutcome, ScanResult, StudentRecord

DEFAULT_DOMAIN = "epitech.eu"

Rule = Callable[[StudentRecord, NormalizedLogin, str], bool]


def _bare_login_equals(student: StudentRecord, candidate: NormalizedLogin, domain: str) -> bool:
    return student.login == candidate.bare_login


def _login_equals_identifier(student: StudentRecord, candidate: NormalizedLogin, domain: str) -> bool:
    return student.login == candidate.identifier


def _email_equals_identifier(student: StudentRecord, candidate: NormalizedLogin, domain: str) -> bool:
    return bool(student.email) and student.email == candidate.identifier


def _login_equals_domain_login(student: StudentRecord, candidate: NormalizedLogin, domain: str) -> bool:
    return bool(domain) and student.login == f"{candidate.bare_login}@{domain}"


def _login_prefix_equals(student: StudentRecord, candidate: NormalizedLogin, domain: str) -> bool:
    return student.login.split("@")[0] == candidate.bare_login


RULES: Tuple[Rule, ...] = (
    _bare_login_equals,
    _login_equals_identifier,
    _email_equals_identifier,
    _login_equals_domain_login,
    _login_prefix_equals,
)


def _dedupe_preserve(students: Sequence[StudentRecord]) -> List[StudentRecord]:
    seen: set = set()
    result: List[StudentRecord] = []
    for student in students:
        if id(student) in seen:
            continue
        seen.add(id(student))
        result.append(student)
    return result


def _hits(rule: Rule, candidate: NormalizedLogin, roster: Roster, domain: str) -> List[StudentRecord]:
    return [student for student in roster if student.login and rule(student, candidate, domain)]


def _not_found(candidate: NormalizedLogin, roster: Roster) -> ScanResult:
    error = NotFoundInRoster(
        "Student not found in registered list.\n"
        f"Scanned: {candidate.identifier}\n"
        f"Login: {candidate.bare_login}\n"
        f"This student might not be registered for: {roster.event.label}\n"
        f"Registered students: {len(roster)} total"
    )
    return ScanResult(
        raw_input=candidate.raw,
        normalized_login=candidate.bare_login,
        outcome=ScanOutcome.NOT_FOUND,
        error=error,
    )


def _ambiguous(candidate: NormalizedLogin, students: Sequence[StudentRecord], rule: Optional[int]) -> ScanResult:
    logins = ", ".join(student.login for student in students)
    error = AmbiguousMatch(f"{candidate.identifier} matches several registered students: {logins}")
    return ScanResult(
        raw_input=candidate.raw,
        normalized_login=candidate.bare_login,
        outcome=ScanOutcome.AMBIGUOUS,
        rule=rule,
        candidates=tuple(students),
        error=error,
    )


def match(
    candidate: NormalizedLogin,
    roster: Roster,
    *,
    domain: str = DEFAULT_DOMAIN,
    strict: bool = True,
) -> ScanResult:
    """Resolve ``candidate`` against ``roster``.

    With ``strict`` every rule is evaluated and the scan only matches when
    all hits point at the same student; otherwise the first rule with a hit
    decides. In both modes a rule hitting several entries is ambiguous.
    """
    if not candidate.bare_login or len(roster) == 0:
        return _not_found(candidate, roster)

    first_rule: Optional[int] = None
    collected: List[StudentRecord] = []
    for number, rule in enumerate(RULES, start=1):
        hits = _dedupe_preserve(_hits(rule, candidate, roster, domain))
        if not hits:
            continue
        if first_rule is None:
            first_rule = number
        collected.extend(hits)
        if not strict:
            break

    students = _dedupe_preserve(collected)
    if not students:
        return _not_found(candidate, roster)
    if len(students) > 1:
        return _ambiguous(candidate, students, first_rule)
    return ScanResult(
        raw_input=candidate.raw,
        normalized_login=candidate.bare_login,
        outcome=ScanOutcome.MATCHED,
        matched_student=students[0],
        rule=first_rule,
    )


__all__ = ["match", "RULES", "DEFAULT_DOMAIN"]
