"""
CP Structural Validator.

Checks a competency profile document against the fixed cardinality and
phrasing rulebook. Each rule is an independent function that appends
``Issue`` objects; ``validate`` runs them all and never raises, so callers can
render the issue list directly.

Usage:
    from dacum.services.cp_rules import validate
    result = validate(doc)           # CPDocument or plain dict
    # -> ValidationResult(passed=False, issues=[Issue(level=ERROR, code="MIN_WA", ...)])
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

from dacum.services.cp_document import CPDocument
from dacum.services.phrasing import get_phrasing


# ═════════════════════════════════════════════════════════════════════════════
# Enums & Data Classes
# ═════════════════════════════════════════════════════════════════════════════

class Level(str, Enum):
    ERROR = "ERROR"
    WARNING = "WARNING"


@dataclass
class Issue:
    """Single rule violation."""
    level: Level
    code: str
    message: str
    path: str = ""

    def to_dict(self) -> dict:
        return {
            "level": self.level.value,
            "code": self.code,
            "message": self.message,
            "path": self.path,
        }


@dataclass
class ValidationResult:
    issues: list[Issue] = field(default_factory=list)

    @property
    def errors(self) -> list[Issue]:
        return [i for i in self.issues if i.level == Level.ERROR]

    @property
    def warnings(self) -> list[Issue]:
        return [i for i in self.issues if i.level == Level.WARNING]

    @property
    def passed(self) -> bool:
        return not self.errors

    def _codes(self) -> set[str]:
        return {i.code for i in self.issues}

    def to_dict(self) -> dict:
        codes = self._codes()
        return {
            "passed": self.passed,
            "issues": [i.to_dict() for i in self.issues],
            "summary": {
                "errors": len(self.errors),
                "warnings": len(self.warnings),
                "min_rules_passed": not codes & {"MIN_WA", "MIN_WS", "MISSING_PC", "MIN_PC"},
                "voq_passed": "VOC_FAIL" not in codes,
                "completeness_passed": "WS_INCOMPLETE" not in codes,
            },
        }


# ═════════════════════════════════════════════════════════════════════════════
# Thresholds & keyword sets
# ═════════════════════════════════════════════════════════════════════════════

MIN_WORK_ACTIVITIES = 3
MIN_WORK_STEPS = 3

# word-prefix match; MS passive forms take an optional "di" prefix
_CHECK_TERMS = re.compile(
    r"\b(?:di)?(review|verif|validat|audit|check|confirm|inspect|"
    r"semak|sahkan|validasi|pengesahan|periksa)",
    re.IGNORECASE,
)
_RECORD_TERMS = re.compile(
    r"\b(?:di)?(record|document|file|filing|submit|report|log|"
    r"rekod|dokumen|fail|serah|lapor|pemfailan|catat)",
    re.IGNORECASE,
)


# ═════════════════════════════════════════════════════════════════════════════
# Rules
# ═════════════════════════════════════════════════════════════════════════════

def _rule_min_wa(doc: CPDocument, issues: list[Issue]) -> None:
    count = len(doc.work_activities)
    if count < MIN_WORK_ACTIVITIES:
        issues.append(Issue(
            Level.ERROR, "MIN_WA",
            f"A competency unit needs at least {MIN_WORK_ACTIVITIES} work activities (found {count}).",
            path="work_activities",
        ))


def _rule_min_ws(doc: CPDocument, issues: list[Issue]) -> None:
    for i, wa in enumerate(doc.work_activities):
        count = len(wa.work_steps)
        if count < MIN_WORK_STEPS:
            issues.append(Issue(
                Level.ERROR, "MIN_WS",
                f'Work activity "{wa.wa_title or wa.wa_code}" needs at least '
                f"{MIN_WORK_STEPS} work steps (found {count}).",
                path=f"work_activities[{i}].work_steps",
            ))


def _rule_pc_present(doc: CPDocument, issues: list[Issue]) -> None:
    for i, wa in enumerate(doc.work_activities):
        for j, ws in enumerate(wa.work_steps):
            path = f"work_activities[{i}].work_steps[{j}].pc"
            if ws.pc is None or not ws.pc.pc_text:
                issues.append(Issue(
                    Level.ERROR, "MISSING_PC",
                    f'Work step "{ws.ws_code}" must carry one performance criterion with text.',
                    path=path,
                ))
            elif ws.pc_count > 1:
                issues.append(Issue(
                    Level.ERROR, "MIN_PC",
                    f'Work step "{ws.ws_code}" carries {ws.pc_count} performance criteria; exactly one is allowed.',
                    path=f"work_activities[{i}].work_steps[{j}].pcs",
                ))


def _rule_voq(doc: CPDocument, issues: list[Issue]) -> None:
    for i, wa in enumerate(doc.work_activities):
        for j, ws in enumerate(wa.work_steps):
            if ws.pc is None:
                continue
            missing = [name for name in ("verb", "object", "qualifier") if not getattr(ws.pc, name)]
            if missing:
                issues.append(Issue(
                    Level.ERROR, "VOC_FAIL",
                    f'Performance criterion for work step "{ws.ws_code}" is missing: {", ".join(missing)}.',
                    path=f"work_activities[{i}].work_steps[{j}].pc",
                ))


def _rule_outcome_phrasing(doc: CPDocument, issues: list[Issue]) -> None:
    phrasing = get_phrasing(doc.language)
    for i, wa in enumerate(doc.work_activities):
        for j, ws in enumerate(wa.work_steps):
            if ws.pc is None or not ws.pc.pc_text:
                continue
            if not phrasing.is_outcome_phrased(ws.pc.pc_text):
                issues.append(Issue(
                    Level.WARNING, "PC_NOT_OUTCOME_PHRASED",
                    f'Performance criterion for work step "{ws.ws_code}" does not read as a completed outcome.',
                    path=f"work_activities[{i}].work_steps[{j}].pc.pc_text",
                ))


def _rule_completeness(doc: CPDocument, issues: list[Issue]) -> None:
    for i, wa in enumerate(doc.work_activities):
        parts = []
        for ws in wa.work_steps:
            parts.append(ws.ws_text)
            if ws.pc is not None:
                parts.append(ws.pc.pc_text)
        text = " ".join(parts)
        if not (_CHECK_TERMS.search(text) and _RECORD_TERMS.search(text)):
            issues.append(Issue(
                Level.WARNING, "WS_INCOMPLETE",
                f'Work activity "{wa.wa_title or wa.wa_code}" may be incomplete: '
                "no verification step or no record/submission step.",
                path=f"work_activities[{i}]",
            ))


RULES = (
    _rule_min_wa,
    _rule_min_ws,
    _rule_pc_present,
    _rule_voq,
    _rule_outcome_phrasing,
    _rule_completeness,
)


def validate(doc: CPDocument | dict) -> ValidationResult:
    """Run every rule against *doc*. ``passed`` iff zero ERROR issues."""
    if not isinstance(doc, CPDocument):
        doc = CPDocument.from_dict(doc if isinstance(doc, dict) else {})
    issues: list[Issue] = []
    for rule in RULES:
        rule(doc, issues)
    return ValidationResult(issues=issues)
