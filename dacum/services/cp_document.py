"""
Competency Profile (CP) document model.

The CU → WA → WS → PC tree as plain dataclasses. Persistence is the version
store's job; this module only knows how to build, copy and (de)serialise a
document.

Input parsing is lenient: the editor and older clients send camelCase keys
(``waTitle``, ``workSteps``, ``pcText``) and occasionally a list of PCs per
step. Everything is normalised here so downstream code sees one shape.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone

STATUS_DRAFT = "DRAFT"
STATUS_LOCKED = "LOCKED"
VALID_STATUSES = frozenset({STATUS_DRAFT, STATUS_LOCKED})


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_cu_code(cu_code) -> str:
    """Version-store key for a CU code (case-insensitive)."""
    return str(cu_code or "").strip().lower()


def _pick(data: dict, *keys, default=""):
    for key in keys:
        value = data.get(key)
        if value is not None and value != "":
            return value
    return default


def _text(value) -> str:
    return str(value if value is not None else "").strip()


def wa_title_of(wa) -> str:
    """Title of a WA given as a dict (any key style) or a bare string."""
    if isinstance(wa, dict):
        return _text(_pick(wa, "wa_title", "waTitle", "title"))
    return _text(wa)


@dataclass
class PerformanceCriterion:
    verb: str = ""
    object: str = ""
    qualifier: str = ""
    pc_text: str = ""

    def to_dict(self) -> dict:
        return {
            "verb": self.verb,
            "object": self.object,
            "qualifier": self.qualifier,
            "pc_text": self.pc_text,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PerformanceCriterion":
        return cls(
            verb=_text(data.get("verb")),
            object=_text(data.get("object")),
            qualifier=_text(data.get("qualifier")),
            pc_text=_text(_pick(data, "pc_text", "pcText", "text")),
        )


@dataclass
class WorkStep:
    ws_code: str
    ws_text: str
    pcs: list[PerformanceCriterion] = field(default_factory=list)

    @property
    def pc(self) -> PerformanceCriterion | None:
        return self.pcs[0] if self.pcs else None

    @property
    def pc_count(self) -> int:
        return len(self.pcs)

    def to_dict(self) -> dict:
        data = {
            "ws_code": self.ws_code,
            "ws_text": self.ws_text,
            "pc": self.pc.to_dict() if self.pc else None,
        }
        # extra criteria are kept until an editor removes them
        if len(self.pcs) > 1:
            data["pcs"] = [p.to_dict() for p in self.pcs]
        return data

    @classmethod
    def from_dict(cls, data: dict, default_code: str = "") -> "WorkStep":
        pc_data = _pick(data, "pc", "performance_criterion", "performanceCriterion", default=None)
        pc_list = _pick(data, "pcs", "performance_criteria", "performanceCriteria", default=None)
        if isinstance(pc_list, list) and pc_list:
            pcs = [PerformanceCriterion.from_dict(p) for p in pc_list if isinstance(p, dict)]
        elif isinstance(pc_data, dict):
            pcs = [PerformanceCriterion.from_dict(pc_data)]
        else:
            pcs = []
        return cls(
            ws_code=_text(_pick(data, "ws_code", "wsCode", "wsNo", default=default_code)),
            ws_text=_text(_pick(data, "ws_text", "wsText", "text")),
            pcs=pcs,
        )


@dataclass
class WorkActivity:
    wa_code: str
    wa_title: str
    work_steps: list[WorkStep] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "wa_code": self.wa_code,
            "wa_title": self.wa_title,
            "work_steps": [ws.to_dict() for ws in self.work_steps],
        }

    @classmethod
    def from_dict(cls, data: dict, index: int = 1) -> "WorkActivity":
        steps = _pick(data, "work_steps", "workSteps", default=[])
        if not isinstance(steps, list):
            steps = []
        return cls(
            wa_code=_text(_pick(data, "wa_code", "waCode", "waId", default=f"WA-{index:02d}")),
            wa_title=_text(_pick(data, "wa_title", "waTitle", "title")),
            work_steps=[
                WorkStep.from_dict(s, default_code=f"{index}.{j}")
                for j, s in enumerate(steps, 1) if isinstance(s, dict)
            ],
        )


@dataclass
class Audit:
    created_at: str = ""
    created_by: str = "SYSTEM"
    updated_at: str | None = None
    updated_by: list[str] = field(default_factory=list)
    locked_at: str | None = None
    locked_by: str | None = None
    unlocked_at: str | None = None
    unlocked_by: str | None = None

    def to_dict(self) -> dict:
        return {
            "created_at": self.created_at,
            "created_by": self.created_by,
            "updated_at": self.updated_at,
            "updated_by": list(self.updated_by),
            "locked_at": self.locked_at,
            "locked_by": self.locked_by,
            "unlocked_at": self.unlocked_at,
            "unlocked_by": self.unlocked_by,
        }

    @classmethod
    def from_dict(cls, data: dict | None) -> "Audit":
        data = data or {}
        updated_by = data.get("updated_by") or data.get("updatedBy") or []
        if isinstance(updated_by, str):
            updated_by = [updated_by]
        return cls(
            created_at=data.get("created_at") or data.get("createdAt") or utcnow_iso(),
            created_by=data.get("created_by") or data.get("createdBy") or "SYSTEM",
            updated_at=data.get("updated_at") or data.get("updatedAt"),
            updated_by=list(updated_by),
            locked_at=data.get("locked_at") or data.get("lockedAt"),
            locked_by=data.get("locked_by") or data.get("lockedBy"),
            unlocked_at=data.get("unlocked_at"),
            unlocked_by=data.get("unlocked_by"),
        )


@dataclass
class CPDocument:
    session_id: str
    cu_code: str
    cu_title: str = ""
    cu_description: str = ""
    language: str = "MS"
    status: str = STATUS_DRAFT
    work_activities: list[WorkActivity] = field(default_factory=list)
    validation: dict | None = None
    audit: Audit = field(default_factory=Audit)
    version: int | None = None

    @property
    def is_locked(self) -> bool:
        return self.status == STATUS_LOCKED

    def copy(self) -> "CPDocument":
        return copy.deepcopy(self)

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "cu_code": self.cu_code,
            "cu_title": self.cu_title,
            "cu_description": self.cu_description,
            "language": self.language,
            "status": self.status,
            "version": self.version,
            "work_activities": [wa.to_dict() for wa in self.work_activities],
            "validation": self.validation,
            "audit": self.audit.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CPDocument":
        activities = _pick(data, "work_activities", "workActivities", default=[])
        if not isinstance(activities, list):
            activities = []
        status = str(data.get("status") or STATUS_DRAFT).upper()
        version = data.get("version")
        return cls(
            session_id=_text(_pick(data, "session_id", "sessionId")),
            cu_code=_text(_pick(data, "cu_code", "cuCode", "cuId")),
            cu_title=_text(_pick(data, "cu_title", "cuTitle", "title")),
            cu_description=_text(_pick(data, "cu_description", "cuDescription", "cuDesc")),
            language=str(data.get("language") or data.get("lang") or "MS").upper(),
            status=status if status in VALID_STATUSES else STATUS_DRAFT,
            work_activities=[
                WorkActivity.from_dict(wa, i)
                for i, wa in enumerate(activities, 1) if isinstance(wa, dict)
            ],
            validation=data.get("validation"),
            audit=Audit.from_dict(data.get("audit")),
            version=int(version) if isinstance(version, int) else None,
        )
