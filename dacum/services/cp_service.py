"""
Competency Profile document service.

Owns the DRAFT → LOCKED state machine over an append-only version history
per (session_id, cu_code):

    generate_draft  - template (or generation-seeded) draft, appended
    save_working    - overwrite latest unlocked version, else append a DRAFT
    lock            - validate latest; zero ERRORs appends a LOCKED version
    unlock          - privileged only; appends a DRAFT copy of the LOCKED one

Every read-validate-write runs under the version store's per-key lock, so two
concurrent ``lock`` calls can never both append from the same base.
"""

import logging

from dacum.ai.clustering import LANGUAGE_NAMES
from dacum.ai.output import parse_json_object
from dacum.core.exceptions import (
    ConflictError,
    ForbiddenError,
    GenerationUnavailable,
    LockRejected,
    MalformedExternalOutput,
    NotFoundError,
    ValidationError,
)
from dacum.services.cp_document import (
    STATUS_DRAFT,
    STATUS_LOCKED,
    Audit,
    CPDocument,
    PerformanceCriterion,
    WorkActivity,
    WorkStep,
    normalize_cu_code,
    utcnow_iso,
    wa_title_of,
)
from dacum.services.cp_rules import MIN_WORK_STEPS, ValidationResult, validate
from dacum.services.cp_templates import templates_for
from dacum.services.phrasing import get_phrasing, supported_languages

logger = logging.getLogger(__name__)

EXPORT_FORMAT = "dacum-cp+json"


class CPService:
    """
    Args:
        version_store: VersionStore holding CP document history.
        session_store: SessionStore used to resolve CUs from the session chart
                       and the session language. Optional.
        generator: text generation collaborator for work-step seeding. Optional.
        prompt_registry: PromptRegistry providing the ``ws_seed`` prompt.
    """

    def __init__(self, version_store, session_store=None, generator=None, prompt_registry=None):
        self.versions = version_store
        self.sessions = session_store
        self.generator = generator
        self.prompt_registry = prompt_registry

    # ── Draft generation ─────────────────────────────────────────────────

    def generate_draft(
        self,
        session_id: str,
        cu,
        language: str | None = None,
        use_generation: bool = False,
        actor: str = "SYSTEM",
    ) -> CPDocument:
        """
        Build a draft for *cu* (inline dict, or a code looked up in the
        session chart) and append it as a new DRAFT version.
        """
        cu = self._resolve_cu(session_id, cu)
        cu_code = str(cu.get("cu_code") or cu.get("cuCode") or "").strip()
        if not cu_code:
            raise ValidationError("cu_code is required", details={"cu_code": "missing"},
                                  component="cp_document")
        lang = self._resolve_language(session_id, language or cu.get("language"))
        phrasing = get_phrasing(lang)

        wa_titles = [wa_title_of(wa) for wa in (cu.get("work_activities") or cu.get("workActivities") or [])]
        wa_titles = [t for t in wa_titles if t]

        seeds = {}
        if use_generation:
            seeds = self._seed_steps(cu_code, cu, wa_titles, lang)

        activities = []
        for i, title in enumerate(wa_titles, 1):
            seeded = seeds.get(title.casefold())
            if seeded:
                steps = [
                    WorkStep(
                        ws_code=f"{i}.{j}",
                        ws_text=s["ws_text"],
                        pcs=[PerformanceCriterion(
                            verb=s["verb"], object=s["object"], qualifier=s["qualifier"],
                            pc_text=phrasing.render(s["verb"], s["object"], s["qualifier"]),
                        )],
                    )
                    for j, s in enumerate(seeded, 1)
                ]
            else:
                steps = [
                    WorkStep(
                        ws_code=f"{i}.{j}",
                        ws_text=t.ws_text,
                        pcs=[PerformanceCriterion(
                            verb=t.verb, object=t.object, qualifier=t.qualifier,
                            pc_text=phrasing.render(t.verb, t.object, t.qualifier),
                        )],
                    )
                    for j, t in enumerate(templates_for(title, lang), 1)
                ]
            activities.append(WorkActivity(wa_code=f"WA-{i:02d}", wa_title=title, work_steps=steps))

        doc = CPDocument(
            session_id=session_id,
            cu_code=cu_code,
            cu_title=str(cu.get("cu_title") or cu.get("cuTitle") or cu.get("title") or "").strip(),
            cu_description=str(cu.get("cu_description") or cu.get("cuDescription") or "").strip(),
            language=lang,
            status=STATUS_DRAFT,
            work_activities=activities,
            audit=Audit(created_at=utcnow_iso(), created_by=actor),
        )
        doc.validation = validate(doc).to_dict()

        with self.versions.key_lock(session_id, cu_code):
            stored = self.versions.append_version(session_id, cu_code, doc)
        logger.info("Draft generated for %s/%s v%s (%d WAs, seeded=%d)",
                    session_id, cu_code, stored.version, len(activities), len(seeds))
        return stored

    def _seed_steps(self, cu_code: str, cu: dict, wa_titles: list[str], language: str) -> dict:
        """Generation-backed steps keyed by casefolded WA title. Empty on any failure."""
        if self.generator is None or self.prompt_registry is None or not wa_titles:
            return {}
        system, user = self.prompt_registry.render_parts(
            "ws_seed",
            language_name=LANGUAGE_NAMES.get(language, language),
            cu_title=cu.get("cu_title") or cu.get("cuTitle") or "",
            cu_code=cu_code,
            work_activities="\n".join(f"- {t}" for t in wa_titles),
            ws_per_wa=MIN_WORK_STEPS,
        )
        try:
            raw = self.generator.generate(user, system=system, purpose="ws_seed")
            parsed = parse_json_object(raw, purpose="ws_seed")
        except (GenerationUnavailable, MalformedExternalOutput) as exc:
            logger.warning("Work-step generation failed for %s, using templates: %s", cu_code, exc)
            return {}

        entries = parsed.get("work_activities")
        if not isinstance(entries, list):
            logger.warning("Work-step generation for %s returned no work_activities list", cu_code)
            return {}

        by_title = {}
        for pos, entry in enumerate(entries):
            if not isinstance(entry, dict):
                continue
            title = str(entry.get("wa_title") or "").strip()
            if not title and pos < len(wa_titles):
                title = wa_titles[pos]
            steps = [s for s in (_seed_step(raw_step) for raw_step in entry.get("work_steps") or []) if s]
            if len(steps) < MIN_WORK_STEPS:
                # this WA falls back to templates
                continue
            by_title.setdefault(title.casefold(), steps)
        return by_title

    # ── Save / lock / unlock ─────────────────────────────────────────────

    def save_working(self, session_id: str, cu_code: str, doc, actor: str = "FACILITATOR") -> CPDocument:
        """
        Persist an edited document. Never blocked by ERROR issues; the
        validation result is stored with the document.
        """
        document = doc.copy() if isinstance(doc, CPDocument) else CPDocument.from_dict(doc or {})
        document.session_id = session_id
        document.cu_code = document.cu_code or str(cu_code).strip()
        if normalize_cu_code(document.cu_code) != normalize_cu_code(cu_code):
            raise ValidationError(
                "Document cu_code does not match the target",
                details={"cu_code": document.cu_code, "target": cu_code},
                component="cp_document",
            )
        document.status = STATUS_DRAFT
        actor = actor or "FACILITATOR"

        with self.versions.key_lock(session_id, cu_code):
            latest = self.versions.latest(session_id, cu_code)
            now = utcnow_iso()
            audit = latest.audit if latest else Audit(created_at=now, created_by=actor)
            audit.updated_at = now
            audit.updated_by = list(audit.updated_by) + [actor]
            if latest is not None and latest.is_locked:
                audit.locked_at = None
                audit.locked_by = None
            document.audit = audit
            document.validation = validate(document).to_dict()

            if latest is not None and not latest.is_locked:
                stored = self.versions.overwrite_latest_unlocked(session_id, cu_code, document)
            else:
                stored = self.versions.append_version(session_id, cu_code, document)

        logger.info("Saved %s/%s v%s by %s (passed=%s)",
                    session_id, cu_code, stored.version, actor, stored.validation["passed"])
        return stored

    def lock(self, session_id: str, cu_code: str, actor: str = "PANEL") -> CPDocument:
        """
        Raises:
            NotFoundError: nothing to lock.
            ConflictError: latest version already LOCKED.
            LockRejected: latest version has ERROR issues (state untouched).
        """
        with self.versions.key_lock(session_id, cu_code):
            latest = self._latest_or_404(session_id, cu_code)
            if latest.is_locked:
                raise ConflictError("CPDocument", "status", STATUS_LOCKED,
                                    message="Latest version is already locked",
                                    component="cp_document")

            result = validate(latest)
            if not result.passed:
                logger.info("Lock rejected for %s/%s: %d errors",
                            session_id, cu_code, len(result.errors))
                raise LockRejected(
                    f"Lock rejected: {len(result.errors)} validation error(s) outstanding",
                    issues=result.issues,
                )

            locked = latest.copy()
            locked.status = STATUS_LOCKED
            locked.validation = result.to_dict()
            locked.audit.locked_at = utcnow_iso()
            locked.audit.locked_by = actor or "PANEL"
            stored = self.versions.append_version(session_id, cu_code, locked)

        logger.info("Locked %s/%s as v%s by %s", session_id, cu_code, stored.version, locked.audit.locked_by)
        return stored

    def unlock(self, session_id: str, cu_code: str, actor: str = "ADMIN", privileged: bool = False) -> CPDocument:
        if not privileged:
            raise ForbiddenError("Only a privileged user may unlock a competency profile",
                                 component="cp_document")
        with self.versions.key_lock(session_id, cu_code):
            latest = self._latest_or_404(session_id, cu_code)
            if not latest.is_locked:
                raise ConflictError("CPDocument", "status", latest.status,
                                    message="Latest version is not locked",
                                    component="cp_document")
            draft = latest.copy()
            draft.status = STATUS_DRAFT
            draft.audit.unlocked_at = utcnow_iso()
            draft.audit.unlocked_by = actor or "ADMIN"
            draft.validation = validate(draft).to_dict()
            stored = self.versions.append_version(session_id, cu_code, draft)

        logger.info("Unlocked %s/%s as v%s by %s", session_id, cu_code, stored.version, draft.audit.unlocked_by)
        return stored

    # ── Reads ────────────────────────────────────────────────────────────

    def get_version(self, session_id: str, cu_code: str, version="latest") -> CPDocument:
        versions = self.versions.get_versions(session_id, cu_code)
        if not versions:
            raise NotFoundError("CPDocument", f"{session_id}/{cu_code}", component="cp_document")
        if version in (None, "", "latest"):
            return versions[-1]
        try:
            wanted = int(version)
        except (TypeError, ValueError) as exc:
            raise ValidationError("version must be an integer or 'latest'",
                                  details={"version": version}, component="cp_document") from exc
        for doc in versions:
            if doc.version == wanted:
                return doc
        raise NotFoundError("CPDocument version", f"{session_id}/{cu_code}/v{wanted}",
                            component="cp_document")

    def list_versions(self, session_id: str, cu_code: str) -> list[dict]:
        return [
            {
                "version": doc.version,
                "status": doc.status,
                "created_at": doc.audit.created_at,
                "updated_at": doc.audit.updated_at,
                "locked_at": doc.audit.locked_at,
                "locked_by": doc.audit.locked_by,
                "unlocked_by": doc.audit.unlocked_by,
                "passed": bool((doc.validation or {}).get("passed")),
            }
            for doc in self.versions.get_versions(session_id, cu_code)
        ]

    @staticmethod
    def validate_document(doc) -> ValidationResult:
        return validate(doc)

    def export_document(self, session_id: str, cu_code: str, version="latest") -> dict:
        doc = self.get_version(session_id, cu_code, version)
        return {
            "format": EXPORT_FORMAT,
            "exported_at": utcnow_iso(),
            "document": doc.to_dict(),
            "validation": validate(doc).to_dict(),
        }

    # ── Helpers ──────────────────────────────────────────────────────────

    def _latest_or_404(self, session_id, cu_code) -> CPDocument:
        latest = self.versions.latest(session_id, cu_code)
        if latest is None:
            raise NotFoundError("CPDocument", f"{session_id}/{cu_code}", component="cp_document")
        return latest

    def _resolve_cu(self, session_id, cu) -> dict:
        inline = cu if isinstance(cu, dict) else None
        if inline is not None and (inline.get("work_activities") or inline.get("workActivities")):
            return inline
        code = (inline.get("cu_code") or inline.get("cuCode")) if inline is not None else cu
        if code and self.sessions is not None:
            key = normalize_cu_code(code)
            for entry in self.sessions.get_chart(session_id):
                if normalize_cu_code(entry.get("cu_code")) == key:
                    return entry
        if inline is not None:
            return inline
        raise NotFoundError("CompetencyUnit", cu, component="cp_document")

    def _resolve_language(self, session_id, language) -> str:
        if not language and self.sessions is not None:
            language = self.sessions.get_session(session_id).get("language")
        lang = str(language or "MS").upper()
        if lang not in supported_languages():
            raise ValidationError(f"Unsupported language '{lang}'",
                                  details={"supported": supported_languages()},
                                  component="cp_document")
        return lang


def _seed_step(data) -> dict | None:
    """Normalised generated step, or None if any VOQ field or the text is empty."""
    if not isinstance(data, dict):
        return None
    pc = data.get("pc") or data.get("performance_criterion") or {}
    if not isinstance(pc, dict):
        return None
    step = {
        "ws_text": str(data.get("ws_text") or data.get("text") or "").strip(),
        "verb": str(pc.get("verb") or "").strip(),
        "object": str(pc.get("object") or "").strip(),
        "qualifier": str(pc.get("qualifier") or "").strip(),
    }
    return step if all(step.values()) else None
