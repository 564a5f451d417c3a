"""
Deterministic work-step templates for CP draft generation.

Each work activity is mapped to a category from the leading keyword of its
title; every category yields three ``StepTemplate`` entries. The three steps
of each category include a verification-type and a record-type action, so
template drafts pass the completeness heuristic as well as the hard rules.
"""

from dataclasses import dataclass

CATEGORIES = ("analyze", "plan", "perform", "evaluate", "prepare", "default")


@dataclass(frozen=True)
class StepTemplate:
    ws_text: str
    verb: str
    object: str
    qualifier: str


def _t(*rows) -> list[StepTemplate]:
    return [StepTemplate(*row) for row in rows]


_EN = {
    "analyze": _t(
        ("Identify applicable standards and requirements.", "identified",
         "Applicable standards and requirements", "in line with organisational and regulatory guidelines"),
        ("Review existing practices and records.", "reviewed",
         "Existing practices and records", "to establish gaps and risks"),
        ("Document the analysis findings.", "documented",
         "Analysis findings", "using the prescribed documentation procedure"),
    ),
    "plan": _t(
        ("Define scope, objectives and schedule.", "defined",
         "Scope, objectives and schedule", "based on organisational needs"),
        ("Assign resources and responsibilities.", "assigned",
         "Resources and responsibilities", "according to roles and workload"),
        ("Submit the plan for review and approval.", "submitted",
         "The plan", "to the approving authority for review"),
    ),
    "perform": _t(
        ("Carry out tasks according to the approved procedure.", "carried out",
         "Tasks", "according to the approved plan and procedure"),
        ("Verify work output against the procedure.", "verified",
         "Work output", "against procedural and safety requirements"),
        ("Record work evidence in the designated file.", "recorded",
         "Work evidence", "in the designated file for traceability"),
    ),
    "evaluate": _t(
        ("Verify outputs against requirements.", "verified",
         "Outputs", "against defined requirements and standards"),
        ("Identify nonconformities and improvement actions.", "identified",
         "Nonconformities and improvement actions", "based on evaluation results"),
        ("Report evaluation results to relevant parties.", "reported",
         "Evaluation results", "to relevant parties for decision making"),
    ),
    "prepare": _t(
        ("Compile the required data and records.", "compiled",
         "Required data and records", "from verified sources"),
        ("Produce the document in the approved format.", "produced",
         "The document", "using the approved template and format"),
        ("Submit the document for review and filing.", "submitted",
         "The document", "for review, approval and filing"),
    ),
    "default": _t(
        ("Identify work requirements and inputs.", "identified",
         "Work requirements and inputs", "according to relevant guidelines"),
        ("Carry out the work according to procedure.", "carried out",
         "Work activities", "according to procedure and safety requirements"),
        ("Check outputs and record them for traceability.", "recorded",
         "Work outputs", "for traceability and future reference"),
    ),
}

_MS = {
    "analyze": _t(
        ("Kenal pasti standard dan keperluan berkaitan.", "ditentukan",
         "Standard dan keperluan berkaitan", "berdasarkan garis panduan organisasi dan peraturan"),
        ("Semak amalan dan rekod sedia ada.", "disemak",
         "Amalan dan rekod sedia ada", "bagi mengenal pasti jurang dan risiko"),
        ("Dokumenkan dapatan analisis.", "didokumenkan",
         "Dapatan analisis", "mengikut prosedur pendokumenan yang ditetapkan"),
    ),
    "plan": _t(
        ("Tetapkan skop, objektif dan jadual kerja.", "ditetapkan",
         "Skop, objektif dan jadual kerja", "berdasarkan keperluan organisasi"),
        ("Agihkan sumber dan tanggungjawab.", "diagihkan",
         "Sumber dan tanggungjawab", "mengikut peranan dan beban tugas"),
        ("Serahkan pelan untuk semakan dan kelulusan.", "diserahkan",
         "Pelan kerja", "kepada pihak berkuasa untuk semakan"),
    ),
    "perform": _t(
        ("Laksanakan tugasan mengikut prosedur yang diluluskan.", "dilaksanakan",
         "Tugasan", "mengikut pelan dan prosedur yang diluluskan"),
        ("Periksa hasil kerja berdasarkan prosedur.", "diperiksa",
         "Hasil kerja", "berdasarkan keperluan prosedur dan keselamatan"),
        ("Rekod bukti kerja dalam fail yang ditetapkan.", "direkodkan",
         "Bukti kerja", "dalam fail yang ditetapkan bagi kebolehkesanan"),
    ),
    "evaluate": _t(
        ("Sahkan output berdasarkan keperluan.", "disahkan",
         "Output", "berdasarkan keperluan dan standard yang ditetapkan"),
        ("Kenal pasti ketakakuran dan tindakan penambahbaikan.", "dikenal pasti",
         "Ketakakuran dan tindakan penambahbaikan", "berdasarkan hasil penilaian"),
        ("Laporkan hasil penilaian kepada pihak berkaitan.", "dilaporkan",
         "Hasil penilaian", "kepada pihak berkaitan untuk tindakan"),
    ),
    "prepare": _t(
        ("Kumpulkan data dan rekod yang diperlukan.", "dikumpulkan",
         "Data dan rekod yang diperlukan", "daripada sumber yang disahkan"),
        ("Hasilkan dokumen mengikut format yang diluluskan.", "dihasilkan",
         "Dokumen", "mengikut templat dan format yang diluluskan"),
        ("Serahkan dokumen untuk semakan dan pemfailan.", "diserahkan",
         "Dokumen", "untuk semakan, kelulusan dan pemfailan"),
    ),
    "default": _t(
        ("Kenal pasti keperluan dan input kerja.", "dikenal pasti",
         "Keperluan dan input kerja", "mengikut garis panduan berkaitan"),
        ("Laksanakan kerja mengikut prosedur.", "dilaksanakan",
         "Aktiviti kerja", "mengikut prosedur dan keperluan keselamatan"),
        ("Semak dan rekod output kerja.", "direkodkan",
         "Output kerja", "untuk kebolehkesanan dan rujukan"),
    ),
}

_TEMPLATES = {"EN": _EN, "MS": _MS}

# (category, leading prefixes) in priority order
_EN_KEYWORDS = (
    ("analyze", ("analy", "identify")),
    ("plan", ("plan", "schedule")),
    ("perform", ("perform", "carry", "execute", "conduct", "implement")),
    ("evaluate", ("evaluate", "assess", "verify", "review", "inspect")),
    ("prepare", ("prepare", "generate", "produce", "report", "document")),
)
_MS_KEYWORDS = (
    ("analyze", ("analisis", "menganalisis", "kenal pasti", "mengenal pasti")),
    ("plan", ("rancang", "merancang")),
    ("perform", ("laksana", "melaksana", "jalankan", "menjalankan", "buat")),
    ("evaluate", ("nilai", "menilai", "semak", "menyemak")),
    ("prepare", ("sediakan", "menyediakan", "jana", "menjana", "hasilkan", "lapor")),
)


def select_category(wa_title: str, language: str = "MS") -> str:
    """Template category for a WA title, keyed on its leading keyword."""
    title = " ".join(str(wa_title or "").lower().split())
    keywords = _MS_KEYWORDS if (language or "").upper() == "MS" else _EN_KEYWORDS
    for category, prefixes in keywords:
        if title.startswith(prefixes):
            return category
    return "default"


def templates_for(wa_title: str, language: str = "MS") -> list[StepTemplate]:
    lang = (language or "").upper()
    table = _TEMPLATES.get(lang, _EN)
    return list(table[select_category(wa_title, lang)])
