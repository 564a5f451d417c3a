"""
DACUM Competency Profile Platform
Clustering Engine.

Groups short activity statements into candidate competency units.

Strategies (same output shape):
    - lexical:    greedy seed growth on Jaccard token similarity, no external calls
    - vector:     similarity graph over caller-supplied embeddings, connected
                  components extracted with networkx
    - generative: the text generation service partitions the cards; any
                  failure falls back to lexical

Every emitted cluster gets a suggested title (generation service when
available, keyword-frequency heuristic otherwise) and a strength label
derived from its member count.

Usage:
    engine = ClusteringEngine()
    result = engine.cluster(
        [{"id": 1, "text": "Record attendance"}, {"id": 2, "text": "Log attendance sheet"}],
        ClusterOptions(similarity_threshold=0.25),
    )
"""

import logging
from collections import Counter
from dataclasses import asdict, dataclass, field

import networkx as nx

from dacum.ai.output import parse_json_object
from dacum.ai.similarity import cosine, jaccard, tokenize
from dacum.core.exceptions import (
    GenerationUnavailable,
    MalformedExternalOutput,
    ValidationError,
)

logger = logging.getLogger(__name__)

MODES = ("lexical", "vector", "generative")
GENERATIVE_MIN_ITEMS = 5
TITLE_SEPARATOR = " / "

LANGUAGE_NAMES = {"EN": "English", "MS": "Bahasa Melayu (Malaysia)"}
_PLACEHOLDER = {"EN": "Cluster {n}", "MS": "Kluster {n}"}

STOP_WORDS = frozenset({
    # EN
    "a", "an", "and", "are", "as", "at", "be", "by", "for", "from", "in", "into",
    "is", "it", "of", "on", "or", "the", "to", "with", "all", "any", "each",
    "per", "via", "that", "this", "these", "those", "their",
    # MS
    "dan", "atau", "yang", "untuk", "dengan", "di", "ke", "dari", "pada",
    "dalam", "oleh", "ini", "itu", "bagi", "serta", "secara", "kepada",
    "adalah", "ialah", "akan", "telah", "para", "setiap", "semua",
})


@dataclass
class ClusterOptions:
    similarity_threshold: float = 0.55
    min_cluster_size: int = 2
    max_clusters: int = 12
    stable_min_size: int = 3
    keep_empty: bool = False
    language: str = "MS"

    @classmethod
    def from_dict(cls, data: dict | None, defaults: "ClusterOptions | None" = None) -> "ClusterOptions":
        """Build options from request JSON, filling gaps from *defaults*."""
        base = asdict(defaults or cls())
        data = data or {}
        try:
            return cls(
                similarity_threshold=float(data.get("similarity_threshold", base["similarity_threshold"])),
                min_cluster_size=max(1, int(data.get("min_cluster_size", base["min_cluster_size"]))),
                max_clusters=max(1, int(data.get("max_clusters", base["max_clusters"]))),
                stable_min_size=max(1, int(data.get("stable_min_size", base["stable_min_size"]))),
                keep_empty=bool(data.get("keep_empty", base["keep_empty"])),
                language=str(data.get("language", base["language"]) or "MS").upper(),
            )
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"Invalid cluster options: {exc}", component="clustering") from exc


@dataclass
class Cluster:
    cluster_id: str
    member_ids: list
    suggested_title: str
    strength: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ClusterResult:
    clusters: list[Cluster] = field(default_factory=list)
    unassigned: list = field(default_factory=list)
    mode: str = "lexical"
    fallback_reason: str | None = None

    def to_dict(self) -> dict:
        return {
            "mode": self.mode,
            "fallback_reason": self.fallback_reason,
            "clusters": [c.to_dict() for c in self.clusters],
            "unassigned": list(self.unassigned),
        }


# ── Grouping strategies (return lists of item indices) ──────────────────────


def lexical_groups(texts: list[str], threshold: float, min_size: int) -> list[list[int]]:
    """Greedy seed growth on Jaccard similarity. O(n²)."""
    token_sets = [set(tokenize(t)) for t in texts]
    used: set[int] = set()
    groups = []
    for seed in range(len(texts)):
        if seed in used:
            continue
        group = [seed]
        for j in range(len(texts)):
            if j == seed or j in used:
                continue
            if jaccard(token_sets[seed], token_sets[j]) >= threshold:
                group.append(j)
        if len(group) >= min_size:
            groups.append(group)
            used.update(group)
        # smaller groups release their members back to the pool
    return groups


def check_vectors(vectors, count: int) -> list[list[float]]:
    """
    One numeric vector per item, all of the same dimension.

    Raises:
        ValidationError: on any other shape.
    """
    if not isinstance(vectors, (list, tuple)) or len(vectors) != count:
        raise ValidationError(
            "Vector mode requires exactly one vector per item",
            details={"items": count, "vectors": len(vectors) if isinstance(vectors, (list, tuple)) else 0},
            component="clustering",
        )
    clean, dimension = [], None
    for pos, vec in enumerate(vectors):
        if (not isinstance(vec, (list, tuple)) or not vec
                or not all(isinstance(x, (int, float)) and not isinstance(x, bool) for x in vec)):
            raise ValidationError(
                "Each vector must be a non-empty list of numbers",
                details={"index": pos},
                component="clustering",
            )
        if dimension is None:
            dimension = len(vec)
        elif len(vec) != dimension:
            raise ValidationError(
                "All vectors must have the same dimension",
                details={"index": pos, "expected": dimension, "got": len(vec)},
                component="clustering",
            )
        clean.append([float(x) for x in vec])
    return clean


def vector_groups(
    vectors: list[list[float]],
    threshold: float,
    min_size: int,
    max_clusters: int,
) -> list[list[int]]:
    """Connected components of the cosine ≥ threshold graph."""
    graph = nx.Graph()
    graph.add_nodes_from(range(len(vectors)))
    for i in range(len(vectors)):
        for j in range(i + 1, len(vectors)):
            if cosine(vectors[i], vectors[j]) >= threshold:
                graph.add_edge(i, j)

    components = [sorted(c) for c in nx.connected_components(graph)]
    components = [c for c in components if len(c) >= min_size]
    components.sort(key=lambda c: (-len(c), c[0]))
    return components[:max_clusters]


def keyword_title(texts: list[str], *, index: int = 1, language: str = "MS") -> str:
    """Top-3 frequent non-stop-word tokens joined, or a numbered placeholder."""
    counts: Counter = Counter()
    first_seen: dict[str, int] = {}
    for text in texts:
        for tok in tokenize(text):
            if tok in STOP_WORDS or len(tok) < 3 or tok.isdigit():
                continue
            counts[tok] += 1
            first_seen.setdefault(tok, len(first_seen))
    if not counts:
        return _PLACEHOLDER.get(language, _PLACEHOLDER["EN"]).format(n=index)
    ranked = sorted(counts, key=lambda t: (-counts[t], first_seen[t]))
    return TITLE_SEPARATOR.join(ranked[:3])


# ── Engine ──────────────────────────────────────────────────────────────────


class ClusteringEngine:
    """
    Stateless clustering facade.

    Args:
        generator: optional text generation collaborator exposing
                   ``generate(prompt, system=None, purpose="") -> str``.
        prompt_registry: PromptRegistry used to render generation prompts.
    """

    def __init__(self, generator=None, prompt_registry=None):
        self.generator = generator
        self.prompt_registry = prompt_registry

    def cluster(
        self,
        items: list[dict],
        options: ClusterOptions | None = None,
        *,
        mode: str = "lexical",
        vectors: list[list[float]] | None = None,
    ) -> ClusterResult:
        """
        Cluster ``items`` (``{"id", "text"}`` dicts).

        Raises:
            ValidationError: unknown mode, or vector mode without one numeric
                vector per item.
        """
        options = options or ClusterOptions()
        if mode not in MODES:
            raise ValidationError(
                f"Unknown clustering mode '{mode}'",
                details={"valid_modes": list(MODES)},
                component="clustering",
            )

        texts = [str(it.get("text") or "") for it in items]
        fallback_reason = None
        titles: list[str | None] = []

        if mode == "vector":
            groups = vector_groups(check_vectors(vectors, len(items)), options.similarity_threshold,
                                   options.min_cluster_size, options.max_clusters)
        elif mode == "generative":
            try:
                groups, titles = self._generative_groups(items, texts, options)
            except (GenerationUnavailable, MalformedExternalOutput) as exc:
                logger.warning("Generative clustering failed, using lexical: %s", exc)
                fallback_reason = exc.code
                mode = "lexical"
                groups = lexical_groups(texts, options.similarity_threshold, options.min_cluster_size)
                titles = []
        else:
            groups = lexical_groups(texts, options.similarity_threshold, options.min_cluster_size)

        result = self._finalize(items, texts, groups, titles, options)
        result.mode = mode
        result.fallback_reason = fallback_reason
        logger.info("Clustered %d items into %d clusters (mode=%s, unassigned=%d)",
                    len(items), len(result.clusters), mode, len(result.unassigned))
        return result

    # ── Generative partition ─────────────────────────────────────────────

    def _generative_groups(self, items, texts, options):
        if self.generator is None or self.prompt_registry is None:
            raise GenerationUnavailable("No text generation service configured", component="clustering")
        if len(items) < GENERATIVE_MIN_ITEMS:
            raise GenerationUnavailable(
                f"Generative clustering needs at least {GENERATIVE_MIN_ITEMS} cards",
                component="clustering",
            )

        cards = "\n".join(f"{it['id']}: {text}" for it, text in zip(items, texts))
        system, user = self.prompt_registry.render_parts(
            "cluster_cards",
            cards=cards,
            min_clusters=min(4, len(items)),
            max_clusters=options.max_clusters,
            language_name=LANGUAGE_NAMES.get(options.language, options.language),
        )
        raw = self.generator.generate(user, system=system, purpose="cluster_cards")
        parsed = parse_json_object(raw, purpose="cluster_cards")

        clusters = parsed.get("clusters")
        if not isinstance(clusters, list):
            raise MalformedExternalOutput("Missing 'clusters' list", component="clustering")

        index_by_id = {str(it["id"]): idx for idx, it in enumerate(items)}
        groups, titles = [], []
        for entry in clusters:
            if not isinstance(entry, dict):
                continue
            ids = entry.get("card_ids") or entry.get("cardIds") or []
            if not isinstance(ids, list):
                continue
            group = [index_by_id[str(i)] for i in ids if str(i) in index_by_id]
            groups.append(group)
            title = entry.get("title")
            titles.append(title.strip() if isinstance(title, str) and title.strip() else None)
        if not groups:
            raise MalformedExternalOutput("Generation returned no usable clusters", component="clustering")
        return groups, titles

    # ── Post-processing ──────────────────────────────────────────────────

    def _finalize(self, items, texts, groups, titles, options) -> ClusterResult:
        seen_ids = set()
        clusters = []
        for pos, group in enumerate(groups):
            members, member_texts = [], []
            for idx in group:
                item_id = items[idx]["id"]
                if item_id in seen_ids:
                    # first writer wins
                    continue
                seen_ids.add(item_id)
                members.append(item_id)
                member_texts.append(texts[idx])
            if not members and not options.keep_empty:
                continue

            n = len(clusters) + 1
            title = titles[pos] if pos < len(titles) and titles[pos] else None
            if title is None:
                title = self.suggest_title(member_texts, index=n, language=options.language)
            clusters.append(Cluster(
                cluster_id=f"C{n}",
                member_ids=members,
                suggested_title=title,
                strength="stable" if len(members) >= options.stable_min_size else "weak",
            ))

        unassigned = [it["id"] for it in items if it["id"] not in seen_ids]
        return ClusterResult(clusters=clusters, unassigned=unassigned)

    def suggest_title(self, texts: list[str], *, index: int = 1, language: str = "MS") -> str:
        """Generation-backed title with keyword-frequency fallback. Never empty."""
        if self.generator is not None and self.prompt_registry is not None and texts:
            try:
                system, user = self.prompt_registry.render_parts(
                    "cluster_title",
                    activities="\n".join(f"- {t}" for t in texts),
                    language=language,
                    language_name=LANGUAGE_NAMES.get(language, language),
                )
                raw = self.generator.generate(user, system=system, purpose="cluster_title")
                title = parse_json_object(raw, purpose="cluster_title").get("title")
                if isinstance(title, str) and title.strip():
                    return title.strip()
                raise MalformedExternalOutput("Title missing from generation output")
            except (GenerationUnavailable, MalformedExternalOutput) as exc:
                logger.warning("Title generation failed, using keyword heuristic: %s", exc)
        return keyword_title(texts, index=index, language=language)
