"""
Session-level clustering: runs the ClusteringEngine over a session's cards,
keeps the latest result, and applies a result into the session's competency
profile chart (CU → WA list), tagging member cards with their CU code.
"""

import logging

from dacum.ai.clustering import ClusterOptions
from dacum.core.exceptions import NotFoundError, ValidationError
from dacum.services.cp_document import utcnow_iso

logger = logging.getLogger(__name__)


class ClusterService:
    """
    Args:
        session_store: SessionStore with cards and per-session state.
        engine: ClusteringEngine.
        embedder: embedding collaborator, required for vector mode only.
        defaults: ClusterOptions built from app config.
    """

    def __init__(self, session_store, engine, embedder=None, defaults: ClusterOptions | None = None):
        self.store = session_store
        self.engine = engine
        self.embedder = embedder
        self.defaults = defaults or ClusterOptions()

    def _options(self, data: dict | None, language: str | None) -> ClusterOptions:
        data = dict(data or {})
        if language and "language" not in data:
            data["language"] = language
        return ClusterOptions.from_dict(data, self.defaults)

    def _vectors(self, items, mode, vectors):
        if mode != "vector" or vectors is not None:
            return vectors
        if self.embedder is None:
            raise ValidationError("Vector mode requires an embedding service", component="clustering")
        return self.embedder.embed([it["text"] for it in items]) if items else []

    def run(self, session_id: str, options: dict | None = None, mode: str = "lexical") -> dict:
        """Cluster the session's cards, store the result and lock the session language."""
        session = self.store.get_session(session_id)
        cards = self.store.get(session_id)
        items = [{"id": c["id"], "text": c["raw_text"]} for c in cards]
        opts = self._options(options, session["language"])
        result = self.engine.cluster(items, opts, mode=mode, vectors=self._vectors(items, mode, None))

        payload = result.to_dict()
        payload.update({
            "session_id": session_id,
            "generated_at": utcnow_iso(),
            "total_cards": len(items),
            "options": {
                "similarity_threshold": opts.similarity_threshold,
                "min_cluster_size": opts.min_cluster_size,
                "max_clusters": opts.max_clusters,
                "stable_min_size": opts.stable_min_size,
                "language": opts.language,
            },
        })
        # only a completed run fixes the language
        if not session["language_locked"]:
            self.store.lock_language(session_id, utcnow_iso())
        self.store.save_cluster_result(session_id, payload)
        logger.info("Session %s clustered: %d clusters from %d cards",
                    session_id, len(payload["clusters"]), len(items))
        return payload

    def preview(self, items: list, options: dict | None = None, mode: str = "lexical",
                vectors: list | None = None) -> dict:
        """Cluster ad-hoc ``{"id", "text"}`` items without touching session state."""
        clean = []
        for pos, it in enumerate(items or [], 1):
            if isinstance(it, str):
                it = {"id": pos, "text": it}
            if not isinstance(it, dict):
                raise ValidationError("Each item must be an object or a string", component="clustering")
            clean.append({"id": it.get("id", pos), "text": str(it.get("text") or "")})
        opts = self._options(options, None)
        return self.engine.cluster(clean, opts, mode=mode, vectors=self._vectors(clean, mode, vectors)).to_dict()

    def latest(self, session_id: str) -> dict:
        result = self.store.get_cluster_result(session_id)
        if result is None:
            raise NotFoundError("ClusterResult", session_id, component="clustering")
        return result

    def apply(self, session_id: str, cluster_result: dict | None = None) -> dict:
        """
        Turn a cluster result into the session chart.

        Each cluster becomes ``CU-NN``; each distinct member card text becomes
        a ``WA-NN`` within it. A card listed by several clusters stays with the
        first one. The whole chart is planned before any card is tagged;
        untagged member cards then get the CU code, and cards tagged earlier
        are left alone and reported.
        """
        result = cluster_result if cluster_result is not None else self.latest(session_id)
        clusters = result.get("clusters") if isinstance(result, dict) else None
        if not isinstance(clusters, list):
            raise ValidationError("Cluster result has no clusters list", component="clustering")

        cards = self.store.get(session_id)
        by_id = {str(c["id"]): c for c in cards}

        chart, plan, duplicates, claimed = [], [], [], set()
        for cluster in clusters:
            if not isinstance(cluster, dict):
                continue
            members = []
            for member_id in cluster.get("member_ids") or []:
                key = str(member_id)
                if key not in by_id:
                    continue
                if key in claimed:
                    duplicates.append(by_id[key]["id"])
                    continue
                claimed.add(key)
                members.append(by_id[key])
            if not members:
                continue

            cu_code = f"CU-{len(chart) + 1:02d}"
            activities, by_title = [], {}
            for card in members:
                title_key = card["raw_text"].casefold()
                wa = by_title.get(title_key)
                if wa is None:
                    wa = by_title[title_key] = {
                        "wa_code": f"WA-{len(activities) + 1:02d}",
                        "wa_title": card["raw_text"],
                        "card_ids": [],
                    }
                    activities.append(wa)
                wa["card_ids"].append(card["id"])
                plan.append((card, cu_code))

            chart.append({
                "cu_code": cu_code,
                "cu_title": cluster.get("suggested_title") or cu_code,
                "cu_description": "",
                "cluster_id": cluster.get("cluster_id"),
                "strength": cluster.get("strength"),
                "work_activities": activities,
            })

        if duplicates:
            logger.warning("Session %s: cards %s listed in more than one cluster, kept in the first",
                           session_id, duplicates)

        tagged, already_tagged = [], []
        for card, cu_code in plan:
            if card.get("group_id"):
                already_tagged.append({"card_id": card["id"], "group_id": card["group_id"]})
            else:
                self.store.tag(session_id, card["id"], cu_code)
                tagged.append(card["id"])

        applied_at = utcnow_iso()
        self.store.save_chart(session_id, chart, applied_at)
        logger.info("Applied %d CUs to session %s (tagged=%d, already_tagged=%d)",
                    len(chart), session_id, len(tagged), len(already_tagged))
        return {
            "session_id": session_id,
            "applied_at": applied_at,
            "cus": chart,
            "tagged": tagged,
            "already_tagged": already_tagged,
            "duplicate_members": duplicates,
        }
