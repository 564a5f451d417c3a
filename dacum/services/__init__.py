"""
Service container.

``init_services(app)`` wires stores, the AI collaborators and the services
once per application and keeps them in ``app.extensions["dacum"]``; views
fetch them with ``get_services()``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from flask import current_app

if TYPE_CHECKING:
    from dacum.ai.gateway import LLMGateway
    from dacum.ai.matching import MatchingEngine
    from dacum.services.catalog_service import CatalogBuilder
    from dacum.services.cluster_service import ClusterService
    from dacum.services.compare_service import CompareService
    from dacum.services.cp_service import CPService
    from dacum.services.session_service import SessionService

EXTENSION_KEY = "dacum"


@dataclass
class Services:
    gateway: LLMGateway
    sessions: SessionService
    clusters: ClusterService
    cp: CPService
    catalog: CatalogBuilder
    matching: MatchingEngine
    compare: CompareService


def init_services(app, *, gateway=None, catalog_source=None) -> Services:
    """Build the service graph from ``app.config``. Collaborators can be injected for tests."""
    from dacum.ai.clustering import ClusterOptions, ClusteringEngine
    from dacum.ai.gateway import LLMGateway
    from dacum.ai.matching import MatchingEngine
    from dacum.ai.prompt_registry import PromptRegistry
    from dacum.services.catalog_service import CatalogBuilder, JsonFileCatalogSource
    from dacum.services.cluster_service import ClusterService
    from dacum.services.compare_service import CompareService
    from dacum.services.cp_service import CPService
    from dacum.services.session_service import SessionService
    from dacum.stores import build_stores

    cfg = app.config
    session_store, version_store, catalog_store = build_stores(cfg.get("STORE_BACKEND", "sql"))

    if gateway is None:
        gateway = LLMGateway(
            generation_enabled=cfg.get("AI_GENERATION_ENABLED", True),
            chat_model=cfg.get("LLM_DEFAULT_CHAT_MODEL"),
            embed_model=cfg.get("LLM_DEFAULT_EMBED_MODEL"),
            max_retries=cfg.get("LLM_MAX_RETRIES", 3),
            # local stub only: never reach a real provider from tests
            providers={} if cfg.get("TESTING") else None,
        )
    prompts = PromptRegistry(cfg.get("PROMPTS_DIR"))

    if catalog_source is None and cfg.get("CATALOG_SOURCE_FILE"):
        catalog_source = JsonFileCatalogSource(cfg["CATALOG_SOURCE_FILE"])

    defaults = ClusterOptions(
        similarity_threshold=cfg.get("CLUSTER_SIMILARITY_THRESHOLD", 0.55),
        min_cluster_size=cfg.get("CLUSTER_MIN_SIZE", 2),
        max_clusters=cfg.get("CLUSTER_MAX_CLUSTERS", 12),
        stable_min_size=cfg.get("CLUSTER_STABLE_MIN_SIZE", 3),
    )
    matching = MatchingEngine(gateway, catalog_store, batch_size=cfg.get("EMBED_BATCH_SIZE", 200))

    services = Services(
        gateway=gateway,
        sessions=SessionService(session_store),
        clusters=ClusterService(
            session_store,
            ClusteringEngine(generator=gateway, prompt_registry=prompts),
            embedder=gateway,
            defaults=defaults,
        ),
        cp=CPService(version_store, session_store, generator=gateway, prompt_registry=prompts),
        catalog=CatalogBuilder(catalog_store, catalog_source),
        matching=matching,
        compare=CompareService(
            matching,
            session_store,
            top_k=cfg.get("MATCH_TOP_K", 3),
            accept_threshold=cfg.get("MATCH_ACCEPT_THRESHOLD", 0.78),
        ),
    )
    app.extensions[EXTENSION_KEY] = services
    app.logger.debug("Services initialised (store=%s, real_llm=%s, catalog_source=%s)",
                     cfg.get("STORE_BACKEND"), gateway.has_real_provider(), catalog_source is not None)
    return services


def get_services() -> Services:
    return current_app.extensions[EXTENSION_KEY]
