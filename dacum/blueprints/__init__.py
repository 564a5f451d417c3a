"""HTTP blueprints. Each module owns one route group under ``/api/v1``."""
