from __future__ import annotations

import logging
from typing import Any, Callable, List

from flask import Flask, Response, jsonify

from . import variants
from .config import Settings, load_settings
from .errors import ScanError
from .types import TokenRecord

logger = logging.getLogger(__name__)

Scanner = Callable[[Settings], List[TokenRecord]]


def create_app(settings: Settings | None = None, scanner: Scanner | None = None) -> Flask:
    """Return a Flask application serving scans for *settings*.

    ``scanner`` runs one blocking scan; it defaults to
    :func:`coinscout.variants.scan`.
    """

    if settings is None:
        settings = load_settings()
    run_scan = scanner or variants.scan

    app = Flask(__name__)  # type: ignore[arg-type]
    app.config["COINSCOUT_SETTINGS"] = settings

    @app.after_request
    def _no_store(response: Response) -> Response:
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        content_type = response.content_type or ""
        if "application/json" in content_type.lower():
            response.headers["Cache-Control"] = "no-store"
        return response

    def _new_listings() -> Any:
        try:
            records = run_scan(settings)
        except ScanError as exc:
            logger.error("Scan failed (%s): %s", exc.status_code, exc)
            return jsonify({"error": str(exc) or "Scan failed"}), exc.status_code
        except Exception as exc:
            logger.exception("Scan crashed")
            return jsonify({"error": str(exc) or "Unknown error"}), 500
        return jsonify({"items": [record.to_dict() for record in records]})

    app.add_url_rule("/api/new-listings", "new_listings", _new_listings, methods=["GET"])
    app.add_url_rule("/api/cmc/new-listings", "cmc_new_listings", _new_listings, methods=["GET"])

    @app.get("/health")
    def health() -> Any:
        return jsonify({"ok": True, "variant": settings.variant, "configured": settings.configured()})

    return app


__all__ = ["create_app"]
