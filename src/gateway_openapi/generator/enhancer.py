"""Google Cloud API Gateway enhancements for a Swagger 2.0 document.

Adds management (metrics and quota) metadata, the security definitions the
gateway accepts, and an ``x-google-backend`` block on every operation that
belongs to a known service.
"""

import copy
import logging
import re

from gateway_openapi.config import GatewayConfig
from gateway_openapi.parser.base import ServiceDescriptor

logger = logging.getLogger(__name__)

HTTP_METHODS = ("get", "put", "post", "delete", "options", "head", "patch")

API_KEY_SCHEME = "api_key"
FIREBASE_SCHEME = "firebase_auth"
FIREBASE_JWKS_URI = "https://www.googleapis.com/service_accounts/v1/jwk/securetoken@system.gserviceaccount.com"


def default_security() -> list[dict]:
    return [{API_KEY_SCHEME: []}]


def management_metadata(config: GatewayConfig) -> dict:
    return {
        "metrics": [
            {
                "name": "request_count",
                "display_name": "Request Count",
                "value_type": "INT64",
                "metric_kind": "DELTA",
            },
            {
                "name": "request_latency",
                "display_name": "Request Latency",
                "value_type": "DISTRIBUTION",
                "metric_kind": "DELTA",
            },
        ],
        "quota": {
            "limits": [
                {
                    "name": "RequestsPerMinutePerProject",
                    "metric": "request_count",
                    "unit": "1/min/{project}",
                    "values": {"STANDARD": config.rate_limit},
                }
            ]
        },
    }


def endpoint_name(title: str) -> str:
    return re.sub(r"\s+", "-", title.strip().lower()) + "-gateway"


def is_supported_scheme(scheme: dict) -> bool:
    """Security shapes API Gateway accepts: API keys, and JWT-validated oauth2."""
    if not isinstance(scheme, dict):
        return False
    kind = scheme.get("type")
    if kind == "apiKey":
        return scheme.get("in") in ("header", "query") and bool(scheme.get("name"))
    if kind == "oauth2":
        return "x-google-issuer" in scheme and "x-google-jwks_uri" in scheme
    return False


def security_definitions(existing: dict, config: GatewayConfig) -> tuple[dict, list[str]]:
    """Return the pruned definitions plus the names that were removed."""
    definitions = {}
    pruned = []
    for name, scheme in existing.items():
        if is_supported_scheme(scheme):
            definitions[name] = copy.deepcopy(scheme)
        else:
            pruned.append(name)

    definitions[API_KEY_SCHEME] = {"type": "apiKey", "name": "x-api-key", "in": "header"}
    if config.firebase_auth:
        issuer = f"https://securetoken.google.com/{config.project_id}"
        definitions[FIREBASE_SCHEME] = {
            "type": "oauth2",
            "authorizationUrl": issuer,
            "flow": "implicit",
            "x-google-issuer": issuer,
            "x-google-jwks_uri": FIREBASE_JWKS_URI,
            "x-google-audiences": config.project_id,
        }
    return definitions, pruned


def find_service_for_path(path: str, services: list[ServiceDescriptor]) -> ServiceDescriptor | None:
    """Longest prefix match on a path-segment boundary."""
    best = None
    for service in services:
        prefix = service.prefix.rstrip("/")
        if path == prefix or path.startswith(prefix + "/") or prefix == "":
            if best is None or len(prefix) > len(best.prefix.rstrip("/")):
                best = service
    return best


def _prune_requirements(requirements: list[dict], allowed: dict) -> list[dict]:
    return [req for req in requirements if all(name in allowed for name in req)]


def enhance_for_google_cloud(
    spec: dict,
    services: list[ServiceDescriptor],
    config: GatewayConfig,
) -> dict:
    """Return a copy of ``spec`` with API Gateway extensions applied."""
    enhanced = copy.deepcopy(spec)

    enhanced["info"] = {
        **enhanced.get("info", {}),
        "title": config.title,
        "description": config.description,
        "version": config.version,
    }
    enhanced["x-google-management"] = management_metadata(config)
    enhanced["x-google-endpoints"] = [{"name": endpoint_name(config.title), "allowCors": True}]

    definitions, pruned = security_definitions(enhanced.get("securityDefinitions", {}), config)
    for name in pruned:
        logger.warning("Removed security definition '%s': not supported by API Gateway", name)
    enhanced["securityDefinitions"] = definitions
    enhanced["security"] = _prune_requirements(enhanced.get("security", []), definitions) or default_security()

    for path, item in enhanced.get("paths", {}).items():
        service = find_service_for_path(path, services)
        if service is None:
            logger.info("%s matches no service prefix; no backend configured", path)
        for method in HTTP_METHODS:
            operation = item.get(method)
            if not isinstance(operation, dict):
                continue
            security = _prune_requirements(operation.get("security") or [], definitions)
            operation["security"] = security or default_security()
            if service is not None:
                operation["x-google-backend"] = {
                    "address": service.backend_url,
                    "protocol": config.backend_protocol,
                    "path_translation": "APPEND_PATH_TO_ADDRESS",
                }

    return enhanced
