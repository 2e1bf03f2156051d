"""OpenAPI 3 -> Swagger 2.0 conversion.

Best-effort structural transform. Constructs with no Swagger 2 equivalent
are dropped or carried through unchanged, and each one produces a warning
in the result instead of an exception.
"""

import copy
from urllib.parse import urlparse

from pydantic import BaseModel

OAS3_REF = "#/components/schemas/"
SWAGGER2_REF = "#/definitions/"

HTTP_METHODS = ("get", "put", "post", "delete", "options", "head", "patch")
UNSUPPORTED_KEYWORDS = ("oneOf", "anyOf", "not")
INLINE_PARAM_KEYS = ("type", "format", "items", "enum", "default", "minimum", "maximum", "pattern", "minLength", "maxLength")

OAUTH2_FLOWS = {
    "implicit": "implicit",
    "password": "password",
    "clientCredentials": "application",
    "authorizationCode": "accessCode",
}


class ConversionResult(BaseModel):
    spec: dict
    warnings: list[str] = []


class _Converter:
    def __init__(self, document: dict):
        self.document = document
        self.warnings: list[str] = []

    def warn(self, message: str) -> None:
        if message not in self.warnings:
            self.warnings.append(message)

    def schema(self, schema, where: str):
        if isinstance(schema, list):
            return [self.schema(item, where) for item in schema]
        if not isinstance(schema, dict):
            return schema

        result = {}
        for key, value in schema.items():
            if key == "$ref" and isinstance(value, str):
                result[key] = value.replace(OAS3_REF, SWAGGER2_REF, 1)
            elif key == "nullable":
                result["x-nullable"] = value
            elif key in UNSUPPORTED_KEYWORDS:
                self.warn(f"{where}: '{key}' is not supported in Swagger 2.0 and was dropped")
            elif key in ("properties", "definitions") and isinstance(value, dict):
                result[key] = {name: self.schema(sub, f"{where}.{name}") for name, sub in value.items()}
            else:
                result[key] = self.schema(value, where)
        return result

    def parameter(self, param: dict, where: str) -> dict | None:
        if "$ref" in param:
            self.warn(f"{where}: parameter reference {param['$ref']} was dropped")
            return None
        location = param.get("in")
        if location == "cookie":
            self.warn(f"{where}: cookie parameter '{param.get('name')}' has no Swagger 2.0 equivalent")
            return None

        result = {"name": param.get("name"), "in": location}
        if "description" in param:
            result["description"] = param["description"]
        result["required"] = bool(param.get("required", location == "path"))

        schema = self.schema(param.get("schema", {"type": "string"}), where)
        if "$ref" in schema or schema.get("type") == "object":
            self.warn(f"{where}: non-primitive parameter '{param.get('name')}' inlined as string")
            schema = {"type": "string"}
        for key in INLINE_PARAM_KEYS:
            if key in schema:
                result[key] = schema[key]
        if result.get("type") == "array" and "items" not in result:
            result["items"] = {"type": "string"}
        return result

    def request_body(self, body: dict, where: str) -> tuple[dict, list[str]]:
        content = body.get("content", {})
        media_types = list(content)
        schema = {"type": "object"}
        if media_types:
            schema = self.schema(content[media_types[0]].get("schema", {"type": "object"}), where)
        param = {"name": "body", "in": "body", "required": bool(body.get("required", False)), "schema": schema}
        if "description" in body:
            param["description"] = body["description"]
        return param, media_types

    def responses(self, responses: dict, where: str) -> tuple[dict, list[str]]:
        result = {}
        produces: list[str] = []
        for status, response in responses.items():
            entry = {"description": response.get("description", "")}
            content = response.get("content", {})
            for media_type in content:
                if media_type not in produces:
                    produces.append(media_type)
            if content:
                first = next(iter(content.values()))
                if "schema" in first:
                    entry["schema"] = self.schema(first["schema"], f"{where} {status}")
            result[str(status)] = entry
        return result, produces

    def operation(self, operation: dict, where: str) -> dict:
        result = {}
        for key, value in operation.items():
            if key in ("parameters", "requestBody", "responses", "servers"):
                continue
            result[key] = copy.deepcopy(value)

        parameters = []
        for param in operation.get("parameters", []):
            converted = self.parameter(param, where)
            if converted is not None:
                parameters.append(converted)

        if "requestBody" in operation:
            body, consumes = self.request_body(operation["requestBody"], where)
            parameters.append(body)
            if consumes:
                result["consumes"] = consumes
        if parameters:
            result["parameters"] = parameters

        responses, produces = self.responses(operation.get("responses", {}), where)
        if produces:
            result["produces"] = produces
        result["responses"] = responses

        return result

    def paths(self, paths: dict) -> dict:
        result = {}
        for path, item in paths.items():
            converted = {}
            for key, value in item.items():
                where = f"{key.upper()} {path}"
                if key in HTTP_METHODS:
                    converted[key] = self.operation(value, where)
                elif key == "parameters":
                    params = [self.parameter(p, path) for p in value]
                    converted[key] = [p for p in params if p is not None]
                elif key in ("trace", "servers"):
                    self.warn(f"{where}: not supported in Swagger 2.0 and was dropped")
                else:
                    converted[key] = copy.deepcopy(value)
            result[path] = converted
        return result

    def security_scheme(self, name: str, scheme: dict) -> dict:
        kind = scheme.get("type")
        if kind == "apiKey":
            return {k: v for k, v in scheme.items() if k in ("type", "name", "in", "description") or k.startswith("x-")}
        if kind == "http" and scheme.get("scheme", "").lower() == "basic":
            return {"type": "basic"}
        if kind == "oauth2" and scheme.get("flows"):
            flow_name, flow = next(iter(scheme["flows"].items()))
            result = {"type": "oauth2", "flow": OAUTH2_FLOWS.get(flow_name, flow_name)}
            for key in ("authorizationUrl", "tokenUrl"):
                if key in flow:
                    result[key] = flow[key]
            result["scopes"] = dict(flow.get("scopes", {}))
            result.update({k: v for k, v in scheme.items() if k.startswith("x-")})
            return result
        self.warn(f"securityScheme '{name}' ({kind}) has no Swagger 2.0 equivalent; kept as-is")
        return copy.deepcopy(scheme)

    def convert(self) -> dict:
        doc = self.document
        spec: dict = {"swagger": "2.0", "info": copy.deepcopy(doc.get("info", {}))}

        servers = doc.get("servers") or []
        if servers:
            if len(servers) > 1:
                self.warn("Only the first server was kept")
            url = urlparse(servers[0].get("url", ""))
            if url.netloc:
                spec["host"] = url.netloc
            if url.path and url.path != "/":
                spec["basePath"] = url.path.rstrip("/")
            if url.scheme:
                spec["schemes"] = [url.scheme]

        if doc.get("tags"):
            spec["tags"] = copy.deepcopy(doc["tags"])
        spec["paths"] = self.paths(doc.get("paths", {}))

        components = doc.get("components", {})
        spec["definitions"] = {
            name: self.schema(schema, name) for name, schema in components.get("schemas", {}).items()
        }
        schemes = components.get("securitySchemes", {})
        if schemes:
            spec["securityDefinitions"] = {name: self.security_scheme(name, s) for name, s in schemes.items()}
        if "security" in doc:
            spec["security"] = copy.deepcopy(doc["security"])
        for key, value in doc.items():
            if key.startswith("x-"):
                spec[key] = copy.deepcopy(value)
        return spec


def convert_to_swagger2(document: dict) -> ConversionResult:
    """Convert an OpenAPI 3 document to Swagger 2.0, collecting warnings."""
    converter = _Converter(document)
    spec = converter.convert()
    return ConversionResult(spec=spec, warnings=converter.warnings)
