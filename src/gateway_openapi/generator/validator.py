"""Consistency checks for the final Swagger 2.0 document."""

REQUIRED_KEYS = ("swagger", "info", "paths", "definitions", "securityDefinitions", "security")
DEFINITIONS_REF = "#/definitions/"


def iter_refs(node, location: str = "#"):
    """Yield (location, ref) for every ``$ref`` in a document tree."""
    if isinstance(node, dict):
        for key, value in node.items():
            if key == "$ref" and isinstance(value, str):
                yield location, value
            else:
                yield from iter_refs(value, f"{location}/{key}")
    elif isinstance(node, list):
        for index, item in enumerate(node):
            yield from iter_refs(item, f"{location}/{index}")


def validate_references(document: dict) -> dict[str, str]:
    """Check that every reference resolves to a key in ``definitions``.

    Returns dict of {location: error_message}.
    """
    errors = {}
    definitions = document.get("definitions", {})
    for location, ref in iter_refs(document):
        if not ref.startswith(DEFINITIONS_REF):
            continue
        if ref[len(DEFINITIONS_REF):] not in definitions:
            errors[location] = f"Unresolved reference {ref}"
    return errors


def validate_dialect(document: dict) -> dict[str, str]:
    """Check for constructs of the newer dialect left in the document."""
    errors = {}
    if document.get("swagger") != "2.0":
        errors["#/swagger"] = f"Expected swagger '2.0', got {document.get('swagger')!r}"
    for key in REQUIRED_KEYS:
        if key not in document:
            errors[f"#/{key}"] = f"Missing top-level key '{key}'"
    for key in ("openapi", "components", "servers"):
        if key in document:
            errors[f"#/{key}"] = f"'{key}' is not part of Swagger 2.0"
    for location, ref in iter_refs(document):
        if not ref.startswith(DEFINITIONS_REF):
            errors[location] = f"Reference {ref} does not use {DEFINITIONS_REF}"
    return errors


def validate_document(document: dict) -> dict[str, str]:
    """Run all checks on the final document.

    Returns dict of {location: error_message} for every problem found.
    """
    errors = {}
    errors.update(validate_dialect(document))
    errors.update(validate_references(document))
    return errors
