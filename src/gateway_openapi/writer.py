"""Serialize the final specification to disk."""

import json
from pathlib import Path

import yaml

from gateway_openapi.errors import GatewaySpecError


class _NoAliasDumper(yaml.SafeDumper):
    """Safe dumper that writes repeated objects in full instead of as anchors."""

    def ignore_aliases(self, data):
        return True


def dump_document(document: dict, fmt: str = "yaml") -> str:
    if fmt == "json":
        return json.dumps(document, indent=2, ensure_ascii=False) + "\n"
    return yaml.dump(
        document,
        Dumper=_NoAliasDumper,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
    )


def write_document(document: dict, output: Path) -> Path:
    """Write the document as YAML, or JSON when the suffix is .json. Returns the resolved path."""
    fmt = "json" if output.suffix.lower() == ".json" else "yaml"
    content = dump_document(document, fmt)
    try:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(content, encoding="utf-8")
    except OSError as e:
        raise GatewaySpecError(f"Error writing {output}: {e}") from e
    return output.resolve()
