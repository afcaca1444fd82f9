#!/usr/bin/env python3
"""
Manifest validation script for the Usernet manifest service.
This script validates every manifest record in a manifest directory.
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Any, List

from jinja2 import TemplateSyntaxError
from pydantic import ValidationError

from service_manifest.app.manifests.models import ServiceManifest
from service_manifest.app.rendering import build_environment


def validate_manifest(manifest_path: Path, base_path: Path) -> List[str]:
    """Validate a single manifest record."""
    errors = []

    try:
        raw = json.loads(manifest_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        errors.append(f"Invalid JSON: {e}")
        return errors
    except (OSError, UnicodeDecodeError) as e:
        errors.append(f"Error reading file: {e}")
        return errors

    if not isinstance(raw, dict):
        errors.append("Manifest must be a JSON object")
        return errors

    try:
        manifest = ServiceManifest.model_validate(raw)
    except ValidationError as e:
        for error in e.errors(include_url=False):
            location = ".".join(str(part) for part in error["loc"])
            errors.append(f"{location}: {error['msg']}")
        return errors

    errors.extend(_check_cases("user_agent_cases", manifest.user_agent_cases))
    errors.extend(_check_cases("country_cases", manifest.country_cases))

    if (manifest.user_agent_cases or manifest.country_cases) and not isinstance(manifest.default_response, dict):
        errors.append("default_response must be an object when overrides are configured")

    seen_types = set()
    environment = build_environment(autoescape=False)
    for index, template in enumerate(manifest.templates):
        label = f"templates[{index}] ({template.content_type})"

        if template.content_type in seen_types:
            errors.append(f"{label}: duplicate content type, only the first template is used")
        seen_types.add(template.content_type)

        if template.content_type == "application/json":
            errors.append(f"{label}: application/json responses are never rendered")

        if not template.has_source:
            errors.append(f"{label}: needs template or template_file")
            continue

        if template.template_file:
            template_path = base_path / template.template_file
            if not template_path.is_file():
                errors.append(f"{label}: template file not found: {template_path}")
                continue
            try:
                source = template_path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                errors.append(f"{label}: error reading template file: {e}")
                continue
        else:
            source = template.template

        try:
            environment.parse(source)
        except TemplateSyntaxError as e:
            errors.append(f"{label}: template syntax error on line {e.lineno}: {e.message}")

    return errors


def _check_cases(field: str, cases: dict) -> List[str]:
    errors = []
    for key, override in cases.items():
        if override is not None and not isinstance(override, dict):
            errors.append(f"{field}[{key}]: override must be an object, got {_type_name(override)}")
    return errors


def _type_name(value: Any) -> str:
    return "null" if value is None else type(value).__name__


def main(argv=None):
    """Main function to validate all manifest records."""
    parser = argparse.ArgumentParser(description="Validate manifest records")
    parser.add_argument("manifest_dir", nargs="?", default="manifest", help="Directory holding *.json manifest records")
    args = parser.parse_args(argv)

    base_path = Path(args.manifest_dir)
    print(f"Validating manifests in {base_path}...")

    manifest_paths = sorted(base_path.glob("*.json")) if base_path.is_dir() else []
    if not manifest_paths:
        print("No manifest records found")
        return 1

    total_errors = 0

    for manifest_path in manifest_paths:
        errors = validate_manifest(manifest_path, base_path)

        if errors:
            print(f"❌ {manifest_path.name}: {len(errors)} validation errors")
            for error in errors:
                print(f"   - {error}")
            total_errors += len(errors)
        else:
            print(f"✅ {manifest_path.name}: manifest is valid")

    print(f"\nValidation complete: {total_errors} total errors")

    if total_errors == 0:
        print("All manifests are valid!")
        return 0
    else:
        print("Some manifests have validation errors")
        return 1


if __name__ == "__main__":
    sys.exit(main())
