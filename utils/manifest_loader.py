"""
Manifest Loader for the Fallible Resource library.

Loads and validates JSON manifests describing resources to provision.

Format:
    {
        "description": "optional text",
        "defaults": {"permissions": "0640", "group": "staff"},
        "resources": [
            {"identity": "note.txt", "initial_content": "hello"},
            {"identity": "/var/tmp/app.lock", "overwrite_existing": true}
        ]
    }
"""

import json
import os
from typing import Any, Dict, List

from models.config import Permission, ResourceConfig


class ManifestLoadError(Exception):
    """Exception raised when a manifest cannot be loaded or is invalid."""
    pass


ALLOWED_KEYS = {
    'identity', 'owner', 'group', 'permissions', 'initial_content', 'overwrite_existing'
}


def load_manifest(file_path: str) -> List[ResourceConfig]:
    """
    Load resource configurations from a JSON manifest.

    Relative identities are resolved against the manifest's directory.

    Args:
        file_path: Path to manifest JSON file

    Returns:
        List of ResourceConfig in manifest order

    Raises:
        ManifestLoadError: If file cannot be loaded or is invalid
    """
    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except FileNotFoundError:
        raise ManifestLoadError(f"Manifest file not found: {file_path}")
    except OSError as e:
        raise ManifestLoadError(f"Cannot read manifest file: {e}")
    except UnicodeDecodeError as e:
        raise ManifestLoadError(f"Manifest file is not UTF-8 text: {e}")
    except json.JSONDecodeError as e:
        raise ManifestLoadError(f"Invalid JSON in manifest file: {e}")

    if not isinstance(data, dict):
        raise ManifestLoadError("Manifest must be a JSON object")
    if not isinstance(data.get('description', ''), str):
        raise ManifestLoadError("'description' must be a string")
    if 'resources' not in data:
        raise ManifestLoadError("Manifest missing 'resources' field")
    if not isinstance(data['resources'], list):
        raise ManifestLoadError("'resources' must be a list")

    defaults = data.get('defaults', {})
    if not isinstance(defaults, dict):
        raise ManifestLoadError("'defaults' must be an object")
    if 'identity' in defaults:
        raise ManifestLoadError("'defaults' cannot set 'identity'")
    _check_keys(defaults, "defaults")

    base_dir = os.path.dirname(os.path.abspath(file_path))
    configs = []
    seen = set()

    for index, entry in enumerate(data['resources']):
        if not isinstance(entry, dict):
            raise ManifestLoadError(f"Resource #{index} must be an object")
        _check_keys(entry, f"resource #{index}")

        merged = {**defaults, **entry}
        config = _load_resource(merged, index, base_dir)

        if config.identity in seen:
            raise ManifestLoadError(f"Duplicate identity in manifest: {config.identity}")
        seen.add(config.identity)
        configs.append(config)

    return configs


def _check_keys(entry: Dict[str, Any], where: str) -> None:
    unknown = sorted(set(entry) - ALLOWED_KEYS)
    if unknown:
        raise ManifestLoadError(f"Unknown keys in {where}: {', '.join(unknown)}")


def _load_resource(entry: Dict[str, Any], index: int, base_dir: str) -> ResourceConfig:
    """
    Build one ResourceConfig from a merged manifest entry.

    Args:
        entry: Resource fields with defaults applied
        index: Position in the manifest (for messages)
        base_dir: Directory relative identities are resolved against

    Returns:
        ResourceConfig
    """
    identity = entry.get('identity')
    if not isinstance(identity, str) or not identity:
        raise ManifestLoadError(f"Resource #{index}: 'identity' must be a non-empty string")
    if not os.path.isabs(identity):
        identity = os.path.join(base_dir, identity)

    owner = _optional_id(entry, 'owner', index)
    group = _optional_id(entry, 'group', index)

    permissions = None
    if entry.get('permissions') is not None:
        try:
            permissions = Permission.parse(entry['permissions'])
        except ValueError as e:
            raise ManifestLoadError(f"Resource #{index}: {e}")

    content = entry.get('initial_content')
    if content is not None:
        if not isinstance(content, str):
            raise ManifestLoadError(f"Resource #{index}: 'initial_content' must be a string")
        content = content.encode('utf-8')

    overwrite = entry.get('overwrite_existing', False)
    if not isinstance(overwrite, bool):
        raise ManifestLoadError(f"Resource #{index}: 'overwrite_existing' must be true or false")

    return ResourceConfig(
        identity=identity,
        owner=owner,
        group=group,
        permissions=permissions,
        initial_content=content,
        overwrite_existing=overwrite,
    )


def _optional_id(entry: Dict[str, Any], key: str, index: int):
    value = entry.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise ManifestLoadError(f"Resource #{index}: '{key}' must be a name or numeric id")
    return str(value)


def get_manifest_description(file_path: str) -> str:
    """
    Get description from manifest file without full loading.

    Args:
        file_path: Path to manifest JSON file

    Returns:
        Description string, or empty string if not present or unreadable
    """
    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, ValueError):
        return ''
    if not isinstance(data, dict):
        return ''
    description = data.get('description', '')
    return description if isinstance(description, str) else ''
