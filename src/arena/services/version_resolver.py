from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from ..domain.model_catalog import ModelCatalog
from ..domain.models import DemoTile, Output, ResolvedOutput


def version_key(output: Output):
    return (output.created_at, output.output_id)


def group_versions(outputs: Iterable[Output]) -> Dict[str, List[Output]]:
    """Outputs grouped by model id, oldest first within each group.

    Groups keep the order in which their model id was first seen.
    """
    groups: Dict[str, List[Output]] = {}
    for out in outputs:
        groups.setdefault(out.model_id, []).append(out)
    for versions in groups.values():
        versions.sort(key=version_key)
    return groups


def current_index(versions: Sequence[Output], pinned_id: Optional[str]) -> int:
    """0-based index of the version to show: the pin if it resolves, else the latest."""
    if pinned_id:
        for idx, out in enumerate(versions):
            if out.output_id == pinned_id:
                return idx
    return len(versions) - 1


@dataclass
class ResolvedDemo:
    outputs: List[ResolvedOutput] = field(default_factory=list)
    tiles: List[DemoTile] = field(default_factory=list)
    selected_models: List[str] = field(default_factory=list)


def resolve_demo_outputs(
    outputs: Iterable[Output],
    selected_models: Sequence[str],
    selected_outputs: Mapping[str, str],
    catalog: ModelCatalog,
) -> ResolvedDemo:
    """Pick the version to display for every model of one demo.

    ``outputs`` may come in any order. The result lists one entry per model
    that has outputs, in catalog order with unknown model ids last, and one
    tile per selected model (empty when the model has no output yet).
    """
    groups = group_versions(outputs)

    resolved: Dict[str, ResolvedOutput] = {}
    for model_id, versions in groups.items():
        idx = current_index(versions, selected_outputs.get(model_id))
        resolved[model_id] = ResolvedOutput(
            output=versions[idx],
            version_index=idx + 1,
            version_count=len(versions),
        )

    ordered = [resolved[mid] for mid in catalog.sort_models(groups.keys())]

    display = catalog.sort_models(selected_models)
    tiles: List[DemoTile] = []
    for model_id in display:
        entry = resolved.get(model_id)
        tiles.append(
            DemoTile(
                model_id=model_id,
                model_name=catalog.model_name(model_id),
                provider=catalog.provider_name(model_id),
                known=catalog.is_known(model_id),
                generatable=catalog.is_generatable(model_id),
                output=entry.output if entry else None,
                version_index=entry.version_index if entry else None,
                version_count=entry.version_count if entry else None,
            )
        )
    return ResolvedDemo(outputs=ordered, tiles=tiles, selected_models=display)
