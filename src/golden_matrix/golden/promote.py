from __future__ import annotations

import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import List

from ..matrix.builder import MatrixPlan
from ..utils import ensure_dir
from .baseline import BaselineCaptureFallback
from .locator import DirectoryGoldenStore


@dataclass
class PromotionRecord:
    resource_key: str
    source: Path
    target: Path
    action: str


def promote_baselines(
    plan: MatrixPlan,
    fallback: BaselineCaptureFallback,
    store: DirectoryGoldenStore,
    overwrite: bool = False,
) -> List[PromotionRecord]:
    records: List[PromotionRecord] = []
    for cell in plan:
        source = fallback.baseline_path(cell)
        if not source.is_file():
            continue
        target = store.path_for(cell.resource_key)
        if target.exists() and not overwrite:
            records.append(PromotionRecord(cell.resource_key, source, target, "kept"))
            continue
        ensure_dir(target.parent)
        shutil.copyfile(source, target)
        records.append(PromotionRecord(cell.resource_key, source, target, "promoted"))
    return records
