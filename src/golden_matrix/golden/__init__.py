from .baseline import BaselineCaptureFallback
from .locator import DirectoryGoldenStore, GoldenLocator, MappingGoldenStore, PackageGoldenStore
from .promote import PromotionRecord, promote_baselines

__all__ = [
    "BaselineCaptureFallback",
    "DirectoryGoldenStore",
    "GoldenLocator",
    "MappingGoldenStore",
    "PackageGoldenStore",
    "PromotionRecord",
    "promote_baselines",
]
