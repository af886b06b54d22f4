"""包仓库子包

- base: 仓库基类与依赖候选选择
- memory / feed: 内存仓库与 YAML 源目录
- composite: 聚合 / 回退 / 排除视图
- shared: 解决方案共享本地仓库（引用计数）
- project_refs / reference_file: 工程引用仓库与引用清单
- paths: 共享目录布局
"""

from pkgsolver.core.repository.base import PackageRepository
from pkgsolver.core.repository.composite import (
    AggregateRepository,
    ExcludingRepository,
    FallbackRepository,
)
from pkgsolver.core.repository.feed import FeedRepository
from pkgsolver.core.repository.memory import InMemoryRepository
from pkgsolver.core.repository.paths import PackagePathResolver
from pkgsolver.core.repository.project_refs import PackageReferenceRepository
from pkgsolver.core.repository.reference_file import PackageReference, PackageReferenceFile
from pkgsolver.core.repository.shared import SharedPackageRepository

__all__ = [
    "AggregateRepository",
    "ExcludingRepository",
    "FallbackRepository",
    "FeedRepository",
    "InMemoryRepository",
    "PackagePathResolver",
    "PackageReference",
    "PackageReferenceFile",
    "PackageReferenceRepository",
    "PackageRepository",
    "SharedPackageRepository",
]
