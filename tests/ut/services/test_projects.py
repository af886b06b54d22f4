"""解决方案工程索引测试"""

from __future__ import annotations

from pathlib import Path

import pytest

from pkgsolver.core.exceptions import ConfigError, ProjectNotFoundError
from pkgsolver.core.platform import TargetPlatform
from pkgsolver.services.projects import ProjectDescriptor, SolutionProjects


def _write(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


class TestSolutionProjects:
    def test_from_file(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "solution.yml", (
            "projects:\n"
            "  - name: Web\n"
            "    path: src/Web\n"
            "    target_platform: net45\n"
            "  - name: Tests\n"
        ))
        solution = SolutionProjects.from_file(path)
        assert solution.names() == ["Web", "Tests"]
        web = solution.get("web")
        assert web.path == (tmp_path / "src" / "Web").resolve()
        assert web.target_platform == TargetPlatform.parse("net45")
        assert solution.get("Tests").path == (tmp_path / "Tests").resolve()
        assert solution.get("Tests").target_platform is None

    def test_find_by_path(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "solution.yml", "projects:\n  - {name: Web, path: src/Web}\n")
        solution = SolutionProjects.from_file(path)
        assert solution.find("src/Web").name == "Web"
        assert solution.find(tmp_path / "src" / "Web").name == "Web"
        assert solution.find("src/Api") is None

    def test_missing_file(self, tmp_path: Path) -> None:
        solution = SolutionProjects.from_file(tmp_path / "none.yml")
        assert len(solution) == 0
        assert list(solution) == []

    def test_entry_without_name(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "solution.yml", "projects:\n  - path: src/Web\n")
        with pytest.raises(ConfigError):
            SolutionProjects.from_file(path)

    def test_duplicate_name(self, tmp_path: Path) -> None:
        solution = SolutionProjects(tmp_path, [ProjectDescriptor("Web", tmp_path / "a")])
        with pytest.raises(ConfigError):
            solution.add(ProjectDescriptor("WEB", tmp_path / "b"))

    def test_get_unknown(self, tmp_path: Path) -> None:
        with pytest.raises(ProjectNotFoundError, match="Project 'Api' is not found in the solution."):
            SolutionProjects(tmp_path).get("Api")
