import json
import os
from unittest import TestCase
from unittest.mock import MagicMock, patch

from rvn_fallback import _cli
from rvn_fallback.aur.client import SkipReason, SourceLookup
from rvn_fallback.config import OutputFormat, Settings
from rvn_fallback.errors import FallbackExhaustedError, PackageNotFoundError, TransportError
from rvn_fallback.graph import DependencyGraph
from rvn_fallback.models import BinaryPackage, SourcePackage
from rvn_fallback.orchestrator import FallbackResult


def _settings(*args: str) -> Settings:
    with patch.dict(os.environ, {k: v for k, v in os.environ.items() if not k.startswith("RVN_")}, clear=True):
        return Settings(_cli_parse_args=list(args) or False)


def _graph() -> DependencyGraph:
    graph: DependencyGraph = DependencyGraph("app")
    graph.add_package("app", BinaryPackage("app", "1.0-r0", dependencies=("libx",)))
    graph.add_package("libx", BinaryPackage("libx", "2.0-r0"))
    graph.add_edge("app", "libx")
    return graph


class TestSettingsParsing(TestCase):
    def test_flags(self) -> None:
        settings = _settings("--target", "curl", "--resolve-only", "--output-format", "dot", "--no-source")
        assert settings.target == "curl"
        assert settings.resolve_only
        assert settings.output_format == OutputFormat.dot
        assert settings.no_source
        assert not settings.no_binary


class TestResolveGraph(TestCase):
    def test_source_failure_falls_back_to_binary(self) -> None:
        source = MagicMock()
        source.lookup.side_effect = TransportError("rpc down")
        binary = MagicMock()
        binary.dependency_graph.return_value = _graph()

        graph = _cli.resolve_graph("app", source, binary)

        assert graph is binary.dependency_graph.return_value
        binary.dependency_graph.assert_called_once_with("app")

    def test_source_graph_failure_falls_back_to_binary(self) -> None:
        source = MagicMock()
        source.lookup.return_value = SourceLookup(SourcePackage(name="app", version="1.0-1", package_base="app"))
        source.dependency_graph.side_effect = TransportError("HTTP 503")
        binary = MagicMock()
        binary.dependency_graph.return_value = _graph()

        assert _cli.resolve_graph("app", source, binary) is binary.dependency_graph.return_value

    def test_source_failure_without_binary(self) -> None:
        source = MagicMock()
        source.lookup.side_effect = TransportError("rpc down")
        with self.assertRaises(PackageNotFoundError):
            _cli.resolve_graph("app", source, None)


class TestMain(TestCase):
    def setUp(self) -> None:
        patches = {
            "Settings": patch.object(_cli, "Settings"),
            "setup_logger": patch.object(_cli, "setup_logger"),
            "source": patch.object(_cli, "SourceRepositoryClient"),
            "binary": patch.object(_cli, "BinaryIndexResolver"),
            "installer": patch.object(_cli, "FallbackInstaller"),
            "stdout": patch.object(_cli.sys, "stdout"),
        }
        self.mocks: dict[str, MagicMock] = {}
        for name, patcher in patches.items():
            self.mocks[name] = patcher.start()
            self.addCleanup(patcher.stop)
        self.source = self.mocks["source"].return_value
        self.binary = self.mocks["binary"].return_value

    def _run(self, *args: str) -> int:
        self.mocks["Settings"].return_value = _settings(*args)
        return _cli.main()

    def _output(self) -> str:
        return "".join(c.args[0] for c in self.mocks["stdout"].write.call_args_list)

    def test_version(self) -> None:
        assert self._run("--version") == 0
        self.mocks["source"].assert_not_called()

    def test_missing_target(self) -> None:
        assert self._run() == 1

    def test_resolve_only_json(self) -> None:
        self.source.lookup.return_value = SourceLookup(None, SkipReason.NOT_FOUND)
        self.binary.dependency_graph.return_value = _graph()
        assert self._run("--target", "app", "--resolve-only") == 0
        assert [p["name"] for p in json.loads(self._output())] == ["libx", "app"]

    def test_resolve_only_dot(self) -> None:
        self.source.lookup.return_value = SourceLookup(None, SkipReason.NOT_FOUND)
        self.binary.dependency_graph.return_value = _graph()
        assert self._run("--target", "app", "--resolve-only", "--output-format", "dot") == 0
        assert "app -> libx" in self._output()

    def test_resolve_only_without_binary(self) -> None:
        self.source.lookup.return_value = SourceLookup(None, SkipReason.NOT_FOUND)
        assert self._run("--target", "app", "--resolve-only", "--no-binary") == 1
        self.mocks["binary"].assert_not_called()

    def test_acquire(self) -> None:
        installer = self.mocks["installer"].return_value
        installer.acquire.return_value = FallbackResult("app", "alpine", [BinaryPackage("app", "1.0-r0")])
        assert self._run("--target", "app") == 0
        installer.acquire.assert_called_once_with("app")
        assert json.loads(self._output())["origin"] == "alpine"

    def test_acquire_failure(self) -> None:
        installer = self.mocks["installer"].return_value
        installer.acquire.side_effect = FallbackExhaustedError("app", {"aur": "not found", "alpine": "disabled"})
        assert self._run("--target", "app") == 1
