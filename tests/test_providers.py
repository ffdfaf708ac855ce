"""Tests for CLI provider composition and the git provider."""

from unittest.mock import MagicMock

import pytest

from zen.core.errors import ErrorCode, Result, ZenError
from zen.core.providers import (
    BinaryDiscovery,
    CLIProvider,
    Executor,
    Provider,
    ProviderKind,
)
from zen.core.providers.git import GitProvider
from zen.core.providers.models import DiscoveryResult


@pytest.fixture
def discovery() -> MagicMock:
    mock = MagicMock(spec=BinaryDiscovery)
    mock.find_binary.return_value = "/usr/bin/git"
    mock.discover.return_value = DiscoveryResult(
        name="git", available=True, path="/usr/bin/git", version="2.39.0"
    )
    return mock


@pytest.fixture
def executor() -> MagicMock:
    mock = MagicMock(spec=Executor)
    mock.execute.return_value = Result(exit_code=0, stdout="## main\n")
    return mock


class TestGitArgs:
    """Tests for operation to argv translation."""

    def test_status(self) -> None:
        """Test git.status uses porcelain output."""
        assert GitProvider().exec_args_for("git.status") == ["status", "--porcelain=v1", "--branch"]

    def test_prefix_optional(self) -> None:
        """Test actions are accepted with or without the provider prefix."""
        git = GitProvider()
        assert git.exec_args_for("version") == git.exec_args_for("git.version") == ["--version"]

    def test_rev_parse_default_ref(self) -> None:
        """Test rev_parse defaults to HEAD."""
        assert GitProvider().exec_args_for("git.rev_parse") == ["rev-parse", "--verify", "HEAD"]

    def test_fetch_with_branch(self) -> None:
        """Test fetch passes remote and branch."""
        args = GitProvider().exec_args_for("git.fetch", {"remote": "upstream", "branch": "dev"})
        assert args == ["fetch", "upstream", "dev"]

    def test_clone_separates_url(self) -> None:
        """Test clone puts the url after -- so it cannot inject flags."""
        args = GitProvider().exec_args_for(
            "git.clone", {"url": "--upload-pack=evil", "dest": "out", "depth": 1}
        )
        assert args == ["clone", "--quiet", "--depth", "1", "--", "--upload-pack=evil", "out"]

    def test_clone_requires_url(self) -> None:
        """Test clone without a url is invalid data."""
        with pytest.raises(ZenError) as exc_info:
            GitProvider().exec_args_for("git.clone")
        assert exc_info.value.code == ErrorCode.INVALID_DATA

    def test_unsupported_operation(self) -> None:
        """Test unknown operations raise invalid_operation."""
        with pytest.raises(ZenError) as exc_info:
            GitProvider().exec_args_for("git.push")
        assert exc_info.value.code == ErrorCode.INVALID_OPERATION
        assert exc_info.value.provider == "git"


class TestBaseCLIProvider:
    """Tests for discovery and executor wiring."""

    def test_satisfies_protocols(self) -> None:
        """Test CLI providers implement both capability interfaces."""
        git = GitProvider()
        assert isinstance(git, Provider)
        assert isinstance(git, CLIProvider)

    def test_execute_uses_resolved_binary(
        self, discovery: MagicMock, executor: MagicMock
    ) -> None:
        """Test execute runs the discovered binary with env and work_dir."""
        git = GitProvider(work_dir="/repo", discovery=discovery, executor=executor)
        result = git.execute("git.status")
        assert result.stdout == "## main\n"
        executor.execute.assert_called_once_with(
            "/usr/bin/git",
            ["status", "--porcelain=v1", "--branch"],
            ctx=None,
            env={},
            work_dir="/repo",
        )

    def test_binary_path_memoized(self, discovery: MagicMock, executor: MagicMock) -> None:
        """Test the binary is resolved once per provider."""
        git = GitProvider(discovery=discovery, executor=executor)
        git.execute("git.status")
        git.execute("git.version")
        discovery.find_binary.assert_called_once_with("git")

    def test_missing_binary_names_provider(self, discovery: MagicMock) -> None:
        """Test a discovery miss carries the provider name."""
        discovery.find_binary.side_effect = ZenError(ErrorCode.NOT_FOUND, "binary 'git' not found")
        git = GitProvider(discovery=discovery)
        with pytest.raises(ZenError) as exc_info:
            git.execute("git.status")
        assert exc_info.value.code == ErrorCode.NOT_FOUND
        assert exc_info.value.provider == "git"

    def test_execution_errors_tagged(self, discovery: MagicMock, executor: MagicMock) -> None:
        """Test executor errors are tagged with provider and operation."""
        executor.execute.side_effect = ZenError(ErrorCode.TIMEOUT, "deadline exceeded")
        git = GitProvider(discovery=discovery, executor=executor)
        with pytest.raises(ZenError) as exc_info:
            git.execute("git.fetch")
        assert exc_info.value.provider == "git"
        assert exc_info.value.operation == "git.fetch"

    def test_info(self, discovery: MagicMock) -> None:
        """Test info reports discovery results and capabilities."""
        info = GitProvider(discovery=discovery).info()
        assert info.kind == ProviderKind.CLI
        assert info.available
        assert info.version == "2.39.0"
        assert info.binary_path == "/usr/bin/git"
        assert info.capabilities["git.clone"] is True
        discovery.discover.assert_called_once_with("git", ("--version",), "2.20", ctx=None)
