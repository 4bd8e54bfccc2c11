# =============================================================================
# test_config.py - Configuration Tests
# =============================================================================

import os
from pathlib import Path

from talasm.config import AssemblerConfig


class TestAssemblerConfig:
    """Test defaults and environment overrides."""

    def test_defaults(self):
        config = AssemblerConfig()
        assert config.load_base == 0x0100
        assert config.include_paths == []
        assert config.max_passes == 1000
        assert config.max_include_depth == 64
        assert config.max_expansions == 65536
        assert config.comment_warnings

    def test_include_paths_not_shared(self):
        a = AssemblerConfig()
        a.include_paths.append(Path("lib"))
        assert AssemblerConfig().include_paths == []

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("TALASM_INCLUDE_PATH", os.pathsep.join(["lib", "vendor"]))
        monkeypatch.setenv("TALASM_LOAD_BASE", "8000")
        monkeypatch.setenv("TALASM_MAX_PASSES", "50")
        monkeypatch.setenv("TALASM_MAX_INCLUDE_DEPTH", "4")
        monkeypatch.setenv("TALASM_MAX_EXPANSIONS", "500")

        config = AssemblerConfig.from_env()

        assert config.include_paths == [Path("lib"), Path("vendor")]
        assert config.load_base == 0x8000
        assert config.max_passes == 50
        assert config.max_include_depth == 4
        assert config.max_expansions == 500

    def test_from_env_ignores_invalid_values(self, monkeypatch):
        monkeypatch.setenv("TALASM_LOAD_BASE", "nope")
        monkeypatch.setenv("TALASM_MAX_PASSES", "many")
        monkeypatch.delenv("TALASM_INCLUDE_PATH", raising=False)
        monkeypatch.delenv("TALASM_MAX_INCLUDE_DEPTH", raising=False)
        monkeypatch.setenv("TALASM_MAX_EXPANSIONS", "lots")

        config = AssemblerConfig.from_env()

        assert config.load_base == 0x0100
        assert config.max_passes == 1000
        assert config.include_paths == []
        assert config.max_expansions == 65536
