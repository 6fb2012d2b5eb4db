"""
Unit tests for runtime settings and wiring.
"""

import os
import tempfile

from promptgate.config.settings import Settings
from promptgate.core.orchestrator import SystemContext
from promptgate.runtime import build_runtime


class TestSettings:
    """Test environment-driven settings."""

    def test_env_aliases(self, monkeypatch):
        """Test that documented environment names are read."""
        monkeypatch.setenv("OPENAI_KEY", "sk-openai")
        monkeypatch.setenv("GEMINI_KEY", "g-key")
        monkeypatch.setenv("PROMPTGATE_DB_PATH", "/tmp/pg.db")
        monkeypatch.setenv("SYSTEM_ORG_ID", "1")
        monkeypatch.setenv("SYSTEM_PROJECT_ID", "2")
        monkeypatch.delenv("ANTHROPIC_KEY", raising=False)
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)

        settings = Settings(_env_file=None)

        assert settings.db_path == "/tmp/pg.db"
        assert settings.platform_keys == {"OPENAI": "sk-openai", "GOOGLE": "g-key"}
        assert settings.has_system_context

    def test_defaults(self):
        """Test transport defaults."""
        settings = Settings(_env_file=None, system_org_id=None, system_project_id=None)
        assert settings.provider_timeout_seconds == 600.0
        assert settings.provider_max_retries == 5
        assert not settings.has_system_context


class TestRuntime:
    """Test wiring from settings."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_build_runtime(self):
        """Test that the runtime is fully wired."""
        settings = Settings(
            _env_file=None,
            db_path=os.path.join(self.temp_dir, "rt.db"),
            system_org_id=1,
            system_project_id=1,
            openai_key="sk-platform",
        )
        runtime = build_runtime(settings)

        assert ("gpt-4o", "OPENAI") in runtime.registry
        assert runtime.orchestrator.system_context == SystemContext(org_id=1, project_id=1)
        assert runtime.billing.platform_keys["OPENAI"] == "sk-platform"
        assert os.path.exists(settings.db_path)
        assert runtime.system_prompts.orchestrator is runtime.orchestrator
        assert runtime.system_prompts.prompts == {}
        assert runtime.system_prompts.transcriber.keywords == {"timeout": 600.0, "max_retries": 5}
