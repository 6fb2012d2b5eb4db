"""
Tests for the CLI interface.
"""
import json
import os
import tempfile
from unittest.mock import AsyncMock, patch

import pytest
from typer.testing import CliRunner

from conftest import FakeProvider
from promptgate.cli.main import EXIT_CODE_FAIL, EXIT_CODE_PASS, app
from promptgate.config.settings import Settings
from promptgate.core.errors import ProviderError
from promptgate.providers import ProviderRegistry
from promptgate.storage.models import LogType
from promptgate.storage.repository import fetch_recent_usage_records

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_settings():
    """Settings without platform keys, whatever the environment holds."""
    settings = Settings(
        openai_key=None,
        anthropic_key=None,
        gemini_key=None,
        models_dir=None,
        system_org_id=None,
        system_project_id=None,
        log_level="WARNING",
    )
    with patch("promptgate.cli.main.get_settings", return_value=settings):
        yield settings


@pytest.fixture
def db_path():
    """Temporary database path."""
    temp_dir = tempfile.mkdtemp()
    yield os.path.join(temp_dir, "cli.db")
    import shutil
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def fake_registry():
    """Patch the runtime to use an in-memory provider."""
    provider = FakeProvider(answer="Hello from the model")
    registry = ProviderRegistry()
    registry.register("OPENAI", provider)
    with patch("promptgate.runtime.build_default_registry", return_value=registry):
        yield provider


class TestSchemaCommands:
    """Test commands that only read model definitions."""

    def test_models_lists_bundled(self):
        """Test that bundled models are listed."""
        result = runner.invoke(app, ["models", "--vendor", "OPENAI"])
        assert result.exit_code == EXIT_CODE_PASS
        assert "gpt-4o" in result.output
        assert "gemini" not in result.output

    def test_defaults(self):
        """Test default configuration output."""
        result = runner.invoke(app, ["defaults", "gpt-4o", "--vendor", "OPENAI"])
        assert result.exit_code == EXIT_CODE_PASS
        data = json.loads(result.output)
        assert data["response_format"] == "text"
        assert "json_schema" not in data

    def test_defaults_unknown_model(self):
        """Test that unknown models fail."""
        result = runner.invoke(app, ["defaults", "nope", "--vendor", "OPENAI"])
        assert result.exit_code == EXIT_CODE_FAIL
        assert "No schema" in result.output

    def test_sanitize(self):
        """Test sanitizing a raw config."""
        raw = json.dumps({"temperature": 5, "response_format": "json_object", "json_schema": "{}"})
        result = runner.invoke(app, ["sanitize", "gpt-4o", "--vendor", "OPENAI", "--config", raw])
        assert result.exit_code == EXIT_CODE_PASS
        data = json.loads(result.output)
        assert data["temperature"] == 0.7
        assert data["response_format"] == "json_object"
        assert "json_schema" not in data

    def test_sanitize_invalid_json(self):
        """Test that malformed JSON is reported."""
        result = runner.invoke(app, ["sanitize", "gpt-4o", "--vendor", "OPENAI", "--config", "{bad"])
        assert result.exit_code == EXIT_CODE_FAIL
        assert "Invalid JSON" in result.output


class TestCostCommand:
    """Test the cost command."""

    def test_cost(self):
        """Test per-million pricing output."""
        result = runner.invoke(app, [
            "cost", "--prompt-tokens", "1000000", "--completion-tokens", "500000",
            "--prompt-price", "2.5", "--completion-price", "10",
        ])
        assert result.exit_code == EXIT_CODE_PASS
        assert "$7.500000" in result.output

    def test_negative_price(self):
        """Test that invalid pricing fails."""
        result = runner.invoke(app, [
            "cost", "--prompt-tokens", "1", "--completion-tokens", "1",
            "--prompt-price", "-1", "--completion-price", "1",
        ])
        assert result.exit_code == EXIT_CODE_FAIL


class TestDatabaseCommands:
    """Test commands backed by the SQLite database."""

    def test_init(self, db_path):
        """Test database initialization."""
        result = runner.invoke(app, ["init", "--db", db_path])
        assert result.exit_code == EXIT_CODE_PASS
        assert os.path.exists(db_path)

    def test_usage_empty(self, db_path):
        """Test usage on an empty ledger."""
        result = runner.invoke(app, ["usage", "--db", db_path])
        assert result.exit_code == EXIT_CODE_PASS
        assert "No usage records found" in result.output

    def _seed(self, db_path):
        assert runner.invoke(app, ["set-quota", "--org-id", "1", "--balance", "5", "--db", db_path]).exit_code == 0
        assert runner.invoke(app, [
            "add-key", "--org-id", "1", "--vendor", "OPENAI", "--key", "sk-own", "--db", db_path
        ]).exit_code == 0
        assert runner.invoke(app, [
            "add-model", "gpt-4o", "--vendor", "OPENAI",
            "--prompt-price", "2", "--completion-price", "8", "--db", db_path,
        ]).exit_code == 0

    def test_run_records_usage(self, db_path, fake_registry):
        """Test an end-to-end run on the organization's own key."""
        self._seed(db_path)

        result = runner.invoke(app, [
            "run", "--model-id", "1", "--org-id", "1", "--question", "Hi",
            "--instruction", "Be nice.", "--config", '{"temperature": 9}', "--db", db_path,
        ])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Hello from the model" in result.output
        request = fake_registry.requests[0]
        assert request.api_key == "sk-own"
        assert request.parameters["temperature"] == 0.7

        records = fetch_recent_usage_records(db_path=db_path)
        assert len(records) == 1
        assert records[0].output == "Hello from the model"

        usage = runner.invoke(app, ["usage", "--db", db_path])
        assert usage.exit_code == EXIT_CODE_PASS
        assert "No usage records found" not in usage.output

    def test_run_failure_exits_nonzero(self, db_path, fake_registry):
        """Test that provider errors fail the command and are recorded."""
        self._seed(db_path)
        fake_registry.error = ProviderError("OPENAI error 500: down", status_code=500)

        result = runner.invoke(app, [
            "run", "--model-id", "1", "--org-id", "1", "--question", "Hi", "--db", db_path,
        ])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "down" in result.output
        errors = fetch_recent_usage_records(log_type=LogType.AI_ERROR.value, db_path=db_path)
        assert [r.description for r in errors] == ["OPENAI error 500: down"]

    def test_run_unknown_model(self, db_path, fake_registry):
        """Test that a missing model fails cleanly."""
        result = runner.invoke(app, [
            "run", "--model-id", "42", "--org-id", "1", "--question", "Hi", "--db", db_path,
        ])
        assert result.exit_code == EXIT_CODE_FAIL
        assert "Model with id 42 not found" in result.output

    def test_transcribe_records_system_usage(self, db_path, isolated_settings, tmp_path):
        """Test that transcription is recorded under the system organization."""
        self._seed(db_path)
        isolated_settings.system_org_id = 9
        isolated_settings.system_project_id = 3
        audio = tmp_path / "note.webm"
        audio.write_bytes(b"OggS-audio")

        with patch("promptgate.runtime.transcribe_audio", new=AsyncMock(return_value="remind me at noon")) as stt:
            result = runner.invoke(app, [
                "transcribe", str(audio), "--org-id", "1", "--prompt-id", "12",
                "--user-id", "4", "--db", db_path,
            ])

        assert result.exit_code == EXIT_CODE_PASS
        assert "remind me at noon" in result.output
        assert stt.await_args.args == ("sk-own", b"OggS-audio")

        records = fetch_recent_usage_records(db_path=db_path)
        assert [(r.org_id, r.project_id, r.user_id, r.prompt_id, r.model) for r in records] == [
            (9, 3, None, 12, "whisper-1")
        ]

    def test_transcribe_without_system_org(self, db_path, tmp_path):
        """Test that transcription fails cleanly without a system organization."""
        self._seed(db_path)
        audio = tmp_path / "note.webm"
        audio.write_bytes(b"OggS-audio")

        result = runner.invoke(app, ["transcribe", str(audio), "--org-id", "1", "--db", db_path])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "System organization not configured" in result.output
