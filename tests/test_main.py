"""
Tests for the palette command line.

Tests for palette/__main__.py
"""

import json

import pytest

import palette.llm.providers as providers
from palette.__main__ import build_parser, main


@pytest.fixture
def config_file(temp_dir):
    path = temp_dir / "palette_config.json"
    path.write_text(json.dumps({"retry": {"max_attempts": 1, "base_delay": 0}}), encoding="utf-8")
    return path


@pytest.fixture
def story_file(temp_dir, sample_story_text):
    path = temp_dir / "story.txt"
    path.write_text(sample_story_text, encoding="utf-8")
    return path


@pytest.fixture
def scripted_llm(monkeypatch, scripted_provider, story_extraction):
    """Route create_provider to a scripted provider."""
    def handler(prompt, system_prompt):
        if "script supervisor" in system_prompt:
            return story_extraction
        return {"shots": ["@john waits."], "coverage_analysis": "ok"}

    provider = scripted_provider(handler=handler)
    monkeypatch.setattr(providers, "create_provider", lambda config: provider)
    return provider


class TestParser:
    """Tests for argument parsing."""

    def test_run_defaults(self):
        args = build_parser().parse_args(["run", "story.txt"])

        assert args.command == "run"
        assert args.mode == "existing"
        assert args.project == "cli"
        assert args.media is None
        assert not args.lyrics

    def test_run_options(self):
        args = build_parser().parse_args([
            "-v", "run", "song.txt", "--lyrics", "--mode", "hybrid", "--target", "6",
            "--no-camera", "--treatments", "--media", "video",
        ])

        assert args.verbose
        assert args.lyrics and args.no_camera and args.treatments
        assert args.mode == "hybrid"
        assert args.target == 6
        assert args.media == "video"

    def test_invalid_mode_rejected(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["run", "story.txt", "--mode", "random"])

    def test_serve(self):
        args = build_parser().parse_args(["serve", "--port", "9000"])

        assert args.command == "serve"
        assert args.port == 9000


class TestMain:
    """Tests for main()."""

    def test_run_writes_json(self, scripted_llm, config_file, story_file, temp_dir, capsys):
        output = temp_dir / "run.json"

        code = main(["--config", str(config_file), "run", str(story_file), "--output", str(output)])

        assert code == 0
        run = json.loads(output.read_text(encoding="utf-8"))
        assert run["status"] == "complete"
        assert len(run["units"]) == 5
        assert "[5/5]" in capsys.readouterr().err

    def test_run_prints_to_stdout(self, scripted_llm, config_file, story_file, capsys):
        code = main(["--config", str(config_file), "run", str(story_file), "--style", "Wes Anderson"])

        assert code == 0
        run = json.loads(capsys.readouterr().out)
        assert run["options"]["style"] == "Wes Anderson"

    def test_missing_file(self, scripted_llm, config_file, temp_dir):
        code = main(["--config", str(config_file), "run", str(temp_dir / "missing.txt")])

        assert code == 1

    def test_invalid_config(self, temp_dir, story_file):
        broken = temp_dir / "broken.json"
        broken.write_text("{not json", encoding="utf-8")

        assert main(["--config", str(broken), "run", str(story_file)]) == 2

    def test_unavailable_provider(self, monkeypatch, scripted_provider, config_file, story_file):
        monkeypatch.setattr(providers, "create_provider", lambda config: scripted_provider(available=False))

        assert main(["--config", str(config_file), "run", str(story_file)]) == 2
