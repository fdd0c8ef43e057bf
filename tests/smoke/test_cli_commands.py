"""
Smoke tests for the teach CLI.

Runs each command through typer's CliRunner with settings pointed at a
temporary directory so nothing touches ~/.teach.
"""

import pytest
from typer.testing import CliRunner

from config import Settings
from teach.tutor.oracle import ScriptedOracle
from teach.tutor.transcript import Transcript
from teach.cli.main import app

runner = CliRunner()


@pytest.fixture
def settings(tmp_path, monkeypatch):
    configured = Settings(
        _env_file=None,
        session_dir=tmp_path / "sessions",
        database_url=f"sqlite:///{tmp_path / 'transcripts.db'}",
    )
    monkeypatch.setattr("teach.cli.main.get_settings", lambda: configured)
    return configured


@pytest.fixture
def cyclic_curriculum(tmp_path):
    path = tmp_path / "cyclic.yaml"
    path.write_text(
        "topics:\n"
        "  - id: loop\n"
        "    concepts:\n"
        "      - {id: a, prerequisites: [b]}\n"
        "      - {id: b, prerequisites: [a]}\n"
    )
    return path


def test_help():
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for command in ("run", "resume", "check", "replay", "sessions"):
        assert command in result.output


class TestCheck:
    def test_valid_curriculum(self, settings, curriculum_file):
        result = runner.invoke(app, ["check", str(curriculum_file)])
        assert result.exit_code == 0
        assert "All topics are valid" in result.output

    def test_cyclic_curriculum(self, settings, cyclic_curriculum):
        result = runner.invoke(app, ["check", str(cyclic_curriculum)])
        assert result.exit_code == 1
        assert "invalid topic" in result.output


class TestRun:
    def test_quit_after_one_answer(self, settings, curriculum_file):
        result = runner.invoke(
            app,
            ["run", str(curriculum_file), "--topic", "recursion", "--no-save"],
            input="It should stop when it can answer without calling itself\n:q\n",
        )
        assert result.exit_code == 0, result.output
        assert "Base case" in result.output
        assert "correct" in result.output
        assert not settings.session_dir.exists() or not any(settings.session_dir.iterdir())

    def test_unknown_topic(self, settings, curriculum_file):
        result = runner.invoke(app, ["run", str(curriculum_file), "--topic", "calculus", "--no-save"])
        assert result.exit_code == 1
        assert "calculus" in result.output

    def test_saves_records_and_replays(self, settings, curriculum_file):
        result = runner.invoke(
            app,
            ["run", str(curriculum_file), "-t", "recursion", "--record"],
            input="It should stop when it can answer without calling itself\n:q\n",
        )
        assert result.exit_code == 0, result.output
        saved = list(settings.session_dir.glob("*.json"))
        assert len(saved) == 1
        assert "audit database" in result.output

        listed = runner.invoke(app, ["sessions"])
        assert listed.exit_code == 0
        assert saved[0].stem in listed.output

        replayed = runner.invoke(app, ["replay", str(saved[0]), str(curriculum_file)])
        assert replayed.exit_code == 0, replayed.output
        assert "Mastered 0/3" in replayed.output


def test_sessions_empty(settings):
    result = runner.invoke(app, ["sessions"])
    assert result.exit_code == 0
    assert "No saved sessions" in result.output


def test_replay_rejects_malformed_transcript(settings, curriculum_file, tmp_path):
    bad = tmp_path / "bad.json"
    bad.write_text('{"session_id": "x"}')
    result = runner.invoke(app, ["replay", str(bad), str(curriculum_file)])
    assert result.exit_code == 1


def test_sessions_clean_removes_unreadable_files(settings):
    settings.session_dir.mkdir(parents=True)
    junk = settings.session_dir / "junk.json"
    junk.write_text("{not json")

    result = runner.invoke(app, ["sessions", "--clean"])

    assert result.exit_code == 0
    assert "Removed 1 expired transcript(s)" in result.output
    assert not junk.exists()


FIRST_ANSWER = "It should stop when it can answer without calling itself\n"


def _start_and_quit(curriculum_file):
    result = runner.invoke(
        app, ["run", str(curriculum_file), "-t", "recursion"], input=FIRST_ANSWER + ":q\n"
    )
    assert result.exit_code == 0, result.output


def _learner_records(path):
    transcript = Transcript.from_json(path.read_text())
    return [r for r in transcript.records if r.role == "learner"]


class TestResume:
    def test_continues_latest_session(self, settings, curriculum_file):
        _start_and_quit(curriculum_file)
        saved = list(settings.session_dir.glob("*.json"))
        assert len(_learner_records(saved[0])) == 1

        result = runner.invoke(
            app,
            ["resume", str(curriculum_file)],
            input="\nAn empty list: stop there without recursing\n:q\n",
        )

        assert result.exit_code == 0, result.output
        assert f"Found saved session {saved[0].stem}" in result.output
        assert list(settings.session_dir.glob("*.json")) == saved
        assert len(_learner_records(saved[0])) == 2

    def test_resume_by_id(self, settings, curriculum_file):
        _start_and_quit(curriculum_file)
        session_id = next(settings.session_dir.glob("*.json")).stem

        result = runner.invoke(app, ["resume", str(curriculum_file), session_id], input="\n:q\n")

        assert result.exit_code == 0, result.output
        assert session_id in result.output

    def test_nothing_to_resume(self, settings, curriculum_file):
        result = runner.invoke(app, ["resume", str(curriculum_file)])
        assert result.exit_code == 0
        assert "No saved session found" in result.output

    def test_unknown_session_id(self, settings, curriculum_file):
        result = runner.invoke(app, ["resume", str(curriculum_file), "no-such-session"])
        assert result.exit_code == 1
        assert "no-such-session" in result.output

    def test_decline_and_delete(self, settings, curriculum_file):
        _start_and_quit(curriculum_file)

        result = runner.invoke(app, ["resume", str(curriculum_file)], input="n\ny\n")

        assert result.exit_code == 0, result.output
        assert "Session deleted" in result.output
        assert not any(settings.session_dir.glob("*.json"))

    def test_decline_and_keep(self, settings, curriculum_file):
        _start_and_quit(curriculum_file)

        result = runner.invoke(app, ["resume", str(curriculum_file)], input="n\nn\n")

        assert result.exit_code == 0, result.output
        assert len(list(settings.session_dir.glob("*.json"))) == 1


class ClosingOracle:
    """Scripted oracle that remembers whether the CLI released it."""

    def __init__(self, inner):
        self.inner = inner
        self.closed = False

    def ask(self, concept, history, simplify=False):
        return self.inner.ask(concept, history, simplify=simplify)

    def judge(self, concept, history, answer):
        return self.inner.judge(concept, history, answer)

    def close(self):
        self.closed = True


class TestOracleLifecycle:
    @pytest.fixture
    def built(self, monkeypatch):
        oracles = []

        def build(curriculum, oracle_url, settings):
            oracle = ClosingOracle(ScriptedOracle(curriculum))
            oracles.append(oracle)
            return oracle

        monkeypatch.setattr("teach.cli.main._build_oracle", build)
        return oracles

    def test_run_closes_oracle(self, settings, curriculum_file, built):
        result = runner.invoke(
            app, ["run", str(curriculum_file), "-t", "recursion", "--no-save"], input=":q\n"
        )
        assert result.exit_code == 0, result.output
        assert [o.closed for o in built] == [True]

    def test_oracle_closed_when_topic_is_unknown(self, settings, curriculum_file, built):
        result = runner.invoke(app, ["run", str(curriculum_file), "-t", "calculus", "--no-save"])
        assert result.exit_code == 1
        assert [o.closed for o in built] == [True]

    def test_resume_closes_oracle(self, settings, curriculum_file, built):
        _start_and_quit(curriculum_file)
        built.clear()

        result = runner.invoke(app, ["resume", str(curriculum_file), "--no-save"], input="\n:q\n")

        assert result.exit_code == 0, result.output
        assert [o.closed for o in built] == [True]
