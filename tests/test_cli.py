"""Integration tests for CLI commands."""

import json
from pathlib import Path

from typer.testing import CliRunner

from callscope import __version__
from callscope.cli import app
from callscope.config_manager import load_settings
from callscope.sequence_edits import SequenceEditState, save_edit_state

runner = CliRunner()

MAIN = "src/main.rs::main::fn"
RUN = "src/engine.rs::BattleLoop::run::method"


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert f"callscope v{__version__}" in result.output


class TestAnalyzeCommand:
    """Tests for 'callscope analyze'."""

    def test_summary(self, sample_project_path: Path):
        result = runner.invoke(app, ["analyze", str(sample_project_path)])

        assert result.exit_code == 0
        assert "Analysis Summary" in result.output
        assert "Call edges" in result.output
        assert "16" in result.output

    def test_json(self, sample_project_path: Path):
        result = runner.invoke(app, ["analyze", str(sample_project_path), "--json"])

        assert result.exit_code == 0
        payload = json.loads(result.stdout)
        assert len(payload["edges"]) == 16
        assert payload["unresolved"][0]["method"] == "frobnicate"

    def test_nonexistent_path(self):
        result = runner.invoke(app, ["analyze", "/nonexistent/path"])
        assert result.exit_code != 0


class TestCallersCommand:
    """Tests for 'callscope callers'."""

    def test_table(self, sample_project_path: Path):
        result = runner.invoke(app, ["callers", str(sample_project_path), "log_line"])

        assert result.exit_code == 0
        for name in ("run", "announce", "main", "report"):
            assert name in result.output

    def test_tree(self, sample_project_path: Path):
        result = runner.invoke(app, ["callers", str(sample_project_path), "Unit::take_damage", "--tree"])

        assert result.exit_code == 0
        for name in ("attack", "step", "run", "main"):
            assert name in result.output

    def test_no_callers(self, sample_project_path: Path):
        result = runner.invoke(app, ["callers", str(sample_project_path), MAIN])

        assert result.exit_code == 0
        assert "No callers of main." in result.output

    def test_unknown_symbol(self, sample_project_path: Path):
        result = runner.invoke(app, ["callers", str(sample_project_path), "does_not_exist"])

        assert result.exit_code == 1
        assert "not found" in result.output

    def test_ambiguous_symbol(self, sample_project_path: Path):
        result = runner.invoke(app, ["callers", str(sample_project_path), "new"])

        assert result.exit_code == 1
        assert "ambiguous" in result.output


class TestImpactCommand:
    """Tests for 'callscope impact'."""

    def test_report(self, sample_project_path: Path):
        result = runner.invoke(app, ["impact", str(sample_project_path), "Unit::take_damage"])

        assert result.exit_code == 0
        assert "4 affected, max depth 3" in result.output
        assert "battle_runs_to_completion" in result.output

    def test_without_tests(self, sample_project_path: Path):
        result = runner.invoke(app, ["impact", str(sample_project_path), "Unit::take_damage", "--no-tests"])

        assert result.exit_code == 0
        assert "battle_runs_to_completion" not in result.output

    def test_json(self, sample_project_path: Path):
        result = runner.invoke(app, ["impact", str(sample_project_path), "Unit::take_damage", "--json"])

        assert result.exit_code == 0
        payload = json.loads(result.stdout)
        assert payload["direct_impact"][0]["name"] == "attack"
        assert payload["total_affected"] == 4
        assert payload["has_cycle"] is False


class TestMetricsCommand:
    """Tests for 'callscope metrics'."""

    def test_table(self, sample_project_path: Path):
        result = runner.invoke(app, ["metrics", str(sample_project_path), "--paths", "--clusters"])

        assert result.exit_code == 0
        assert "Graph Metrics" in result.output
        assert "Critical paths" in result.output
        assert "Clusters" in result.output

    def test_json(self, sample_project_path: Path):
        result = runner.invoke(app, ["metrics", str(sample_project_path), "--json", "--paths", "--clusters"])

        assert result.exit_code == 0
        payload = json.loads(result.stdout)
        assert payload["node_count"] == 14
        assert payload["cycle_count"] == 0
        assert payload["clusters"][0]["id"] == "src"
        assert payload["critical_paths"]


class TestSequenceCommand:
    """Tests for 'callscope sequence'."""

    def test_mermaid_output(self, sample_project_path: Path):
        result = runner.invoke(app, ["sequence", str(sample_project_path), "main"])

        assert result.exit_code == 0
        assert result.output.startswith("sequenceDiagram")
        assert "participant BattleLoop as BattleLoop" in result.output
        assert "src_main_rs->>+BattleLoop: run" in result.output

    def test_depth_override(self, sample_project_path: Path):
        result = runner.invoke(
            app, ["sequence", str(sample_project_path), "main", "--depth-for", f"{RUN}=1"],
        )

        assert result.exit_code == 0
        assert "BattleLoop->>+BattleLoop: step" in result.output
        assert "loop self.turn self.max_turns" in result.output

    def test_bad_depth_override(self, sample_project_path: Path):
        result = runner.invoke(app, ["sequence", str(sample_project_path), "main", "--depth-for", "oops"])
        assert result.exit_code == 2

    def test_edits_and_output_file(self, sample_project_path: Path, temp_dir: Path):
        edits = SequenceEditState()
        edits.add_omission([f"{MAIN}->{RUN}@9"])
        edits_file = temp_dir / "edits.json"
        save_edit_state(edits, edits_file)
        out_file = temp_dir / "main.mmd"

        result = runner.invoke(
            app,
            ["sequence", str(sample_project_path), "main", "--edits", str(edits_file), "-o", str(out_file)],
        )

        assert result.exit_code == 0
        assert "Wrote sequence diagram" in result.output
        text = out_file.read_text(encoding="utf-8")
        assert "BattleLoop: run" not in text
        assert "Note over src_main_rs,BattleLoop: ..." in text

    def test_list_functions(self, sample_project_path: Path):
        result = runner.invoke(app, ["sequence", str(sample_project_path), "main", "--list-functions"])

        assert result.exit_code == 0
        assert "Functions reachable from main" in result.output


class TestUnresolvedCommand:
    """Tests for 'callscope unresolved'."""

    def test_lists_unresolved(self, sample_project_path: Path):
        result = runner.invoke(app, ["unresolved", str(sample_project_path)])

        assert result.exit_code == 0
        assert "frobnicate" in result.output

    def test_reason_filter(self, sample_project_path: Path):
        result = runner.invoke(app, ["unresolved", str(sample_project_path), "--reason", "return_type_unknown"])

        assert result.exit_code == 0
        assert "No unresolved calls." in result.output


class TestExportCommand:
    """Tests for 'callscope export'."""

    def test_json(self, sample_project_path: Path, temp_dir: Path):
        out_file = temp_dir / "graph.json"
        result = runner.invoke(app, ["export", str(sample_project_path), "-o", str(out_file)])

        assert result.exit_code == 0
        assert "Exported call graph" in result.output
        assert len(json.loads(out_file.read_text(encoding="utf-8"))["edges"]) == 16

    def test_dot(self, sample_project_path: Path, temp_dir: Path):
        out_file = temp_dir / "graph.dot"
        result = runner.invoke(
            app, ["export", str(sample_project_path), "--format", "dot", "-o", str(out_file), "--focus", "take_damage"],
        )

        assert result.exit_code == 0
        text = out_file.read_text(encoding="utf-8")
        assert text.startswith("digraph CallGraph {")
        assert "take_damage" in text

    def test_unknown_format(self, sample_project_path: Path):
        result = runner.invoke(app, ["export", str(sample_project_path), "--format", "svg"])
        assert result.exit_code == 2


class TestConfigCommands:
    """Tests for 'callscope config'."""

    def test_show(self):
        result = runner.invoke(app, ["config", "show"])

        assert result.exit_code == 0
        assert "analysis.max_depth" in result.output

    def test_set(self, isolated_config: Path):
        result = runner.invoke(app, ["config", "set", "analysis.max_depth", "4"])

        assert result.exit_code == 0
        assert "Set analysis.max_depth = 4" in result.output
        assert isolated_config.exists()
        assert load_settings().max_depth == 4

    def test_set_unknown_key(self):
        result = runner.invoke(app, ["config", "set", "analysis.colour", "blue"])
        assert result.exit_code == 2

    def test_set_bad_value(self):
        result = runner.invoke(app, ["config", "set", "analysis.include_tests", "maybe"])
        assert result.exit_code == 2
