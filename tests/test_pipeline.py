"""End-to-end tests for the analysis pipeline and report."""

import copy
import json
from pathlib import Path

import pandas as pd
import pytest
import yaml

from chronic_cea.errors import InsufficientDataError
from chronic_cea.markov import DOMINANT
from chronic_cea.run_analysis import main, run_analysis


class TestRunAnalysis:
    """Full runs with a reduced number of PSA trials."""

    def test_tables_and_report(self, config):
        out = run_analysis(config, n_trials=40, seed=3, make_figures=False)
        tables = Path(config["paths"]["tables_dir"])

        for name in ["bucket_costs", "deterministic_results", "markov_trace_standard",
                     "markov_trace_intervention", "psa_trials", "psa_summary",
                     "psa_thresholds", "ceac"]:
            assert (tables / f"{name}.csv").exists(), name

        with open(tables / "icer.json") as f:
            icer = json.load(f)
        assert icer["category"] == DOMINANT
        assert out["icer"].dominates

        trials = pd.read_csv(tables / "psa_trials.csv")
        assert trials["trial"].nunique() == 40

        report = Path(config["paths"]["report"]).read_text()
        assert "## Deterministic Results" in report
        assert "dominates" in report
        assert "$50,000/QALY" in report

    def test_deterministic_results_scale_with_cohort(self, config):
        out = run_analysis(config, n_trials=5, make_figures=False)
        standard = out["results"]["standard"]
        assert standard.cohort_size == 1000
        assert standard.cohort_cost == pytest.approx(standard.total_cost * 1000)

    def test_figures_written(self, config):
        run_analysis(config, n_trials=20, make_figures=True)
        figures = Path(config["paths"]["figures_dir"])
        for name in ["ce_plane", "markov_trace", "psa_cloud", "ceac"]:
            assert (figures / f"{name}.png").exists(), name
            assert (figures / f"{name}.pdf").exists(), name

    def test_report_omits_figures_not_rendered_this_run(self, config):
        run_analysis(config, n_trials=10, make_figures=True)
        report_path = Path(config["paths"]["report"])
        assert "## Figures" in report_path.read_text()
        assert "ce_plane.png" in report_path.read_text()

        run_analysis(config, n_trials=10, make_figures=False)
        assert (Path(config["paths"]["figures_dir"]) / "ce_plane.png").exists()
        report = report_path.read_text()
        assert "## Figures" not in report
        assert "ce_plane.png" not in report

    def test_caller_config_left_unchanged(self, config):
        before = copy.deepcopy(config)
        out = run_analysis(config, n_trials=5, seed=11, make_figures=False)
        assert config == before
        assert out["trials"]["trial"].nunique() == 5

    def test_insufficient_data_aborts_before_outputs(self, config, tmp_path):
        data = tmp_path / "no_bucket_3.csv"
        data.write_text("totchr,totexp\n0,100\n1,200\n2,300\n4,500\n6,900\n")
        cfg = copy.deepcopy(config)
        cfg["paths"]["raw_data"] = str(data)
        with pytest.raises(InsufficientDataError):
            run_analysis(cfg, n_trials=5, make_figures=False)
        assert not Path(cfg["paths"]["tables_dir"]).exists()
        assert not Path(cfg["paths"]["report"]).exists()


class TestCommandLine:
    """Exit codes of the console entry point."""

    def _write_config(self, config, tmp_path):
        path = tmp_path / "config.yaml"
        with open(path, "w") as f:
            yaml.safe_dump(config, f)
        return str(path)

    def test_success(self, config, tmp_path):
        path = self._write_config(config, tmp_path)
        assert main(["--config", path, "--n-trials", "10", "--no-figures"]) == 0
        assert Path(config["paths"]["report"]).exists()

    def test_missing_config_file_fails(self, tmp_path):
        assert main(["--config", str(tmp_path / "missing.yaml"), "--no-figures"]) == 1

    def test_invalid_matrix_fails(self, config, tmp_path):
        cfg = copy.deepcopy(config)
        cfg["transitions"]["standard"][0][0] = 0.5
        path = self._write_config(cfg, tmp_path)
        assert main(["--config", path, "--n-trials", "10", "--no-figures"]) == 1
        assert not Path(cfg["paths"]["report"]).exists()
