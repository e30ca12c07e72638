from __future__ import annotations

import json
from pathlib import Path

import pytest

from mixscreen.config import load_json_config, load_pipeline_config, parse_pipeline_config
from mixscreen.core.types import ScreenConfig
from mixscreen.errors import ConfigurationError


def test_load_project_config():
    root = Path(__file__).resolve().parents[1]
    cfg = load_json_config(root / "configs" / "screen.json")
    assert "input_path" in cfg
    assert "screen" in cfg
    screen = ScreenConfig.from_dict(cfg["screen"])
    assert screen.correction == "bonferroni"


def test_invalid_json_reports_line_and_column(tmp_path: Path):
    bad = tmp_path / "bad.json"
    bad.write_text('{"a": 1,}\n', encoding="utf-8")
    with pytest.raises(ValueError, match=r"line \d+, column \d+"):
        load_json_config(bad)


def test_non_object_json_config_rejected(tmp_path: Path):
    bad = tmp_path / "list.json"
    bad.write_text(json.dumps([1, 2, 3]), encoding="utf-8")
    with pytest.raises(ValueError, match="expected JSON object"):
        load_json_config(bad)


def test_non_json_extension_rejected(tmp_path: Path):
    bad = tmp_path / "cfg.yaml"
    bad.write_text("{}", encoding="utf-8")
    with pytest.raises(ValueError, match="Use a .json config file"):
        load_json_config(bad)


def test_missing_config_file(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        load_json_config(tmp_path / "nope.json")


def test_duplicate_json_keys_rejected(tmp_path: Path):
    bad = tmp_path / "dup.json"
    bad.write_text('{"input_path": "a.h5ad", "input_path": "b.h5ad"}', encoding="utf-8")
    with pytest.raises(ConfigurationError, match="Duplicate key 'input_path'"):
        load_json_config(bad)


def test_screen_config_defaults_and_aliases():
    cfg = ScreenConfig.from_dict(
        {
            "covariate_names": ["hk1", "hk2"],
            "response_name": "contractile_score",
            "group_name": "sample",
            "worker_pool_size": 3,
            "correction_method": "fdr_bh",
        }
    )
    assert cfg.covariates == ("hk1", "hk2")
    assert cfg.n_jobs == 3
    assert cfg.correction == "fdr_bh"
    assert cfg.backend == "loky"


@pytest.mark.parametrize(
    "data,match",
    [
        ({"n_jobs": 0}, "n_jobs"),
        ({"correction": "holm"}, "Unknown correction"),
        ({"backend": "dask"}, "Unknown backend"),
        ({"batch_size": 0}, "batch_size"),
        ({"gene_timeout": -1}, "gene_timeout"),
        ({"covariates": "hk1"}, "list of strings"),
        ({"covariates": ["sample"]}, "distinct"),
        ({"response": ""}, "non-empty"),
        ({"n_jobs": 2, "worker_pool_size": 2}, "only one"),
        ({"unknown_key": 1}, "Unknown screen config keys"),
    ],
)
def test_screen_config_validation(data, match):
    with pytest.raises(ConfigurationError, match=match):
        ScreenConfig.from_dict(data)


def test_pipeline_config_resolves_relative_paths(tmp_path: Path):
    (tmp_path / "genes.txt").write_text("# candidates\nMYH6\n\nTTN\n", encoding="utf-8")
    cfg_path = tmp_path / "screen.json"
    cfg_path.write_text(
        json.dumps(
            {
                "input_path": "cells.csv",
                "genes_path": "genes.txt",
                "output_path": "out/screen.tsv",
                "min_detection_rate": 0.1,
                "screen": {"covariates": ["hk1"], "n_jobs": 1},
            }
        ),
        encoding="utf-8",
    )
    cfg = load_pipeline_config(cfg_path)
    assert cfg.input_path == tmp_path / "cells.csv"
    assert cfg.output_path == tmp_path / "out" / "screen.tsv"
    assert cfg.genes == ("MYH6", "TTN")
    assert cfg.log_path is None
    assert cfg.screen.n_jobs == 1


@pytest.mark.parametrize(
    "data,match",
    [
        ({"output_path": "o.tsv", "genes": ["A"]}, "input_path"),
        ({"input_path": "x.loom", "output_path": "o.tsv", "genes": ["A"]}, "Unsupported input"),
        ({"input_path": "x.csv", "output_path": "o.tsv"}, "exactly one"),
        ({"input_path": "x.csv", "output_path": "o.tsv", "genes": "A"}, "list"),
        (
            {"input_path": "x.csv", "output_path": "o.tsv", "genes": ["A"], "min_detection_rate": 2},
            "min_detection_rate",
        ),
        ({"input_path": "x.csv", "output_path": "o.tsv", "genes": ["A"], "extra": 1}, "Unknown"),
    ],
)
def test_pipeline_config_validation(data, match):
    with pytest.raises(ConfigurationError, match=match):
        parse_pipeline_config(data)
