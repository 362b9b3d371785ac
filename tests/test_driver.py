from __future__ import annotations

import json
import os

import numpy as np
import pytest

from scroll_filaments.driver import run_simulation, sample_step, stable_hash
from scroll_filaments.output import load_meta

import run_filaments


def _small_cfg(**overrides):
    cfg = {
        "nx": 16, "ny": 16, "nz": 16, "h": 0.5,
        "boundary": "z_periodic",
        "init_mode": "function", "init_function": "straight",
        "total_time": 0.1, "curve_every": 0.05, "field_every": 0.1,
        "max_steps": 300,
        "verbose": False,
    }
    cfg.update(overrides)
    return cfg


def test_small_run_writes_outputs(tmp_path) -> None:
    outdir = str(tmp_path / "run")
    out, summary = run_simulation(_small_cfg(), outdir)

    assert out == outdir
    assert summary["steps"] == 5
    assert summary["final_time"] == pytest.approx(0.1)
    assert summary["curve_samples"] == 3
    assert summary["field_samples"] == 2
    assert summary["snapshots_written"] == 3
    assert len(summary["filaments_per_sample"]) == 3

    for name in (
        "meta.json", "summary.json", "writhe.csv",
        "fields_0000000.npz", "fields_0000001.npz",
        "filaments_0000000.csv", "filaments_0000002.csv",
        "fields_0000000.png", "fields_montage.png",
    ):
        assert os.path.exists(os.path.join(outdir, name)), name

    with np.load(os.path.join(outdir, "fields_0000000.npz")) as d:
        assert set(d.files) == {"u", "v", "ucv_mag", "time"}
        assert d["u"].shape == (16, 16, 16)
        assert float(d["time"]) == 0.0

    meta = load_meta(outdir)
    assert meta["cfg"]["nx"] == 16
    assert meta["grid"]["periodic"] == [False, False, True]
    assert meta["param_hash"] == summary["param_hash"]

    with open(os.path.join(outdir, "summary.json"), "r", encoding="utf-8") as f:
        assert json.load(f)["curve_samples"] == 3


def test_run_without_images(tmp_path) -> None:
    outdir = str(tmp_path / "plain")
    _, summary = run_simulation(_small_cfg(save_png=False, save_plots=False, save_fields=False, total_time=0.04), outdir)
    assert summary["field_samples"] == 1
    assert not any(f.endswith(".png") for f in os.listdir(outdir))
    assert not any(f.endswith(".npz") for f in os.listdir(outdir))


def test_sample_step_rounds_halves_up() -> None:
    assert sample_step(0, 0.05, 0.02) == 0
    assert sample_step(1, 0.05, 0.02) == 3
    assert sample_step(2, 0.05, 0.02) == 5
    assert sample_step(3, 0.05, 0.02) == 8
    assert sample_step(3, 0.1, 0.02) == 15


def test_stable_hash_depends_on_content() -> None:
    assert stable_hash({"a": 1, "b": 2}) == stable_hash({"b": 2, "a": 1})
    assert stable_hash({"a": 1}) != stable_hash({"a": 2})
    assert len(stable_hash({})) == 10


def test_cli_reports_missing_initial_file(tmp_path, capsys) -> None:
    rc = run_filaments.main([
        "--init-mode", "uv_file",
        "--init-file", str(tmp_path / "nope.npz"),
        "--outdir", str(tmp_path / "out"),
        "--quiet",
    ])
    assert rc == 1
    assert "[ERR]" in capsys.readouterr().err


def test_cli_run_with_config_file(tmp_path, capsys) -> None:
    cfg_path = tmp_path / "cfg.json"
    cfg_path.write_text(json.dumps(_small_cfg(total_time=0.04, curve_every=0.02, field_every=0.04)))
    outdir = tmp_path / "cli"
    rc = run_filaments.main(["--config", str(cfg_path), "--outdir", str(outdir), "--nz", "8", "--no-png", "--no-plots"])
    assert rc == 0
    assert "[OK] Done" in capsys.readouterr().out
    assert load_meta(str(outdir))["cfg"]["nz"] == 8


def test_build_cfg_overrides_config(tmp_path) -> None:
    cfg_path = tmp_path / "cfg.json"
    cfg_path.write_text(json.dumps({"cfg": {"nx": 20, "dt": 0.01}}))
    args = run_filaments.parse_args(["--config", str(cfg_path), "--dt", "0.005", "--quiet"])
    cfg = run_filaments.build_cfg(args)
    assert cfg["nx"] == 20
    assert cfg["dt"] == 0.005
    assert cfg["verbose"] is False
