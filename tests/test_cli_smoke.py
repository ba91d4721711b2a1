import subprocess
import sys
from pathlib import Path

import pandas as pd


ROOT = Path(__file__).resolve().parents[1]
INLINE = ["--beta", "0.2", "--v0", "1.0", "1.2", "--d0", "2.0", "--ct", "0.8", "0.6"]


def run_cli(*args: str, check: bool = True) -> subprocess.CompletedProcess:
    cmd = [sys.executable, "-m", "houlsby.cli", *args]
    return subprocess.run(cmd, check=check, capture_output=True, text=True, cwd=ROOT)


def test_cli_smoke() -> None:
    result = run_cli(*INLINE)
    assert "Houlsby Open-Channel" in result.stdout
    assert any("u2 residual" in line for line in result.stdout.splitlines())


def test_cli_forecast_to_csv(tmp_path: Path) -> None:
    out = tmp_path / "forecast.csv"
    run_cli(*INLINE, "--mode", "forecast", "--beta2", "0.1", "--output", str(out))
    df = pd.read_csv(out)
    assert len(df) == 2
    assert "V0 residual" in df.columns
    assert set(df["dataset"]) == {"inline"}


def test_cli_csv_input_linear_with_plot(tmp_path: Path) -> None:
    data = tmp_path / "runs.csv"
    pd.DataFrame(
        {
            "dataset": ["a", "a", "b"],
            "beta": [0.2, 0.2, 0.15],
            "V0": [1.0, 1.0, 0.9],
            "d0": [2.0, 2.0, 1.5],
            "CT": [0.6, 0.8, 0.7],
            "CP": [0.38, 0.42, 0.40],
            "TSR": [3.5, 4.0, 3.8],
        }
    ).to_csv(data, index=False)
    plot = tmp_path / "curves.png"
    result = run_cli("--input", str(data), "--mode", "linear", "--beta2", "0.1", "--plot", str(plot))
    assert "Dataset: a (2 samples)" in result.stdout
    assert "Dataset: b (1 samples)" in result.stdout
    assert plot.exists()


def test_cli_rejects_invalid_input() -> None:
    result = run_cli("--beta", "1.5", "--v0", "1.0", "--d0", "2.0", "--ct", "0.8", check=False)
    assert result.returncode == 2
    assert "error" in result.stderr


def test_cli_requires_target_blockage() -> None:
    result = run_cli(*INLINE, "--mode", "forecast", check=False)
    assert result.returncode == 2
    assert "--beta2" in result.stderr


def test_cli_rejects_non_numeric_csv_cell(tmp_path: Path) -> None:
    data = tmp_path / "bad.csv"
    data.write_text("beta,V0,d0,CT\n0.2,1.0,2.0,0.8\n0.2,1.0,2.0,abc\n", encoding="utf-8")
    result = run_cli("--input", str(data), check=False)
    assert result.returncode == 2
    assert "CT" in result.stderr
    assert "Traceback" not in result.stderr


def test_cli_rejects_bad_guess_mode_setting(tmp_path: Path) -> None:
    settings = tmp_path / "solver.yaml"
    settings.write_text("xatol: 1e-9\nguess_mode: bogus\n", encoding="utf-8")
    result = run_cli(*INLINE, "--config", str(settings), check=False)
    assert result.returncode == 2
    assert "bogus" in result.stderr
    assert "Traceback" not in result.stderr
