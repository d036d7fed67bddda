import subprocess
import sys


def test_cli_help() -> None:
    cp = subprocess.run(
        [sys.executable, "-m", "quickjoint", "--help"],
        check=True,
        capture_output=True,
        text=True,
    )
    assert "QuickJoint" in cp.stdout or "quickjoint" in cp.stdout.lower()


def test_genotype_help_lists_flags() -> None:
    cp = subprocess.run(
        [sys.executable, "-m", "quickjoint", "genotype", "--help"],
        check=True,
        capture_output=True,
        text=True,
    )
    assert "--only-output-calls-starting-in-intervals" in cp.stdout
    assert "--summarize-pls" in cp.stdout
