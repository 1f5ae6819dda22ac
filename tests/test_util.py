from __future__ import annotations

import pytest

from pvedeploy.util import CmdError, shell_join
from pvedeploy.util import run_cmd as _run_cmd


def test_shell_join_quotes() -> None:
    cmd = ["qm", "set", "900", "--description", "a b", "c'd"]
    s = shell_join(cmd)
    assert "'a b'" in s
    assert s.startswith("qm set 900")


def test_run_cmd_success_and_failure() -> None:
    ok = _run_cmd(["bash", "-lc", "printf ok"], check=True, capture=True)
    assert ok.code == 0
    assert ok.stdout == "ok"
    bad = _run_cmd(["bash", "-lc", "exit 7"], check=False, capture=True)
    assert bad.code == 7
    with pytest.raises(CmdError):
        _run_cmd(["bash", "-lc", "exit 9"], check=True, capture=True)


def test_run_cmd_stringifies_arguments(monkeypatch) -> None:
    calls = []

    class P:
        returncode = 0
        stdout = ""
        stderr = ""

    monkeypatch.setattr(
        "pvedeploy.util.subprocess.run",
        lambda cmd, **kwargs: (calls.append(cmd) or P()),
    )
    _run_cmd(["qm", "start", 901], check=True, capture=True)
    assert calls[0] == ["qm", "start", "901"]


def test_run_cmd_missing_executable() -> None:
    res = _run_cmd(["pvedeploy-no-such-binary-xyz"], check=False)
    assert res.code == 127
    with pytest.raises(CmdError) as excinfo:
        _run_cmd(["pvedeploy-no-such-binary-xyz"], check=True)
    assert excinfo.value.result.code == 127
