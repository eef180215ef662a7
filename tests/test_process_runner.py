"""
Tests for the shared subprocess runner, using the current interpreter as the child.
"""
import asyncio
import sys

import pytest

from shared.process_runner import ProcessTimeoutError, run_process, scrubbed_env


def python(code):
    return [sys.executable, "-c", code]


def test_captures_output_and_exit_code():
    result = asyncio.run(run_process(python(
        "import sys; print('hello'); print('oops', file=sys.stderr); sys.exit(3)"
    )))
    assert result.returncode == 3
    assert result.stdout == "hello"
    assert result.error_tail() == "oops"


def test_carriage_return_progress_lines_are_split():
    lines = []
    asyncio.run(run_process(
        python("import sys; sys.stdout.write('Rendered 1/3\\rRendered 2/3\\rRendered 3/3\\n')"),
        on_stdout_line=lines.append,
    ))
    assert lines == ["Rendered 1/3", "Rendered 2/3", "Rendered 3/3"]


def test_timeout_kills_child():
    with pytest.raises(ProcessTimeoutError):
        asyncio.run(run_process(python("import time; time.sleep(30)"), timeout=0.5))


def test_missing_executable():
    with pytest.raises(FileNotFoundError):
        asyncio.run(run_process(["/definitely/not/a/binary"]))


def test_secrets_are_not_inherited(monkeypatch):
    monkeypatch.setenv("RENDER_SECRET", "hunter2")
    monkeypatch.setenv("SUPABASE_SERVICE_KEY", "service-key")
    env = scrubbed_env()
    assert "RENDER_SECRET" not in env
    assert "SUPABASE_SERVICE_KEY" not in env
    assert "PATH" in env

    result = asyncio.run(run_process(python(
        "import os; print(os.environ.get('RENDER_SECRET', 'absent'))"
    )))
    assert result.stdout == "absent"
