"""Tests for the command executor and the installation sequencer."""

from __future__ import annotations

import pytest

from provisioner.errors import StepFailure, TransportError, VerificationFailure
from provisioner.models.commands import Step
from provisioner.models.outcomes import ProbeResult
from provisioner.services.executor import FAIL_MARK, OK_MARK, RUN_MARK
from provisioner.services.sequencer import Sequencer


# ── CommandRunner ────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_nonzero_exit_is_a_result_not_an_exception(host, runner):
    host.add_response("false", status=3, stderr="boom")
    result = await runner.run("false", "Run false")
    assert result.exit_status == 3
    assert not result.ok
    assert result.stderr == "boom"


@pytest.mark.asyncio
async def test_progress_lines(host, runner, progress):
    host.add_response("echo hi", "hi\n")
    host.add_response("false", status=1, stderr="nope")
    await runner.run("echo hi", "Saying hi")
    await runner.run("false", "Failing")
    assert progress.lines[0] == f"{RUN_MARK} Saying hi"
    assert progress.lines[1] == f"{OK_MARK} Saying hi"
    assert progress.lines[3] == f"{FAIL_MARK} Failing (exit code: 1)"
    assert progress.lines[4].strip() == "nope"


@pytest.mark.asyncio
async def test_suppressed_output_still_captured(host, runner, progress):
    host.add_response("whoami", "admin\n")
    result = await runner.run("whoami", "Who", suppress_output=True)
    assert result.stdout == "admin\n"
    assert progress.lines == []


@pytest.mark.asyncio
async def test_transport_error_propagates(host, runner):
    host.break_transport_on("uptime")
    with pytest.raises(TransportError):
        await runner.run("uptime", "Uptime")


@pytest.mark.asyncio
async def test_upload_delegates_to_session(host, runner):
    await runner.upload("/tmp/local.zip", "/tmp/remote.zip", "Uploading")
    assert host.uploads == [("/tmp/local.zip", "/tmp/remote.zip")]


# ── Sequencer ────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_sequence_stops_at_first_failure(host, runner):
    host.add_response("sudo step-two", status=100, stderr="E: Unable to locate package")
    seq = Sequencer(runner, "tools")
    steps = [
        Step(label="one", command="sudo step-one"),
        Step(label="two", command="sudo step-two"),
        Step(label="three", command="sudo step-three"),
    ]
    with pytest.raises(StepFailure) as exc:
        await seq.run(steps)
    assert exc.value.label == "two"
    assert exc.value.exit_status == 100
    assert "Unable to locate package" in str(exc.value)
    assert host.issued("step-three") == []
    assert [r.label for r in seq.executed] == ["one", "two"]


@pytest.mark.asyncio
async def test_optional_step_failure_continues(host, runner, progress):
    host.add_response("sudo optional", status=2)
    seq = Sequencer(runner, "nginx")
    results = await seq.run([
        Step(label="maybe", command="sudo optional", optional=True),
        Step(label="after", command="sudo after"),
    ])
    assert [r.ok for r in results] == [False, True]
    assert any("maybe failed, continuing" in line for line in progress.lines)


@pytest.mark.asyncio
async def test_verify_negative_probe_raises(runner):
    seq = Sequencer(runner, "nodejs")

    async def not_there(_runner):
        return ProbeResult(installed=False)

    with pytest.raises(VerificationFailure):
        await seq.verify(not_there)


@pytest.mark.asyncio
async def test_verify_positive_probe_returns_result(runner):
    seq = Sequencer(runner, "nodejs")

    async def there(_runner):
        return ProbeResult(installed=True, version="v22.11.0")

    result = await seq.verify(there)
    assert result.version == "v22.11.0"
