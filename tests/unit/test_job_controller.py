import asyncio

import pytest

from compilebox.core.frameworks import COMPLETION_MARKER, FRAMEWORKS
from compilebox.core.models import BuildJob, ErrorKind, JobState, ResourceLimits
from compilebox.services.job_controller import JobController, build_command
from compilebox.source.normalizer import encode


def make_job(framework="react", source="export default () => null;", timeout_ms=5000):
    return BuildJob(
        job_id="job-1",
        framework=FRAMEWORKS[framework],
        source=source,
        encoded_source=encode(source),
        limits=ResourceLimits(memory_bytes=1 << 30, cpu_period=100000, cpu_quota=200000),
        timeout_ms=timeout_ms,
    )


def test_build_command_embeds_only_base64():
    src = 'const s = "$(rm -rf /)";\necho `id`'
    job = make_job(source=src)
    cmd = build_command(job)
    assert cmd[:2] == ["/bin/sh", "-c"]
    script = cmd[2]
    assert src not in script
    assert f'echo "{encode(src)}" | base64 -d > src/App.tsx' in script
    assert "cd /workspace/template-app" in script
    assert "rm -f src/*.css src/App.tsx" in script
    assert "touch src/App.tsx" in script
    assert script.rstrip().endswith(f'npm run build && echo "{COMPLETION_MARKER}"')


def test_spec_carries_limits_and_cache_mount(fake_runtime):
    job = make_job("vue")
    spec = JobController(fake_runtime()).build_spec(job)
    assert spec.name == "vue-compile-job-1"
    assert spec.image == "vue-compiler:latest"
    assert spec.binds == {"/tmp/vue-cache": "/workspace/template-app/node_modules/.vite"}
    assert spec.limits.cpu_quota == 200000
    assert spec.user == "root"


@pytest.mark.asyncio
async def test_success_collects_artifacts(fake_runtime, tar_of):
    rt = fake_runtime(archive=tar_of({"dist/assets/index.js": b"x", "dist/index.html": b"<html/>"}))
    job = make_job()
    res = await JobController(rt).run(job)
    assert res.state == JobState.SUCCESS
    assert res.success
    assert res.files == {"index.js": "x", "index.html": "<html/>"}
    assert res.duration_ms >= 0
    assert job.state == JobState.CLEANED_UP
    assert rt.calls["create"] == 1
    assert rt.calls["remove"] == 1


@pytest.mark.asyncio
async def test_zero_exit_without_marker_is_build_failure(fake_runtime):
    rt = fake_runtime(records=[(1, b"vite v5 building...\n")])
    res = await JobController(rt).run(make_job())
    assert res.state == JobState.BUILD_FAILED
    assert res.error_kind == ErrorKind.BUILD_FAILED
    assert res.transcript == "vite v5 building...\n"
    assert rt.calls["get_archive"] == 0
    assert rt.calls["remove"] == 1


@pytest.mark.asyncio
async def test_nonzero_exit_is_build_failure(fake_runtime):
    rt = fake_runtime(exit_status=1, records=[(2, b"error TS1005: ';' expected.\n")])
    res = await JobController(rt).run(make_job("angular"))
    assert res.state == JobState.BUILD_FAILED
    assert res.error == "ANGULAR Build Failed"
    assert "TS1005" in res.transcript
    assert rt.calls["remove"] == 1


@pytest.mark.asyncio
async def test_timeout_has_no_transcript(fake_runtime):
    rt = fake_runtime(wait_delay=1.0)
    job = make_job(timeout_ms=1)
    res = await JobController(rt).run(job)
    assert res.state == JobState.TIMED_OUT
    assert res.error_kind == ErrorKind.TIMEOUT
    assert res.transcript is None
    assert rt.calls["logs"] == 0
    assert rt.calls["stop"] == 0
    assert rt.calls["remove"] == 1
    assert job.state == JobState.CLEANED_UP


@pytest.mark.asyncio
async def test_timeout_graceful_stop_when_enabled(fake_runtime):
    rt = fake_runtime(wait_delay=1.0)
    res = await JobController(rt, stop_before_remove=True).run(make_job(timeout_ms=1))
    assert res.state == JobState.TIMED_OUT
    assert rt.calls["stop"] == 1
    assert rt.calls["remove"] == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("step", ["start", "wait", "logs"])
async def test_runtime_error_is_infrastructure(fake_runtime, step):
    rt = fake_runtime(fail_on=step)
    res = await JobController(rt).run(make_job())
    assert res.state == JobState.ERRORED
    assert res.error_kind == ErrorKind.INFRASTRUCTURE
    assert f"{step} exploded" == res.error
    assert rt.calls["create"] == 1
    assert rt.calls["remove"] == 1


@pytest.mark.asyncio
async def test_create_failure_removes_nothing(fake_runtime):
    rt = fake_runtime(fail_on="create")
    res = await JobController(rt).run(make_job())
    assert res.state == JobState.ERRORED
    assert rt.calls["remove"] == 0


@pytest.mark.asyncio
async def test_cleanup_failure_does_not_mask_outcome(fake_runtime, tar_of):
    rt = fake_runtime(fail_on="remove", archive=tar_of({"a.js": b"1"}))
    res = await JobController(rt).run(make_job())
    assert res.state == JobState.SUCCESS
    assert res.files == {"a.js": "1"}
    assert rt.calls["remove"] == 1


@pytest.mark.asyncio
async def test_archive_failure_degrades_to_empty_files(fake_runtime):
    rt = fake_runtime(fail_on="get_archive")
    res = await JobController(rt).run(make_job())
    assert res.state == JobState.SUCCESS
    assert res.files == {}
    assert rt.calls["remove"] == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("step", ["wait", "logs"])
async def test_runtime_timeout_error_is_not_a_deadline(fake_runtime, step):
    # a socket timeout from the engine client is infrastructure, not TIMED_OUT
    rt = fake_runtime(fail_on=step, fail_exc=TimeoutError)
    res = await JobController(rt).run(make_job(timeout_ms=5000))
    assert res.state == JobState.ERRORED
    assert res.error_kind == ErrorKind.INFRASTRUCTURE
    assert rt.calls["remove"] == 1


@pytest.mark.asyncio
async def test_slow_start_counts_against_deadline(fake_runtime):
    class SlowStart(fake_runtime):
        async def start(self, handle):
            await super().start(handle)
            await asyncio.sleep(1.0)

    rt = SlowStart()
    res = await JobController(rt).run(make_job(timeout_ms=20))
    assert res.state == JobState.TIMED_OUT
    assert rt.calls["wait"] == 0
    assert rt.calls["remove"] == 1


@pytest.mark.asyncio
async def test_unexpected_collector_error_degrades_to_empty_files(fake_runtime, monkeypatch):
    import compilebox.services.job_controller as jc

    def boom(stream, path):
        raise ValueError("bad entry")

    monkeypatch.setattr(jc, "collect_artifacts", boom)
    rt = fake_runtime()
    res = await JobController(rt).run(make_job())
    assert res.state == JobState.SUCCESS
    assert res.files == {}
    assert rt.calls["remove"] == 1
