"""
End-to-end tests of incremental builds against a fake compiler.
"""

import asyncio
import json
import os
import shutil
import pytest
from pathlib import Path
from unittest.mock import Mock, patch

from buildtool.build.lock import TargetLock
from buildtool.build.manager import BuildPipeline
from buildtool.config.global_config_loader import GlobalConfig
from buildtool.core.enums import ProjectState, RunOutcome
from buildtool.core.exceptions import (
    BuildFailedError,
    CleanError,
    DependencyCycleError,
    DiscoveryError,
    LockTimeoutError,
)
from tests.conftest import FakeCompiler, bump_mtime, generate_project, manifest_with_deps


def stored_names(target_dir: Path):
    records = json.loads((target_dir / "fingerprints.json").read_text())
    return sorted(Path(record['project_source_path']).name for record in records)


class TestFirstRun:
    """Test a run without any prior state"""

    @pytest.mark.asyncio
    async def test_everything_compiled(self, projects_dir, target_dir, fake_compiler, make_pipeline):
        for name in ["a", "b", "c"]:
            generate_project(projects_dir, name)

        report = await make_pipeline(fake_compiler).run()

        assert sorted(fake_compiler.calls) == ["a", "b", "c"]
        assert report.dirty == ["a", "b", "c"]
        assert report.clean == []
        assert report.outcome == RunOutcome.REBUILT
        assert stored_names(target_dir) == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_no_projects(self, target_dir, fake_compiler, make_pipeline):
        report = await make_pipeline(fake_compiler).run()

        assert report.outcome == RunOutcome.ALL_CLEAN
        assert stored_names(target_dir) == []


class TestIncremental:
    """Test reuse of previous results"""

    @pytest.mark.asyncio
    async def test_second_run_is_clean(self, projects_dir, fake_compiler, make_pipeline):
        """Test that rerunning without changes compiles nothing"""
        for name in ["a", "b"]:
            generate_project(projects_dir, name)
        await make_pipeline(fake_compiler).run()
        fake_compiler.calls.clear()

        report = await make_pipeline(fake_compiler).run()

        assert fake_compiler.calls == []
        assert report.outcome == RunOutcome.ALL_CLEAN
        assert report.clean == ["a", "b"]
        assert report.states == {"a": ProjectState.CLEAN, "b": ProjectState.CLEAN}

    @pytest.mark.asyncio
    async def test_source_change_rebuilds_project_and_dependents(
        self, projects_dir, fake_compiler, make_pipeline
    ):
        lib = generate_project(projects_dir, "lib")
        generate_project(projects_dir, "app", manifest=manifest_with_deps("app", ["lib"]))
        generate_project(projects_dir, "other")
        await make_pipeline(fake_compiler).run()
        fake_compiler.calls.clear()

        bump_mtime(lib.path / "src" / "main.sw")
        report = await make_pipeline(fake_compiler).run()

        assert sorted(fake_compiler.calls) == ["app", "lib"]
        assert report.clean == ["other"]

    @pytest.mark.asyncio
    async def test_new_source_file_rebuilds(self, projects_dir, fake_compiler, make_pipeline):
        project = generate_project(projects_dir, "a")
        await make_pipeline(fake_compiler).run()
        fake_compiler.calls.clear()

        (project.path / "src" / "extra.sw").write_text("// extra\n")
        await make_pipeline(fake_compiler).run()

        assert fake_compiler.calls == ["a"]

    @pytest.mark.asyncio
    async def test_tampered_build_output_rebuilds(self, projects_dir, target_dir, fake_compiler, make_pipeline):
        """Test that changing build artifacts by hand triggers a rebuild"""
        generate_project(projects_dir, "a")
        await make_pipeline(fake_compiler).run()
        fake_compiler.calls.clear()

        (target_dir / "a" / "rogue.bin").touch()
        await make_pipeline(fake_compiler).run()

        assert fake_compiler.calls == ["a"]
        assert not (target_dir / "a" / "rogue.bin").exists()

    @pytest.mark.asyncio
    async def test_deleted_build_dir_rebuilds(self, projects_dir, target_dir, fake_compiler, make_pipeline):
        generate_project(projects_dir, "a")
        generate_project(projects_dir, "b")
        await make_pipeline(fake_compiler).run()
        fake_compiler.calls.clear()

        shutil.rmtree(target_dir / "a")
        await make_pipeline(fake_compiler).run()

        assert fake_compiler.calls == ["a"]

    @pytest.mark.asyncio
    async def test_corrupted_store_rebuilds_everything(
        self, projects_dir, target_dir, fake_compiler, make_pipeline
    ):
        generate_project(projects_dir, "a")
        await make_pipeline(fake_compiler).run()
        fake_compiler.calls.clear()

        (target_dir / "fingerprints.json").write_text("not json at all")
        await make_pipeline(fake_compiler).run()

        assert fake_compiler.calls == ["a"]
        assert stored_names(target_dir) == ["a"]

    @pytest.mark.asyncio
    async def test_removed_project_dropped_from_store(
        self, projects_dir, target_dir, fake_compiler, make_pipeline
    ):
        generate_project(projects_dir, "a")
        gone = generate_project(projects_dir, "gone")
        await make_pipeline(fake_compiler).run()

        shutil.rmtree(gone.path)
        report = await make_pipeline(fake_compiler).run()

        assert report.clean == ["a"]
        assert stored_names(target_dir) == ["a"]

    @pytest.mark.asyncio
    async def test_new_dependency_edge_observed(self, projects_dir, fake_compiler, make_pipeline):
        """Test that an edge added to a manifest applies on the very next run"""
        lib = generate_project(projects_dir, "lib")
        app = generate_project(projects_dir, "app")
        await make_pipeline(fake_compiler).run()
        fake_compiler.calls.clear()

        (app.path / "Forc.toml").write_text(manifest_with_deps("app", ["lib"]))
        bump_mtime(app.path / "Forc.toml")
        await make_pipeline(fake_compiler).run()
        assert fake_compiler.calls == ["app"]
        fake_compiler.calls.clear()

        bump_mtime(lib.path / "src" / "main.sw")
        await make_pipeline(fake_compiler).run()

        assert sorted(fake_compiler.calls) == ["app", "lib"]


class TestFailures:
    """Test partial failure handling"""

    @pytest.mark.asyncio
    async def test_partial_failure_persists_successes(self, projects_dir, target_dir, make_pipeline):
        for name in ["a", "b", "c"]:
            generate_project(projects_dir, name)
        compiler = FakeCompiler(failing={"b"})

        with pytest.raises(BuildFailedError) as exc_info:
            await make_pipeline(compiler).run()

        error = exc_info.value
        assert [failure.name for failure in error.failures] == ["b"]
        assert "Project 'b' failed to compile! Reason: error: could not compile b" in str(error)
        assert error.report.outcome == RunOutcome.FAILED
        assert sorted(error.report.compiled) == ["a", "c"]
        assert error.report.states["b"] == ProjectState.FAILED
        assert stored_names(target_dir) == ["a", "c"]

    @pytest.mark.asyncio
    async def test_failed_project_retried(self, projects_dir, make_pipeline):
        for name in ["a", "b"]:
            generate_project(projects_dir, name)
        with pytest.raises(BuildFailedError):
            await make_pipeline(FakeCompiler(failing={"b"})).run()

        compiler = FakeCompiler()
        report = await make_pipeline(compiler).run()

        assert compiler.calls == ["b"]
        assert report.clean == ["a"]

    @pytest.mark.asyncio
    async def test_uncompiled_dependency_keeps_dependent_dirty(self, projects_dir, make_pipeline):
        """Test that a dependent is rebuilt while its dependency keeps failing"""
        generate_project(projects_dir, "lib")
        generate_project(projects_dir, "app", manifest=manifest_with_deps("app", ["lib"]))
        compiler = FakeCompiler(failing={"lib"})

        with pytest.raises(BuildFailedError):
            await make_pipeline(compiler).run()
        compiler.calls.clear()

        with pytest.raises(BuildFailedError):
            await make_pipeline(compiler).run()

        assert sorted(compiler.calls) == ["app", "lib"]

    @pytest.mark.asyncio
    async def test_callbacks(self, projects_dir, make_pipeline):
        generate_project(projects_dir, "a")
        generate_project(projects_dir, "b")
        on_dirty = Mock()
        on_failures = Mock()

        with pytest.raises(BuildFailedError):
            await make_pipeline(
                FakeCompiler(failing={"a"}), on_dirty=on_dirty, on_failures=on_failures
            ).run()

        on_dirty.assert_called_once_with(["a", "b"])
        on_failures.assert_called_once_with(
            [{'name': 'a', 'reason': 'error: could not compile a'}]
        )

    @pytest.mark.asyncio
    async def test_cycle_aborts_before_compiling(self, projects_dir, fake_compiler, make_pipeline):
        generate_project(projects_dir, "a", manifest=manifest_with_deps("a", ["b"]))
        generate_project(projects_dir, "b", manifest=manifest_with_deps("b", ["a"]))

        with pytest.raises(DependencyCycleError):
            await make_pipeline(fake_compiler).run()

        assert fake_compiler.calls == []


class TestPipelineOperations:
    """Test detection, listing, cleaning and locking"""

    @pytest.mark.asyncio
    async def test_detect_does_not_compile(self, projects_dir, fake_compiler, make_pipeline):
        generate_project(projects_dir, "a")

        clean, dirty = await make_pipeline(fake_compiler).detect()

        assert clean == []
        assert [project.name for project in dirty] == ["a"]
        assert fake_compiler.calls == []

    @pytest.mark.asyncio
    async def test_tracked_files(self, projects_dir, fake_compiler, make_pipeline):
        project = generate_project(projects_dir, "a")

        files = await make_pipeline(fake_compiler).tracked_files()

        assert set(files) == {project.path / "src" / "main.sw", project.path / "Forc.toml"}

    @pytest.mark.asyncio
    async def test_clean(self, projects_dir, target_dir, fake_compiler, make_pipeline):
        generate_project(projects_dir, "a")
        pipeline = make_pipeline(fake_compiler)
        await pipeline.run()

        assert await pipeline.clean() is True
        assert [entry.name for entry in target_dir.iterdir()] == [".build.lock"]
        assert await pipeline.clean() is False

    @pytest.mark.asyncio
    async def test_clean_waits_for_running_build(self, projects_dir, target_dir, fake_compiler, make_pipeline):
        """Test that clean never removes outputs from under a build holding the lock"""
        generate_project(projects_dir, "a")
        await make_pipeline(fake_compiler).run()
        other_build = TargetLock(target_dir)
        await other_build.acquire()

        try:
            with pytest.raises(LockTimeoutError):
                await make_pipeline(fake_compiler, lock_timeout=0).clean()
        finally:
            other_build.release()

        assert (target_dir / "a" / "a.bin").exists()
        assert stored_names(target_dir) == ["a"]

    @pytest.mark.asyncio
    async def test_clean_failure_is_clean_error(self, projects_dir, fake_compiler, make_pipeline):
        generate_project(projects_dir, "a")
        pipeline = make_pipeline(fake_compiler)
        await pipeline.run()

        with patch.object(pipeline, '_remove_outputs', side_effect=OSError("device busy")):
            with pytest.raises(CleanError) as exc_info:
                await pipeline.clean()

        assert "device busy" in str(exc_info.value)
        assert not pipeline.lock.held

    @pytest.mark.asyncio
    async def test_detect_cancels_fingerprinting_when_resolution_fails(
        self, projects_dir, fake_compiler, make_pipeline
    ):
        generate_project(projects_dir, "app", manifest=manifest_with_deps("app", ["ghost"]))
        pipeline = make_pipeline(fake_compiler)
        cancelled = []

        async def slow_fingerprints(projects):
            try:
                await asyncio.sleep(30)
            except asyncio.CancelledError:
                cancelled.append(True)
                raise

        with patch.object(pipeline.calculator, 'fingerprint_many', side_effect=slow_fingerprints):
            with pytest.raises(DiscoveryError):
                await pipeline.detect()

        assert cancelled == [True]

    @pytest.mark.asyncio
    async def test_active_build(self, target_dir, fake_compiler, make_pipeline):
        pipeline = make_pipeline(fake_compiler)

        assert pipeline.active_build() is None
        async with TargetLock(target_dir):
            assert pipeline.active_build() == str(os.getpid())

    @pytest.mark.asyncio
    async def test_concurrent_build_times_out(self, projects_dir, target_dir, fake_compiler, make_pipeline):
        generate_project(projects_dir, "a")
        other_build = TargetLock(target_dir)
        await other_build.acquire()

        try:
            with pytest.raises(LockTimeoutError):
                await make_pipeline(fake_compiler, lock_timeout=0).run()
        finally:
            other_build.release()

        assert fake_compiler.calls == []

    def test_from_config(self, workspace):
        config = GlobalConfig.from_dict({
            'build': {
                'projects_dir': str(workspace / "projects"),
                'target_dir': str(workspace / "out"),
                'max_concurrent_compiles': 3,
            },
            'compiler': {'type': 'command', 'command': ['true']},
        })

        pipeline = BuildPipeline.from_config(config)

        assert pipeline.orchestrator.max_concurrent == 3
        assert pipeline.store.store_path == workspace / "out" / "fingerprints.json"
        assert pipeline.scanner.projects_dir == workspace / "projects"
