"""Tests for the build executor with the local command runner."""

import asyncio
import io
import zipfile

import pytest

from controller.src.errors import BuildFailed
from controller.src.models.pipeline import BuildConfig
from controller.src.services.build_executor import BuildExecutor
from controller.src.services.command_runner import LocalCommandRunner
from controller.src.storage.archive import read_member

from conftest import source_archive

def setup(make_pipeline, tmp_path):
    pipeline = make_pipeline()
    store = pipeline.store
    source = store.put(store.reference("run-1", "SourceOutput"), source_archive(), pipeline.service_principal)
    executor = BuildExecutor(store, LocalCommandRunner(), str(tmp_path / "workspaces"))
    return pipeline, source, executor

def run_build(pipeline, executor, source, build, outputs):
    refs = [pipeline.store.reference("run-1", name) for name in outputs]
    return asyncio.run(executor.execute(
        build, source, refs,
        principal=pipeline.service_principal,
        run_id="run-1",
        action_name="Application_Build",
    ))

def test_build_publishes_selected_files(make_pipeline, tmp_path):
    pipeline, source, executor = setup(make_pipeline, tmp_path)
    build = BuildConfig.model_validate({
        "install": ["mkdir -p app/out"],
        "build": ["cp app/index.js app/out/index.js", "echo $CROSSDEPLOY_PHASE > app/out/phase.txt"],
        "artifacts": {"base_directory": "app/out", "files": ["*"]},
    })

    refs = run_build(pipeline, executor, source, build, ["LambdaBuildOutput"])

    archive = pipeline.store.get(refs[0], pipeline.service_principal)
    assert read_member(archive, "index.js").startswith(b"exports.handler")
    assert read_member(archive, "phase.txt").strip() == b"build"

def test_command_groups_run_in_separate_shells(make_pipeline, tmp_path):
    pipeline, source, executor = setup(make_pipeline, tmp_path)
    build = BuildConfig.model_validate({
        "install": ["cd app", "touch installed.txt"],
        # The install group's `cd` does not carry over
        "build": ["test -f app/installed.txt", "cp app/installed.txt marker.txt"],
        "artifacts": {"files": ["marker.txt"]},
    })

    refs = run_build(pipeline, executor, source, build, ["LambdaBuildOutput"])

    assert pipeline.store.exists(refs[0])

def test_secondary_artifacts_are_published_together(make_pipeline, tmp_path):
    pipeline, source, executor = setup(make_pipeline, tmp_path)
    build = BuildConfig.model_validate({
        "build": ["mkdir -p dist", "cp template.json dist/UatApplicationStack.template.json"],
        "artifacts": {"base_directory": "app", "files": ["*.js"]},
        "secondary_artifacts": {
            "CdkBuildOutput": {"base_directory": "dist", "files": ["*.template.json"]},
        },
    })

    refs = run_build(pipeline, executor, source, build, ["LambdaBuildOutput", "CdkBuildOutput"])

    assert [r.name for r in refs] == ["LambdaBuildOutput", "CdkBuildOutput"]
    template = read_member(
        pipeline.store.get(refs[1], pipeline.service_principal),
        "UatApplicationStack.template.json",
    )
    assert b"Resources" in template

def test_failing_phase_publishes_nothing(make_pipeline, tmp_path):
    pipeline, source, executor = setup(make_pipeline, tmp_path)
    build = BuildConfig.model_validate({
        "install": ["echo installing"],
        "build": ["echo compiling", "exit 3", "echo unreachable"],
        "artifacts": {"files": ["**/*"]},
    })

    with pytest.raises(BuildFailed) as excinfo:
        run_build(pipeline, executor, source, build, ["LambdaBuildOutput"])

    assert excinfo.value.phase == "build"
    assert excinfo.value.exit_code == 3
    assert "compiling" in excinfo.value.logs
    assert "unreachable" not in excinfo.value.logs
    assert not pipeline.store.exists(pipeline.store.reference("run-1", "LambdaBuildOutput"))

def test_unmatched_selection_publishes_nothing(make_pipeline, tmp_path):
    pipeline, source, executor = setup(make_pipeline, tmp_path)
    build = BuildConfig.model_validate({
        "build": ["true"],
        "artifacts": {"base_directory": "app", "files": ["*.js"]},
        "secondary_artifacts": {"CdkBuildOutput": {"base_directory": "dist", "files": ["*.json"]}},
    })

    with pytest.raises(BuildFailed, match="does not exist"):
        run_build(pipeline, executor, source, build, ["LambdaBuildOutput", "CdkBuildOutput"])

    assert not pipeline.store.exists(pipeline.store.reference("run-1", "LambdaBuildOutput"))

def test_workspace_is_removed(make_pipeline, tmp_path):
    pipeline, source, executor = setup(make_pipeline, tmp_path)
    build = BuildConfig.model_validate({"build": ["exit 1"], "artifacts": {"files": ["*"]}})

    with pytest.raises(BuildFailed):
        run_build(pipeline, executor, source, build, ["LambdaBuildOutput"])

    assert list((tmp_path / "workspaces").iterdir()) == []

def test_input_must_be_an_archive(make_pipeline, tmp_path):
    pipeline, _, executor = setup(make_pipeline, tmp_path)
    store = pipeline.store
    bad = store.put(store.reference("run-2", "SourceOutput"), b"not a zip", pipeline.service_principal)
    build = BuildConfig.model_validate({"build": ["true"], "artifacts": {"files": ["*"]}})

    with pytest.raises(BuildFailed, match="not a valid archive"):
        run_build(pipeline, executor, bad, build, ["LambdaBuildOutput"])

def test_links_out_of_the_workspace_are_not_published(make_pipeline, tmp_path):
    pipeline, source, executor = setup(make_pipeline, tmp_path)
    secret = tmp_path / "controller-secret.txt"
    secret.write_text("controller only")
    build = BuildConfig.model_validate({
        "build": ["mkdir -p app/out", "cp app/index.js app/out/index.js", f"ln -s {secret} app/out/leak.js"],
        "artifacts": {"base_directory": "app/out", "files": ["*.js"]},
    })

    refs = run_build(pipeline, executor, source, build, ["LambdaBuildOutput"])

    archive = pipeline.store.get(refs[0], pipeline.service_principal)
    with zipfile.ZipFile(io.BytesIO(archive)) as zf:
        assert zf.namelist() == ["index.js"]

def test_linked_base_directory_is_rejected(make_pipeline, tmp_path):
    pipeline, source, executor = setup(make_pipeline, tmp_path)
    outside = tmp_path / "host"
    outside.mkdir()
    (outside / "id_rsa").write_text("key")
    build = BuildConfig.model_validate({
        "build": [f"ln -s {outside} out"],
        "artifacts": {"base_directory": "out", "files": ["*"]},
    })

    with pytest.raises(BuildFailed, match="leaves the workspace"):
        run_build(pipeline, executor, source, build, ["LambdaBuildOutput"])

    assert not pipeline.store.exists(pipeline.store.reference("run-1", "LambdaBuildOutput"))
