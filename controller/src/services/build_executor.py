"""
Build executor - runs a build definition against a source artifact.
"""

import asyncio
import logging
import re
import shutil
import tempfile
import zipfile
from pathlib import Path
from typing import List, Sequence, Tuple

from controller.src.errors import BuildFailed
from controller.src.models.pipeline import ArtifactSelection, BuildConfig
from controller.src.services.command_runner import CommandRequest
from controller.src.storage.archive import pack_files, unpack
from controller.src.storage.artifact_store import ArtifactRef, ArtifactStore

logger = logging.getLogger(__name__)

LOG_TAIL_CHARS = 4000

class BuildExecutor:
    def __init__(self, store: ArtifactStore, runner, workspace_root: str):
        self.store = store
        self.runner = runner
        self.workspace_root = Path(workspace_root)

    async def execute(
        self,
        build: BuildConfig,
        input_ref: ArtifactRef,
        output_refs: Sequence[ArtifactRef],
        principal: str,
        run_id: str,
        action_name: str,
    ) -> List[ArtifactRef]:
        """
        Run install and build command groups, then publish the selected files.

        Either every declared output is stored or none is: archives are built
        in memory and handed to the store in a single ``put_many``.
        """
        self.workspace_root.mkdir(parents=True, exist_ok=True)
        prefix = re.sub(r"[^A-Za-z0-9_-]+", "-", action_name) + "-"
        workspace = Path(tempfile.mkdtemp(prefix=prefix, dir=self.workspace_root)).resolve()

        try:
            await asyncio.to_thread(self._prepare, input_ref, principal, workspace)

            for phase, commands in (("install", build.install), ("build", build.build)):
                if not commands:
                    continue
                result = await self.runner.run(CommandRequest(
                    run_id=run_id,
                    action_name=action_name,
                    phase=phase,
                    commands=commands,
                    workspace=workspace,
                    env=build.env,
                    image=build.image,
                ))
                if not result.succeeded:
                    logger.error(f"[{action_name}/{phase}] exited with {result.exit_code}")
                    raise BuildFailed(
                        f"Phase '{phase}' exited with code {result.exit_code}",
                        phase=phase,
                        exit_code=result.exit_code,
                        logs=result.output[-LOG_TAIL_CHARS:],
                    )
                logger.info(f"[{action_name}/{phase}] succeeded")

            return await asyncio.to_thread(self._publish, build, workspace, output_refs, principal)
        finally:
            shutil.rmtree(workspace, ignore_errors=True)

    def _prepare(self, input_ref: ArtifactRef, principal: str, workspace: Path):
        source = self.store.get(input_ref, principal)
        try:
            unpack(source, workspace, strip_common_root=True)
        except (zipfile.BadZipFile, ValueError) as e:
            raise BuildFailed(f"Input artifact {input_ref.name} is not a valid archive: {e}")

    def _publish(
        self,
        build: BuildConfig,
        workspace: Path,
        output_refs: Sequence[ArtifactRef],
        principal: str,
    ) -> List[ArtifactRef]:
        return self.store.put_many(self._collect(build, workspace, output_refs), principal)

    def _collect(
        self,
        build: BuildConfig,
        workspace: Path,
        output_refs: Sequence[ArtifactRef],
    ) -> List[Tuple[ArtifactRef, bytes]]:
        archives = []
        for i, ref in enumerate(output_refs):
            selection = build.artifacts if i == 0 else build.secondary_artifacts.get(ref.name)
            if selection is None:
                raise BuildFailed(f"No artifact selection rule for output {ref.name}")
            archives.append((ref, self._select(selection, workspace, ref.name)))
        return archives

    @staticmethod
    def _select(selection: ArtifactSelection, workspace: Path, name: str) -> bytes:
        base = (workspace / selection.base_directory).resolve()
        if not base.is_relative_to(workspace):
            raise BuildFailed(f"Base directory '{selection.base_directory}' for {name} leaves the workspace")
        if not base.is_dir():
            raise BuildFailed(f"Base directory '{selection.base_directory}' for {name} does not exist")

        files = set()
        for pattern in selection.files:
            for path in base.glob(pattern):
                if path.is_symlink() or not path.resolve().is_relative_to(base):
                    logger.warning(f"Skipping link {path.relative_to(base)} in output {name}")
                    continue
                if path.is_file():
                    files.add(path)
        if not files:
            raise BuildFailed(f"No files matched {selection.files} in '{selection.base_directory}' for {name}")

        logger.info(f"Selected {len(files)} files for {name}")
        return pack_files(base, files)
