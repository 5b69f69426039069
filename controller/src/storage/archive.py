"""
Zip helpers for source and build artifacts.
"""

import io
import zipfile
from pathlib import Path, PurePosixPath
from typing import Dict, Iterable, Optional

def pack_files(base: Path, files: Iterable[Path]) -> bytes:
    """Zip files with paths relative to base, in sorted order."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for path in sorted(set(files)):
            zf.write(path, arcname=path.relative_to(base).as_posix())
    return buf.getvalue()

def pack_mapping(entries: Dict[str, bytes]) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for name in sorted(entries):
            zf.writestr(name, entries[name])
    return buf.getvalue()

def _strip_root(names, strip_common_root: bool) -> Optional[str]:
    """GitHub zipballs wrap everything in '<owner>-<repo>-<sha>/'."""
    if not strip_common_root:
        return None
    roots = {PurePosixPath(n).parts[0] for n in names if PurePosixPath(n).parts}
    if len(roots) == 1 and all("/" in n for n in names):
        return roots.pop()
    return None

def unpack(data: bytes, target: Path, strip_common_root: bool = False):
    target = Path(target).resolve()
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        names = zf.namelist()
        root = _strip_root(names, strip_common_root)
        for info in zf.infolist():
            name = info.filename
            if root:
                name = name[len(root) + 1:]
            if not name or info.is_dir():
                continue
            dest = (target / name).resolve()
            if target not in dest.parents:
                raise ValueError(f"Archive entry {info.filename} escapes the workspace")
            dest.parent.mkdir(parents=True, exist_ok=True)
            dest.write_bytes(zf.read(info))
            # Keep executable bits from unix archives
            mode = (info.external_attr >> 16) & 0o777
            if mode:
                dest.chmod(mode)

def read_member(data: bytes, path: str) -> bytes:
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        try:
            return zf.read(path)
        except KeyError:
            raise FileNotFoundError(path)
