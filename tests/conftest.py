"""共享 fixture — 内存 tar 包、描述对象工厂、假下载、假命令执行器"""

from __future__ import annotations

import hashlib
import io
import tarfile
import urllib.request
from collections.abc import Callable
from pathlib import Path

import pytest
import yaml

from tapkit.core.formula.models import InstallAction, PackageDescriptor
from tapkit.utils.shell import CommandResult

TOOL_URL = "https://example.com/tool/archive/refs/tags/v1.0.0.tar.gz"


def build_tarball(files: dict[str, str | bytes], top: str = "tool-1.0.0") -> bytes:
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tf:
        for rel, content in files.items():
            data = content.encode() if isinstance(content, str) else content
            info = tarfile.TarInfo(f"{top}/{rel}" if top else rel)
            info.size = len(data)
            info.mode = 0o644
            tf.addfile(info, io.BytesIO(data))
    return buf.getvalue()


class FakeExecutor:
    """记录命令并返回固定输出的执行器"""

    def __init__(self, stdout: str = "", returncode: int = 0, error: Exception | None = None) -> None:
        self.stdout = stdout
        self.returncode = returncode
        self.error = error
        self.calls: list[str] = []

    def execute(self, cmd, *, cwd=".", timeout=None) -> CommandResult:
        self.calls.append(cmd)
        if self.error is not None:
            raise self.error
        return CommandResult(returncode=self.returncode, stdout=self.stdout, stderr="")


@pytest.fixture()
def make_tarball() -> Callable[..., bytes]:
    return build_tarball


@pytest.fixture()
def fake_executor() -> type[FakeExecutor]:
    return FakeExecutor


@pytest.fixture()
def tool_archive() -> bytes:
    return build_tarball({
        "bin/tool.sh": "#!/bin/sh\necho 'usage: tool'\n",
        "lib/tool-helper.sh": "helper() { :; }\n",
        "README.md": "# tool\n",
    })


@pytest.fixture()
def make_descriptor() -> Callable[..., PackageDescriptor]:
    def _make(
        archive: bytes = b"",
        actions: tuple[tuple[str, str], ...] = (("bin/tool.sh", "bin/tool"),),
        **kwargs,
    ) -> PackageDescriptor:
        kwargs.setdefault("name", "tool")
        kwargs.setdefault("source_url", TOOL_URL)
        kwargs.setdefault("checksum", hashlib.sha256(archive).hexdigest())
        kwargs.setdefault("test_command", "{bin}/tool --help")
        return PackageDescriptor(
            install_actions=tuple(InstallAction(s, d) for s, d in actions),
            **kwargs,
        )

    return _make


@pytest.fixture()
def serve_archive(monkeypatch) -> Callable[..., list[str]]:
    """替换 urllib.request.urlopen；依次返回给定响应（异常则抛出），最后一个重复使用"""

    def _serve(*responses: bytes | Exception) -> list[str]:
        calls: list[str] = []
        queue = list(responses)

        def fake_urlopen(req, timeout=None):
            calls.append(req.full_url)
            item = queue.pop(0) if len(queue) > 1 else queue[0]
            if isinstance(item, Exception):
                raise item
            return io.BytesIO(item)

        monkeypatch.setattr(urllib.request, "urlopen", fake_urlopen)
        return calls

    return _serve


@pytest.fixture()
def write_formula(tmp_path: Path) -> Callable[..., Path]:
    """在 tmp_path/Formula 下写一个公式文件，返回目录"""
    formula_dir = tmp_path / "Formula"

    def _write(name: str = "tool", **fields) -> Path:
        data = {
            "name": name,
            "desc": f"{name} test formula",
            "url": TOOL_URL,
            "sha256": "0" * 64,
            "license": "MIT",
            "install": [{"source": "bin/tool.sh", "to": "bin/tool"}],
            "test": "{bin}/tool --help",
        }
        data.update(fields)
        formula_dir.mkdir(exist_ok=True)
        (formula_dir / f"{name}.yml").write_text(yaml.safe_dump(data, sort_keys=False))
        return formula_dir

    return _write
