import asyncio
import time
from pathlib import Path

import pytest

from nabla.gateway.core.exceptions import (
    ArchiveError,
    BuildError,
    DetectionError,
    ResourceExhaustedError,
)
from nabla.gateway.models.result import CommandResult
from nabla.gateway.services import loader as loader_module


def _workspace_entries(loader):
    root = Path(loader.workspace_root)
    return list(root.iterdir()) if root.exists() else []


@pytest.mark.asyncio
async def test_load_python_function(loader, registry, fake_engine, make_archive, image_digest):
    archive = make_archive({"main.py": "print('hi')\n", "requirements.txt": ""})

    record = await loader.load(archive)

    assert record.image_id == image_digest
    assert record.language == "python"
    assert record.handler == "main.py"
    assert registry.lookup(record.function_id) == image_digest

    context = fake_engine.build_contexts[0]
    assert context["main.py"] == "print('hi')\n"
    assert 'CMD ["python", "main.py"]' in context["Dockerfile"]
    assert fake_engine.build_calls[0][1] == "nabla-function:python"


@pytest.mark.asyncio
async def test_load_golang_function(loader, fake_engine, make_archive):
    record = await loader.load(make_archive({"main.go": "package main\n"}))

    assert record.language == "golang"
    assert fake_engine.build_calls[0][1] == "nabla-function:golang"


@pytest.mark.asyncio
async def test_workspace_removed_after_success(loader, fake_engine, make_archive):
    await loader.load(make_archive({"main.py": ""}))

    build_dir = fake_engine.build_calls[0][0]
    assert not build_dir.exists()
    assert _workspace_entries(loader) == []


@pytest.mark.asyncio
async def test_workspace_removed_and_nothing_registered_on_build_failure(
    loader, registry, fake_engine, make_archive
):
    fake_engine.build_result = CommandResult(output="ERROR", exit_code=1)

    with pytest.raises(BuildError):
        await loader.load(make_archive({"main.py": ""}))

    assert len(registry) == 0
    assert _workspace_entries(loader) == []


@pytest.mark.asyncio
async def test_archive_without_handler(loader, registry, fake_engine, make_archive):
    with pytest.raises(DetectionError):
        await loader.load(make_archive({"notes.txt": "hello"}))

    assert fake_engine.build_calls == []
    assert len(registry) == 0
    assert _workspace_entries(loader) == []


@pytest.mark.asyncio
async def test_invalid_archive(loader, registry, fake_engine):
    with pytest.raises(ArchiveError):
        await loader.load(b"not a zip")

    assert fake_engine.build_calls == []
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_concurrent_loads_get_distinct_ids(loader, registry, fake_engine, make_archive):
    archives = [make_archive({f"handler_{i}.py": f"print({i})\n"}) for i in range(5)]

    records = await asyncio.gather(*(loader.load(a) for a in archives))

    assert len({r.function_id for r in records}) == 5
    assert len(registry) == 5
    # Each build saw only its own sources.
    handlers = sorted(next(k for k in ctx if k.endswith(".py")) for ctx in fake_engine.build_contexts)
    assert handlers == [f"handler_{i}.py" for i in range(5)]
    assert len({call[0] for call in fake_engine.build_calls}) == 5


@pytest.mark.asyncio
async def test_build_slot_exhaustion(loader, registry, make_archive):
    loader.throttle.limit = 1
    await loader.throttle.acquire()

    with pytest.raises(ResourceExhaustedError):
        await loader.load(make_archive({"main.py": ""}))

    assert len(registry) == 0
    assert _workspace_entries(loader) == []


@pytest.mark.asyncio
async def test_cancel_during_extraction_waits_for_worker(
    loader, registry, fake_engine, make_archive, monkeypatch
):
    real_extract = loader_module.extract_archive
    finished = []

    def slow_extract(*args):
        time.sleep(0.3)
        count = real_extract(*args)
        finished.append(count)
        return count

    monkeypatch.setattr(loader_module, "extract_archive", slow_extract)
    task = asyncio.create_task(loader.load(make_archive({"main.py": "", "lib/util.py": ""})))
    await asyncio.sleep(0.1)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    # Extraction had finished writing before the workspace was released.
    assert len(finished) == 1
    assert _workspace_entries(loader) == []
    await asyncio.sleep(0.3)
    assert _workspace_entries(loader) == []
    assert fake_engine.build_calls == []
    assert len(registry) == 0
