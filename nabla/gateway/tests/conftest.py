import io
import os
import zipfile
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest

# Config is created at import time, so the environment is set at top level.
os.environ.setdefault("LOG_LEVEL", "DEBUG")
os.environ.setdefault("CONTAINER_ENGINE", "cli")

from nabla.gateway.config import BUNDLED_TEMPLATES_DIR, GatewayConfig  # noqa: E402
from nabla.gateway.core.concurrency import BuildThrottle  # noqa: E402
from nabla.gateway.models.result import CommandResult  # noqa: E402
from nabla.gateway.services.function_registry import FunctionRegistry  # noqa: E402
from nabla.gateway.services.image_builder import ImageBuilder  # noqa: E402
from nabla.gateway.services.invoker import FunctionInvoker  # noqa: E402
from nabla.gateway.services.loader import FunctionLoader  # noqa: E402
from nabla.gateway.services.template_store import TemplateStore  # noqa: E402

FAKE_DIGEST = "sha256:" + "ab" * 32


def make_zip(files: Dict[str, str]) -> bytes:
    """Build an in-memory zip archive from {name: content}."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        for name, content in files.items():
            zf.writestr(name, content)
    return buf.getvalue()


class FakeEngine:
    """
    In-memory container engine.

    Records every call and snapshots the build context so tests can inspect
    what the builder wrote before the workspace is removed.
    """

    def __init__(
        self,
        build_result: Optional[CommandResult] = None,
        run_result: Optional[CommandResult] = None,
    ):
        self.build_result = build_result or CommandResult(
            output=f"#6 exporting layers done\n#7 writing image {FAKE_DIGEST} done\n",
            exit_code=0,
        )
        self.run_result = run_result or CommandResult(output="hello from function\n", exit_code=0)
        self.build_calls: List[Tuple[Path, str, Optional[float]]] = []
        self.run_calls: List[Tuple[str, Optional[float]]] = []
        self.build_contexts: List[Dict[str, str]] = []
        self.build_error: Optional[BaseException] = None
        self.run_error: Optional[BaseException] = None

    async def build(self, directory, tag, timeout):
        self.build_calls.append((directory, tag, timeout))
        self.build_contexts.append(
            {
                str(p.relative_to(directory)): p.read_text(encoding="utf-8")
                for p in sorted(directory.rglob("*"))
                if p.is_file()
            }
        )
        if self.build_error is not None:
            raise self.build_error
        return self.build_result

    async def run(self, image_id, timeout):
        self.run_calls.append((image_id, timeout))
        if self.run_error is not None:
            raise self.run_error
        return self.run_result


@pytest.fixture
def fake_engine():
    return FakeEngine()


@pytest.fixture
def gateway_config(tmp_path):
    return GatewayConfig(WORKSPACE_ROOT=str(tmp_path / "workspaces"), DISCONNECT_POLL_INTERVAL=0.05)


@pytest.fixture
def registry():
    return FunctionRegistry()


@pytest.fixture
def builder(fake_engine):
    return ImageBuilder(
        engine=fake_engine, templates=TemplateStore(BUNDLED_TEMPLATES_DIR), timeout=30
    )


@pytest.fixture
def loader(builder, registry, gateway_config):
    return FunctionLoader(
        builder=builder,
        registry=registry,
        throttle=BuildThrottle(gateway_config.MAX_CONCURRENT_BUILDS, default_timeout=1.0),
        workspace_root=gateway_config.WORKSPACE_ROOT,
        max_extracted_bytes=gateway_config.MAX_EXTRACTED_BYTES,
        max_entries=gateway_config.MAX_ARCHIVE_ENTRIES,
    )


@pytest.fixture
def invoker(fake_engine, registry):
    return FunctionInvoker(engine=fake_engine, registry=registry, timeout=5)


@pytest.fixture
def client(gateway_config, registry, loader, invoker):
    """TestClient wired to the fake engine through dependency overrides."""
    from fastapi.testclient import TestClient

    from nabla.gateway.api.deps import (
        get_function_invoker,
        get_function_loader,
        get_function_registry,
        get_gateway_config,
    )
    from nabla.gateway.main import app

    app.dependency_overrides[get_gateway_config] = lambda: gateway_config
    app.dependency_overrides[get_function_registry] = lambda: registry
    app.dependency_overrides[get_function_loader] = lambda: loader
    app.dependency_overrides[get_function_invoker] = lambda: invoker
    try:
        # Not used as a context manager: the lifespan (real engine) stays off.
        yield TestClient(app, raise_server_exceptions=False)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_archive():
    return make_zip


@pytest.fixture
def image_digest():
    return FAKE_DIGEST
