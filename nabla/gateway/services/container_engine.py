"""
Container engine adapters.

The gateway depends on two engine operations only:

    build(directory, tag, timeout) -> CommandResult
    run(image_id, timeout)         -> CommandResult

DockerCliEngine drives the docker binary through asyncio subprocesses.
DockerSdkEngine talks to the daemon with docker-py from worker threads.
Both enforce the deadline and kill what they started when it expires or the
calling task is cancelled.
"""

import asyncio
import logging
import uuid
from pathlib import Path
from typing import Callable, List, Optional, Protocol

import docker
import docker.errors
import requests
from fastapi.concurrency import run_in_threadpool

from ..config import GatewayConfig
from ..core.exceptions import ContainerEngineError, EngineTimeoutError
from ..models.result import CommandResult

logger = logging.getLogger("gateway.container_engine")

# Label put on every container the gateway starts.
MANAGED_LABEL = {"created_by": "nabla-gateway"}


def _container_name() -> str:
    return f"nabla-run-{uuid.uuid4().hex[:12]}"


class ContainerEngine(Protocol):
    async def build(self, directory: Path, tag: str, timeout: Optional[float]) -> CommandResult:
        ...

    async def run(self, image_id: str, timeout: Optional[float]) -> CommandResult:
        ...


class DockerCliEngine:
    """Engine adapter running `docker build` / `docker run` as subprocesses."""

    def __init__(self, binary: str = "docker", kill_timeout: float = 10.0):
        self.binary = binary
        self.kill_timeout = kill_timeout

    async def build(self, directory: Path, tag: str, timeout: Optional[float]) -> CommandResult:
        return await self._execute(["build", "-t", tag, str(directory)], timeout)

    async def run(self, image_id: str, timeout: Optional[float]) -> CommandResult:
        # Named so the container can be killed; killing the CLI alone leaves it running.
        name = _container_name()
        try:
            return await self._execute(
                ["run", "--rm", "--name", name, "--label", "created_by=nabla-gateway", image_id],
                timeout,
            )
        except (EngineTimeoutError, asyncio.CancelledError):
            await self._kill_container(name)
            raise

    async def _execute(self, args: List[str], timeout: Optional[float]) -> CommandResult:
        logger.debug(f"Executing {self.binary} {' '.join(args)}")
        try:
            proc = await asyncio.create_subprocess_exec(
                self.binary,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            raise ContainerEngineError(f"Unable to launch {self.binary}: {e}") from e

        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            await self._terminate(proc)
            raise EngineTimeoutError(args[0], timeout)
        except asyncio.CancelledError:
            await self._terminate(proc)
            raise

        return CommandResult(
            output=stdout.decode("utf-8", errors="replace"), exit_code=proc.returncode
        )

    async def _terminate(self, proc) -> None:
        if proc.returncode is not None:
            return
        try:
            proc.kill()
        except ProcessLookupError:
            return
        await proc.wait()

    async def _kill_container(self, name: str) -> None:
        """Best effort: the container may not have been created yet."""
        try:
            result = await self._execute(["kill", name], self.kill_timeout)
        except ContainerEngineError as e:
            logger.warning(f"Failed to kill container {name}: {e}")
            return
        if not result.success:
            logger.info(
                f"docker kill {name} exited {result.exit_code}",
                extra={"container_name": name, "output": result.output.strip()},
            )
        else:
            logger.info(f"Killed container {name}", extra={"container_name": name})


class DockerSdkEngine:
    """Engine adapter using the Docker SDK (docker-py)."""

    def __init__(
        self,
        client_factory: Optional[Callable[[], "docker.DockerClient"]] = None,
        daemon_timeout: int = 60,
    ):
        self._client_factory = client_factory or (lambda: docker.from_env(timeout=daemon_timeout))
        self._client: Optional["docker.DockerClient"] = None

    @property
    def client(self) -> "docker.DockerClient":
        # Created on first use so the gateway can start before the daemon does.
        if self._client is None:
            try:
                self._client = self._client_factory()
            except docker.errors.DockerException as e:
                raise ContainerEngineError(f"Docker daemon unavailable: {e}") from e
        return self._client

    async def build(self, directory: Path, tag: str, timeout: Optional[float]) -> CommandResult:
        try:
            return await asyncio.wait_for(
                run_in_threadpool(self._build_sync, directory, tag), timeout=timeout
            )
        except asyncio.TimeoutError:
            # The daemon finishes the build on its own; its layers are simply unused.
            raise EngineTimeoutError("build", timeout)

    def _build_sync(self, directory: Path, tag: str) -> CommandResult:
        lines: List[str] = []
        image_id: Optional[str] = None
        try:
            for chunk in self.client.api.build(path=str(directory), tag=tag, rm=True, decode=True):
                if "stream" in chunk:
                    lines.append(chunk["stream"])
                elif "error" in chunk:
                    lines.append(chunk["error"])
                    return CommandResult(output="".join(lines), exit_code=1)
                elif "aux" in chunk and "ID" in chunk["aux"]:
                    image_id = chunk["aux"]["ID"]
        except docker.errors.APIError as e:
            lines.append(str(e))
            return CommandResult(output="".join(lines), exit_code=1)
        except (docker.errors.DockerException, requests.exceptions.RequestException) as e:
            raise ContainerEngineError(f"Docker build request failed: {e}") from e

        return CommandResult(output="".join(lines), exit_code=0, image_id=image_id)

    async def run(self, image_id: str, timeout: Optional[float]) -> CommandResult:
        name = _container_name()
        try:
            return await run_in_threadpool(self._run_sync, image_id, name, timeout)
        except asyncio.CancelledError:
            await run_in_threadpool(self._remove_container, name)
            raise

    def _run_sync(self, image_id: str, name: str, timeout: Optional[float]) -> CommandResult:
        try:
            container = self.client.containers.run(
                image_id, name=name, detach=True, labels=MANAGED_LABEL
            )
        except docker.errors.APIError as e:
            # Same status `docker run` exits with when the daemon refuses (e.g. unknown image).
            return CommandResult(output=str(e), exit_code=125)
        except (docker.errors.DockerException, requests.exceptions.RequestException) as e:
            raise ContainerEngineError(f"Docker run request failed: {e}") from e

        try:
            try:
                status = container.wait(timeout=timeout)
            except requests.exceptions.RequestException:
                # wait() surfaces the deadline as a read timeout or dropped connection.
                output = self._collect_logs(container)
                try:
                    container.kill()
                except docker.errors.APIError as e:
                    logger.warning(f"Failed to kill container {name}: {e}")
                raise EngineTimeoutError("run", timeout, output)

            return CommandResult(
                output=self._collect_logs(container),
                exit_code=int(status.get("StatusCode", 1)),
            )
        finally:
            self._remove_container(name)

    def _collect_logs(self, container) -> str:
        try:
            return container.logs(stdout=True, stderr=True).decode("utf-8", errors="replace")
        except docker.errors.APIError as e:
            logger.warning(f"Failed to read logs of {container.name}: {e}")
            return ""

    def _remove_container(self, name: str) -> None:
        try:
            self.client.containers.get(name).remove(force=True)
        except docker.errors.NotFound:
            pass
        except (docker.errors.APIError, ContainerEngineError) as e:
            logger.warning(f"Failed to remove container {name}: {e}")


def create_container_engine(gateway_config: GatewayConfig) -> ContainerEngine:
    """Build the engine adapter selected by CONTAINER_ENGINE."""
    if gateway_config.CONTAINER_ENGINE == "sdk":
        return DockerSdkEngine(daemon_timeout=gateway_config.DOCKER_DAEMON_TIMEOUT)
    return DockerCliEngine(binary=gateway_config.DOCKER_BINARY)
