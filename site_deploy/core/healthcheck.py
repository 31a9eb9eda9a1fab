"""Post-deploy health check"""

import asyncio
import logging
from typing import Optional, Tuple

import httpx

from ..models.config import HealthCheckConfig
from ..models.result import HealthCheckResult


async def run_local_command(command: str, timeout: float) -> Tuple[Optional[int], str]:
    """Run a command through the local shell

    Returns:
        (exit code, or None on timeout; last 500 characters of combined output)
    """
    process = await asyncio.create_subprocess_shell(
        command,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.STDOUT,
    )
    try:
        output, _ = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        return None, ""
    return process.returncode, output.decode(errors="replace").strip()[-500:]


class HealthChecker:
    """Runs the configured command and/or URL check; pass/fail only

    The command runs locally through the shell and passes on exit code 0.
    The URL passes on any status below 400 after redirects. With nothing
    configured the check passes.
    """

    def __init__(self, config: HealthCheckConfig):
        self.config = config
        self.logger = logging.getLogger(self.__class__.__name__)

    async def check(self) -> HealthCheckResult:
        if not self.config.enabled:
            return HealthCheckResult(passed=True, detail="no health check configured", configured=False)

        if self.config.command:
            result = await self._check_command(self.config.command)
            if not result.passed:
                return result

        if self.config.url:
            return await self._check_url(self.config.url)

        return result

    async def _check_command(self, command: str) -> HealthCheckResult:
        self.logger.info("Health check command: %s", command)
        returncode, tail = await run_local_command(command, self.config.timeout)
        if returncode is None:
            return HealthCheckResult(passed=False, detail=f"command timed out after {self.config.timeout:g}s")
        if returncode == 0:
            return HealthCheckResult(passed=True, detail="command exited 0")
        return HealthCheckResult(
            passed=False,
            detail=f"command exited {returncode}" + (f": {tail}" if tail else ""),
        )

    async def _check_url(self, url: str) -> HealthCheckResult:
        self.logger.info("Health check URL: %s", url)
        try:
            async with httpx.AsyncClient(follow_redirects=True, timeout=self.config.timeout) as client:
                response = await client.get(url)
        except httpx.HTTPError as e:
            return HealthCheckResult(passed=False, detail=f"{url}: {e.__class__.__name__}: {e}")

        if response.status_code < 400:
            return HealthCheckResult(passed=True, detail=f"{url} returned {response.status_code}")
        return HealthCheckResult(passed=False, detail=f"{url} returned {response.status_code}")
