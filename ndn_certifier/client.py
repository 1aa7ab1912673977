"""Snapshot sources backed by the NFD management tools and ``psutil``."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import Protocol, Sequence

import psutil

from .errors import CommandFailed, MalformedResponse, error_for_exit_code
from .parsers import parse_certificate_detail, parse_certificate_list, parse_forwarder_status
from .snapshots import CertificateDetail, CertificateList, ForwarderStatus

logger = logging.getLogger(__name__)


class SnapshotClient(Protocol):
    """Interface the evaluation DAG consumes to read the node's status."""

    async def get_forwarder_status(self) -> ForwarderStatus:
        ...

    async def list_certificates(self) -> CertificateList:
        ...

    async def get_certificate_detail(self, identity: str) -> CertificateDetail:
        ...

    async def get_host_memory(self) -> int:
        ...


class CommandSnapshotClient:
    """Runs ``nfdc`` and ``ndnsec`` and parses their output.

    Non-zero exit codes map to the :class:`~ndn_certifier.errors.SnapshotError`
    family: 3 not found, 4 canonize failure, 5 ambiguous, 6 nack, anything
    else a generic command failure.
    """

    def __init__(self, *, nfdc_binary: str = "nfdc", ndnsec_binary: str = "ndnsec") -> None:
        self._nfdc = nfdc_binary
        self._ndnsec = ndnsec_binary

    @classmethod
    def from_settings(cls, settings) -> "CommandSnapshotClient":
        return cls(
            nfdc_binary=getattr(settings, "nfdc_binary", "nfdc"),
            ndnsec_binary=getattr(settings, "ndnsec_binary", "ndnsec"),
        )

    async def get_forwarder_status(self) -> ForwarderStatus:
        output = await self._run((self._nfdc, "status", "report", "xml"))
        return parse_forwarder_status(output)

    async def list_certificates(self) -> CertificateList:
        output = await self._run((self._ndnsec, "list", "-c"))
        return parse_certificate_list(output)

    async def get_certificate_detail(self, identity: str) -> CertificateDetail:
        output = await self._run((self._ndnsec, "cert-dump", "-p", "-i", identity))
        return parse_certificate_detail(output)

    async def get_host_memory(self) -> int:
        try:
            memory = await asyncio.to_thread(psutil.virtual_memory)
        except (psutil.Error, OSError) as exc:
            raise CommandFailed("Could not read host memory", detail=str(exc)) from exc
        return int(memory.total)

    async def _run(self, command: Sequence[str]) -> str:
        command_line = " ".join(command)
        logger.debug("Running %s", command_line)
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise CommandFailed(f"Could not start {command[0]}", detail=str(exc)) from exc

        try:
            stdout, stderr = await process.communicate()
        except asyncio.CancelledError:
            with suppress(ProcessLookupError):
                process.kill()
            raise

        if process.returncode != 0:
            raise error_for_exit_code(
                process.returncode,
                command_line,
                stderr.decode("utf-8", errors="replace"),
            )
        try:
            return stdout.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedResponse(f"{command_line} produced non UTF-8 output", detail=str(exc)) from exc


__all__ = ["CommandSnapshotClient", "SnapshotClient"]
