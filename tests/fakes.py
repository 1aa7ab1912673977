"""In-memory snapshot client and clock shared by the test modules."""
from __future__ import annotations

import asyncio
import sys
from collections import Counter
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from ndn_certifier.records import Measurement, Metric, MetricValue  # noqa: E402
from ndn_certifier.snapshots import (  # noqa: E402
    Certificate,
    CertificateDetail,
    CertificateList,
    ForwarderStatus,
)

BASE_TIME = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
MIB = 1024 * 1024


class FakeClock:
    """Clock that only moves when the test says so."""

    def __init__(self, start: datetime = BASE_TIME) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


def stats(minimum: int = 20, maximum: int = 60, avg: float = 6.0, std_dev: float = 1.0) -> Dict[str, object]:
    return {"min": minimum, "max": maximum, "avg": avg, "std_dev": std_dev}


def face(face_id: int = 256, *, incoming: int = 50, data: int = 40, nacks: int = 0, **overrides) -> Dict[str, object]:
    payload: Dict[str, object] = {
        "face_id": face_id,
        "remote_uri": f"udp4://192.0.2.{face_id % 250}:6363",
        "local_uri": "udp4://192.0.2.1:6363",
        "packet_counters": {
            "incoming_packets": {"n_interests": incoming, "n_data": 0, "n_nacks": 0},
            "outgoing_packets": {"n_interests": 0, "n_data": data, "n_nacks": nacks},
        },
        "interest_packet_size": stats(minimum=30, maximum=90, avg=45.0),
        "data_packet_size": stats(minimum=400, maximum=1200, avg=800.0, std_dev=40.0),
        "interest_packet_components": stats(minimum=3, maximum=8, avg=5.0),
        "data_packet_components": stats(minimum=3, maximum=9, avg=6.0),
    }
    payload.update(overrides)
    return payload


def forwarder_status(
    *,
    capacity: int = 10_000,
    n_entries: int = 9_500,
    policy: str = "lru",
    faces: Optional[List[Dict[str, object]]] = None,
    invalid_signatures: int = 0,
    **cs_overrides,
) -> ForwarderStatus:
    cs: Dict[str, object] = {
        "capacity": capacity,
        "n_entries": n_entries,
        "policy_name": policy,
        "min_size": 24,
        "max_size": 40,
        "average_size": 30.0,
        "std_dev_size": 2.0,
        "valid_signature_packets": n_entries - invalid_signatures,
        "invalid_signature_packets": invalid_signatures,
    }
    cs.update(cs_overrides)
    return ForwarderStatus.model_validate(
        {
            "faces": [face()] if faces is None else faces,
            "cs": cs,
            "strategy_choices": [{"namespace": "/", "strategy": "/localhost/nfd/strategy/best-route/v=5"}],
        }
    )


def certificate_list(*identities: str, default: Optional[str] = None) -> CertificateList:
    identities = identities or ("/ndn/site/alice",)
    default = identities[0] if default is None else default
    return CertificateList(
        certificates=[
            Certificate(
                is_default=identity == default,
                identity=identity,
                key=f"{identity}/KEY/%01",
                certificate=f"{identity}/KEY/%01/self/v=1",
            )
            for identity in identities
        ]
    )


def certificate_detail(identity: str, *, valid_from: datetime = BASE_TIME - timedelta(days=1), days: int = 365) -> CertificateDetail:
    return CertificateDetail(
        certificate_name=f"{identity}/KEY/%01/self/v=1",
        not_before=valid_from,
        not_after=valid_from + timedelta(days=days),
    )


class FakeSnapshotClient:
    """Returns canned snapshots and counts how often each call is made.

    ``errors`` maps a call name (or ``"detail:<identity>"``) to the exception
    it raises; ``delays`` maps a call name to a sleep in seconds.
    """

    def __init__(
        self,
        *,
        status: Optional[ForwarderStatus] = None,
        certificates: Optional[CertificateList] = None,
        details: Optional[Dict[str, CertificateDetail]] = None,
        memory: object = 100 * MIB,
        errors: Optional[Dict[str, BaseException]] = None,
        delays: Optional[Dict[str, float]] = None,
    ) -> None:
        self.status = status if status is not None else forwarder_status()
        self.certificates = certificates if certificates is not None else certificate_list()
        self.details = details if details is not None else {
            identity: certificate_detail(identity) for identity in self.certificates.identities()
        }
        self.memory = memory
        self.errors = dict(errors or {})
        self.delays = dict(delays or {})
        self.calls: Counter = Counter()

    async def _answer(self, name: str, value):
        self.calls[name] += 1
        delay = self.delays.get(name.split(":", 1)[0])
        if delay:
            await asyncio.sleep(delay)
        error = self.errors.get(name)
        if error is not None:
            raise error
        return value

    async def get_forwarder_status(self):
        return await self._answer("forwarder_status", self.status)

    async def list_certificates(self):
        return await self._answer("certificate_list", self.certificates)

    async def get_certificate_detail(self, identity: str):
        return await self._answer(f"detail:{identity}", self.details.get(identity))

    async def get_host_memory(self):
        return await self._answer("host_memory", self.memory)


def measurement(metric: Metric, value, index: int = 0, timestamp: datetime = BASE_TIME) -> Measurement:
    return Measurement(data=MetricValue.of(metric, value), index=index, timestamp=timestamp)
