"""Metric stage: typed measurements derived from the cycle's snapshots."""
from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Dict

from .cycle import Cycle
from .logstore import Logged
from .records import Measurement, Metric
from .snapshots import SignatureCounts

MetricTask = Callable[[Cycle], Awaitable[Logged[Measurement]]]


async def m1(cycle: Cycle) -> Logged[Measurement]:
    """Content store replacement policy name."""

    status = await cycle.snapshots.forwarder_status()
    return cycle.measure(Metric.M1, status.cs.policy_name)


async def m2(cycle: Cycle) -> Logged[Measurement]:
    """Number of entries the content store can hold."""

    status = await cycle.snapshots.forwarder_status()
    return cycle.measure(Metric.M2, status.cs.capacity)


async def m3(cycle: Cycle) -> Logged[Measurement]:
    """Number of entries currently stored in the content store."""

    status = await cycle.snapshots.forwarder_status()
    return cycle.measure(Metric.M3, status.cs.n_entries)


async def m4(cycle: Cycle) -> Logged[Measurement]:
    """Size statistics of the cached entries."""

    cs = (await cycle.snapshots.forwarder_status()).cs
    return cycle.measure(
        Metric.M4,
        {"min": cs.min_size, "max": cs.max_size, "avg": cs.average_size, "std_dev": cs.std_dev_size},
    )


async def m5(cycle: Cycle) -> Logged[Measurement]:
    """Forwarding strategy chosen for each namespace."""

    status = await cycle.snapshots.forwarder_status()
    return cycle.measure(Metric.M5, {choice.namespace: choice.strategy for choice in status.strategy_choices})


async def m6(cycle: Cycle) -> Logged[Measurement]:
    """Pending interests per face.

    Estimated as incoming interests minus outgoing data and nacks; the
    result may be negative.
    """

    status = await cycle.snapshots.forwarder_status()
    pending = {}
    for face in status.faces:
        counters = face.packet_counters
        pending[face.face_id] = (
            counters.incoming_packets.n_interests
            - counters.outgoing_packets.n_data
            - counters.outgoing_packets.n_nacks
        )
    return cycle.measure(Metric.M6, pending)


async def m7(cycle: Cycle) -> Logged[Measurement]:
    status = await cycle.snapshots.forwarder_status()
    return cycle.measure(Metric.M7, {face.face_id: face.interest_packet_size for face in status.faces})


async def m8(cycle: Cycle) -> Logged[Measurement]:
    status = await cycle.snapshots.forwarder_status()
    return cycle.measure(Metric.M8, {face.face_id: face.data_packet_size for face in status.faces})


async def m9(cycle: Cycle) -> Logged[Measurement]:
    status = await cycle.snapshots.forwarder_status()
    return cycle.measure(Metric.M9, {face.face_id: face.interest_packet_components for face in status.faces})


async def m10(cycle: Cycle) -> Logged[Measurement]:
    status = await cycle.snapshots.forwarder_status()
    return cycle.measure(Metric.M10, {face.face_id: face.data_packet_components for face in status.faces})


async def m11(cycle: Cycle) -> Logged[Measurement]:
    """Validity interval of every certified identity.

    Detail lookups run concurrently, each with its own timeout; any single
    failure fails the whole measurement.
    """

    certificates = await cycle.snapshots.certificate_list()
    identities = certificates.identities()
    details = await asyncio.gather(*(cycle.snapshots.certificate_detail(identity) for identity in identities))
    validity = {
        identity: (detail.not_before, detail.not_after) for identity, detail in zip(identities, details)
    }
    return cycle.measure(Metric.M11, validity)


async def m12(cycle: Cycle) -> Logged[Measurement]:
    """Name of the default certificate, if one is set."""

    certificates = await cycle.snapshots.certificate_list()
    return cycle.measure(Metric.M12, certificates.default_certificate())


async def m13(cycle: Cycle) -> Logged[Measurement]:
    """Total host memory in bytes."""

    return cycle.measure(Metric.M13, await cycle.snapshots.host_memory())


async def m14(cycle: Cycle) -> Logged[Measurement]:
    """Validly and invalidly signed packets found in the content store."""

    cs = (await cycle.snapshots.forwarder_status()).cs
    counts = SignatureCounts(valid=cs.valid_signature_packets, invalid=cs.invalid_signature_packets)
    return cycle.measure(Metric.M14, counts)


METRICS: Dict[Metric, MetricTask] = {
    Metric.M1: m1,
    Metric.M2: m2,
    Metric.M3: m3,
    Metric.M4: m4,
    Metric.M5: m5,
    Metric.M6: m6,
    Metric.M7: m7,
    Metric.M8: m8,
    Metric.M9: m9,
    Metric.M10: m10,
    Metric.M11: m11,
    Metric.M12: m12,
    Metric.M13: m13,
    Metric.M14: m14,
}


__all__ = ["METRICS", "MetricTask"] + [f"m{number}" for number in range(1, 15)]
