"""Pydantic models for the snapshots read from the forwarder and keychain."""

from __future__ import annotations

import math
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class _Snapshot(BaseModel):
    """Base model accepting both camelCase (wire) and snake_case names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


def _unwrap_list(value: Any, key: str) -> Any:
    # nfdc nests repeated elements as {"faces": {"face": [...]}}
    if isinstance(value, dict):
        value = value.get(key, [])
    if value is None or value == "":
        return []
    if isinstance(value, dict):
        return [value]
    return value


def _nan_or_value(value: Any) -> Any:
    # persisted tables store NaN as null
    if value is None:
        return math.nan
    if isinstance(value, str) and value.strip().lower() in {"nan", "-nan", "+nan"}:
        return math.nan
    return value


class PacketStatistics(_Snapshot):
    """Minimum, maximum, mean and standard deviation of a packet quantity."""

    min: int = Field(default=0, description="Smallest observed value")
    max: int = Field(default=0, description="Largest observed value")
    avg: float = Field(default=math.nan, description="Mean value, NaN without traffic")
    std_dev: float = Field(default=math.nan, description="Standard deviation, NaN without traffic")

    @field_validator("avg", "std_dev", mode="before")
    @classmethod
    def _parse_nan(cls, value: Any) -> Any:
        return _nan_or_value(value)


class PacketCountersEntry(_Snapshot):
    n_interests: int = 0
    n_data: int = 0
    n_nacks: int = 0


class PacketCounters(_Snapshot):
    incoming_packets: PacketCountersEntry = Field(default_factory=PacketCountersEntry)
    outgoing_packets: PacketCountersEntry = Field(default_factory=PacketCountersEntry)


class GeneralStatus(_Snapshot):
    """General NFD status block."""

    version: str = ""
    start_time: Optional[str] = None
    current_time: Optional[str] = None
    uptime: Optional[str] = None
    n_name_tree_entries: int = 0
    n_fib_entries: int = 0
    n_pit_entries: int = 0
    n_measurements_entries: int = 0
    n_cs_entries: int = 0
    packet_counters: PacketCounters = Field(default_factory=PacketCounters)
    n_satisfied_interests: int = 0
    n_unsatisfied_interests: int = 0


class Face(_Snapshot):
    """A single forwarder face with its counters and packet statistics."""

    face_id: int
    remote_uri: str = ""
    local_uri: str = ""
    face_scope: Optional[str] = None
    face_persistency: Optional[str] = None
    link_type: Optional[str] = None
    mtu: Optional[int] = None
    packet_counters: PacketCounters = Field(default_factory=PacketCounters)
    interest_packet_size: PacketStatistics = Field(default_factory=PacketStatistics)
    data_packet_size: PacketStatistics = Field(default_factory=PacketStatistics)
    interest_packet_components: PacketStatistics = Field(default_factory=PacketStatistics)
    data_packet_components: PacketStatistics = Field(default_factory=PacketStatistics)


class ContentStore(_Snapshot):
    """Content store (CS) section of the forwarder status."""

    capacity: int
    n_entries: int
    n_hits: int = 0
    n_misses: int = 0
    policy_name: str
    min_size: int = 0
    max_size: int = 0
    average_size: float = math.nan
    std_dev_size: float = math.nan
    valid_signature_packets: int = 0
    invalid_signature_packets: int = 0

    @field_validator("average_size", "std_dev_size", mode="before")
    @classmethod
    def _parse_nan(cls, value: Any) -> Any:
        return _nan_or_value(value)


class StrategyChoice(_Snapshot):
    namespace: str
    strategy: str

    @field_validator("strategy", mode="before")
    @classmethod
    def _strategy_name(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return value.get("name", "")
        return value


class ForwarderStatus(_Snapshot):
    """Parsed output of ``nfdc status report``."""

    general_status: GeneralStatus = Field(default_factory=GeneralStatus)
    faces: List[Face] = Field(default_factory=list)
    cs: ContentStore
    strategy_choices: List[StrategyChoice] = Field(default_factory=list)

    @field_validator("faces", mode="before")
    @classmethod
    def _faces(cls, value: Any) -> Any:
        return _unwrap_list(value, "face")

    @field_validator("strategy_choices", mode="before")
    @classmethod
    def _strategy_choices(cls, value: Any) -> Any:
        return _unwrap_list(value, "strategyChoice")


class Certificate(_Snapshot):
    """One identity/key/certificate triple from ``ndnsec list -c``."""

    is_default: bool = False
    identity: str
    key: Optional[str] = None
    certificate: Optional[str] = None


class CertificateList(_Snapshot):
    certificates: List[Certificate] = Field(default_factory=list)

    def identities(self) -> List[str]:
        """Return the distinct certified identities in listing order."""

        return list(dict.fromkeys(cert.identity for cert in self.certificates if cert.certificate))

    def default_certificate(self) -> Optional[str]:
        for cert in self.certificates:
            if cert.is_default and cert.certificate:
                return cert.certificate
        return None


class CertificateDetail(_Snapshot):
    """Parsed output of ``ndnsec cert-dump -p``."""

    certificate_name: str
    not_before: datetime
    not_after: datetime
    public_key_bits: Optional[str] = None
    signature_information: dict[str, str] = Field(default_factory=dict)


class SignatureCounts(_Snapshot):
    """Validly and invalidly signed packets currently cached."""

    valid: int
    invalid: int


__all__ = [
    "Certificate",
    "CertificateDetail",
    "CertificateList",
    "ContentStore",
    "Face",
    "ForwarderStatus",
    "GeneralStatus",
    "PacketCounters",
    "PacketCountersEntry",
    "PacketStatistics",
    "SignatureCounts",
    "StrategyChoice",
]
