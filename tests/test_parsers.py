from __future__ import annotations

import math
from datetime import datetime, timezone

import pytest

from fakes import ROOT  # noqa: F401

from ndn_certifier.errors import MalformedResponse
from ndn_certifier.parsers import parse_certificate_detail, parse_certificate_list, parse_forwarder_status

STATUS_XML = """<?xml version="1.0"?>
<nfdStatus xmlns="ndn:/localhost/nfd/status/1">
  <generalStatus>
    <version>22.12</version>
    <nNameTreeEntries>12</nNameTreeEntries>
    <nPitEntries>3</nPitEntries>
    <packetCounters>
      <incomingPackets><nInterests>100</nInterests><nData>80</nData><nNacks>0</nNacks></incomingPackets>
      <outgoingPackets><nInterests>90</nInterests><nData>85</nData><nNacks>1</nNacks></outgoingPackets>
    </packetCounters>
  </generalStatus>
  <channels><channel><localUri>udp4://0.0.0.0:6363</localUri></channel></channels>
  <faces>
    <face>
      <faceId>1</faceId>
      <remoteUri>internal://</remoteUri>
      <localUri>internal://</localUri>
      <faceScope>local</faceScope>
      <facePersistency>permanent</facePersistency>
      <linkType>point-to-point</linkType>
      <mtu>8800</mtu>
      <flags/>
      <packetCounters>
        <incomingPackets><nInterests>20</nInterests><nData>0</nData><nNacks>0</nNacks></incomingPackets>
        <outgoingPackets><nInterests>0</nInterests><nData>15</nData><nNacks>2</nNacks></outgoingPackets>
      </packetCounters>
      <byteCounters><incomingBytes>0</incomingBytes><outgoingBytes>0</outgoingBytes></byteCounters>
      <interestPacketSize><min>12</min><max>64</max><avg>33.5</avg><stdDev>4.2</stdDev></interestPacketSize>
      <dataPacketSize><min>0</min><max>0</max><avg>-nan</avg><stdDev>-nan</stdDev></dataPacketSize>
      <interestPacketComponents><min>3</min><max>7</max><avg>4.5</avg><stdDev>1.1</stdDev></interestPacketComponents>
      <dataPacketComponents><min>0</min><max>0</max><avg>nan</avg><stdDev>nan</stdDev></dataPacketComponents>
    </face>
  </faces>
  <fib/>
  <cs>
    <capacity>65536</capacity>
    <admitEnabled/>
    <serveEnabled/>
    <nEntries>120</nEntries>
    <nHits>7</nHits>
    <nMisses>40</nMisses>
    <policyName>lru</policyName>
    <minSize>300</minSize>
    <maxSize>1400</maxSize>
    <averageSize>712.25</averageSize>
    <stdDevSize>88.1</stdDevSize>
    <validSignaturePackets>118</validSignaturePackets>
    <invalidSignaturePackets>2</invalidSignaturePackets>
  </cs>
  <strategyChoices>
    <strategyChoice>
      <namespace>/</namespace>
      <strategy><name>/localhost/nfd/strategy/best-route/v=5</name></strategy>
    </strategyChoice>
    <strategyChoice>
      <namespace>/localhost</namespace>
      <strategy><name>/localhost/nfd/strategy/multicast/v=4</name></strategy>
    </strategyChoice>
  </strategyChoices>
</nfdStatus>
"""

CERT_LIST = """\
* /ndn/site/alice
  +->* /ndn/site/alice/KEY/%8E%1F
       +->* /ndn/site/alice/KEY/%8E%1F/self/v=1700000000000

  /ndn/site/bob
  +->* /ndn/site/bob/KEY/%01
       +->  /ndn/site/bob/KEY/%01/NA/v=1
       +->* /ndn/site/bob/KEY/%01/self/v=2

  /ndn/site/empty
"""

CERT_DUMP = """\
Certificate name:
  /ndn/site/alice/KEY/%8E%1F/self/v=1700000000000
Validity:
  NotBefore: 20240101T000000
  NotAfter: 20250101T235959
Public key bits:
  MFkwEwYHKoZIzj0CAQYIKoZIzj0DAQcDQgAE
  q2lTLXv3Q8Vh1oZK
Signature Information:
  Signature Type: SignatureSha256WithEcdsa
  Key Locator: Self-Signed Name=/ndn/site/alice/KEY/%8E%1F
"""


def test_parse_forwarder_status() -> None:
    status = parse_forwarder_status(STATUS_XML)
    assert status.general_status.version == "22.12"
    assert status.general_status.packet_counters.outgoing_packets.n_nacks == 1
    assert status.cs.capacity == 65536
    assert status.cs.n_entries == 120
    assert status.cs.policy_name == "lru"
    assert status.cs.invalid_signature_packets == 2

    (face,) = status.faces
    assert face.face_id == 1
    assert face.packet_counters.outgoing_packets.n_data == 15
    assert face.interest_packet_size.min == 12
    assert face.interest_packet_size.std_dev == pytest.approx(4.2)
    assert math.isnan(face.data_packet_size.avg)
    assert math.isnan(face.data_packet_components.std_dev)

    assert [(choice.namespace, choice.strategy) for choice in status.strategy_choices] == [
        ("/", "/localhost/nfd/strategy/best-route/v=5"),
        ("/localhost", "/localhost/nfd/strategy/multicast/v=4"),
    ]


def test_parse_forwarder_status_without_faces() -> None:
    xml = """<nfdStatus><faces/><cs><capacity>10</capacity><nEntries>0</nEntries>
    <policyName>priority_fifo</policyName></cs></nfdStatus>"""
    status = parse_forwarder_status(xml)
    assert status.faces == []
    assert status.strategy_choices == []
    assert math.isnan(status.cs.average_size)


@pytest.mark.parametrize(
    "text",
    ["", "<nfdStatus>", "<nfdStatus><faces/></nfdStatus>", "<nfdStatus><cs><capacity>lots</capacity></cs></nfdStatus>"],
)
def test_parse_forwarder_status_rejects_bad_input(text: str) -> None:
    with pytest.raises(MalformedResponse):
        parse_forwarder_status(text)


def test_parse_certificate_list() -> None:
    certificates = parse_certificate_list(CERT_LIST)
    assert certificates.identities() == ["/ndn/site/alice", "/ndn/site/bob"]
    assert certificates.default_certificate() == "/ndn/site/alice/KEY/%8E%1F/self/v=1700000000000"

    bob = [cert for cert in certificates.certificates if cert.identity == "/ndn/site/bob"]
    assert [cert.certificate for cert in bob] == [
        "/ndn/site/bob/KEY/%01/NA/v=1",
        "/ndn/site/bob/KEY/%01/self/v=2",
    ]
    assert not any(cert.is_default for cert in bob)

    empty = [cert for cert in certificates.certificates if cert.identity == "/ndn/site/empty"]
    assert len(empty) == 1 and empty[0].certificate is None


def test_parse_certificate_list_rejects_orphan_key() -> None:
    with pytest.raises(MalformedResponse):
        parse_certificate_list("  +->* /ndn/KEY/1\n")


def test_parse_certificate_detail() -> None:
    detail = parse_certificate_detail(CERT_DUMP)
    assert detail.certificate_name == "/ndn/site/alice/KEY/%8E%1F/self/v=1700000000000"
    assert detail.not_before == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert detail.not_after == datetime(2025, 1, 1, 23, 59, 59, tzinfo=timezone.utc)
    assert detail.public_key_bits == "MFkwEwYHKoZIzj0CAQYIKoZIzj0DAQcDQgAEq2lTLXv3Q8Vh1oZK"
    assert detail.signature_information["Signature Type"] == "SignatureSha256WithEcdsa"
    assert detail.signature_information["Key Locator"] == "Self-Signed Name=/ndn/site/alice/KEY/%8E%1F"


@pytest.mark.parametrize(
    "text",
    [
        "",
        "Certificate name:\n  /ndn/a\nValidity:\n  NotBefore: 20240101T000000\n",
        "Certificate name:\n  /ndn/a\nValidity:\n  NotBefore: 20241301T000000\n  NotAfter: 20250101T000000\n",
    ],
)
def test_parse_certificate_detail_rejects_bad_input(text: str) -> None:
    with pytest.raises(MalformedResponse):
        parse_certificate_detail(text)
