"""Parsers turning ``nfdc`` and ``ndnsec`` output into snapshot models."""
from __future__ import annotations

import re
import xml.etree.ElementTree as ElementTree
from datetime import datetime, timezone
from typing import Dict, List, Optional, Union

from pydantic import ValidationError

from .errors import MalformedResponse
from .snapshots import Certificate, CertificateDetail, CertificateList, ForwarderStatus

XmlValue = Union[str, Dict[str, object], List[object]]

_VALIDITY_PATTERN = re.compile(r"Not(Before|After):\s*(\d{8}T\d{6})")
_TIMESTAMP_FORMAT = "%Y%m%dT%H%M%S"


# ---------------------------------------------------------------------------
# nfdc status report xml
# ---------------------------------------------------------------------------


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _element_to_python(element: ElementTree.Element) -> XmlValue:
    children = list(element)
    if not children:
        return (element.text or "").strip()
    result: Dict[str, object] = {}
    for child in children:
        name = _local_name(child.tag)
        value = _element_to_python(child)
        if name in result:
            existing = result[name]
            if isinstance(existing, list):
                existing.append(value)
            else:
                result[name] = [existing, value]
        else:
            result[name] = value
    return result


def parse_forwarder_status(text: str) -> ForwarderStatus:
    """Parse the XML produced by ``nfdc status report xml``."""

    try:
        root = ElementTree.fromstring(text)
    except ElementTree.ParseError as exc:
        raise MalformedResponse("nfdc status report is not valid XML", detail=str(exc)) from exc
    payload = _element_to_python(root)
    if not isinstance(payload, dict):
        raise MalformedResponse("nfdc status report is empty")
    try:
        return ForwarderStatus.model_validate(payload)
    except ValidationError as exc:
        raise MalformedResponse("nfdc status report has an unexpected shape", detail=str(exc)) from exc


# ---------------------------------------------------------------------------
# ndnsec list -c
# ---------------------------------------------------------------------------


def parse_certificate_list(text: str) -> CertificateList:
    """Parse the identity/key/certificate tree printed by ``ndnsec list -c``.

    A certificate is flagged default when its identity, key and certificate
    are all marked with ``*``.
    """

    certificates: List[Certificate] = []
    identity: Optional[str] = None
    identity_default = False
    key: Optional[str] = None
    key_default = False
    key_indent: Optional[int] = None
    has_certificate = False

    def close_identity() -> None:
        if identity is not None and not has_certificate:
            certificates.append(Certificate(is_default=identity_default, identity=identity, key=key))

    for raw_line in text.splitlines():
        stripped = raw_line.strip()
        if not stripped:
            continue
        if stripped.startswith("+->"):
            if identity is None:
                raise MalformedResponse("ndnsec list output has a key before any identity", detail=raw_line)
            marked = stripped.startswith("+->*")
            name = stripped[4:].strip()
            indent = len(raw_line) - len(raw_line.lstrip())
            if key_indent is None or indent <= key_indent:
                key, key_default, key_indent = name, marked, indent
                continue
            certificates.append(
                Certificate(
                    is_default=identity_default and key_default and marked,
                    identity=identity,
                    key=key,
                    certificate=name,
                )
            )
            has_certificate = True
            continue
        close_identity()
        identity_default = stripped.startswith("*")
        identity = stripped.lstrip("*").strip()
        if not identity.startswith("/"):
            raise MalformedResponse("ndnsec list output has an invalid identity", detail=raw_line)
        key, key_default, key_indent, has_certificate = None, False, None, False
    close_identity()
    return CertificateList(certificates=certificates)


# ---------------------------------------------------------------------------
# ndnsec cert-dump -p
# ---------------------------------------------------------------------------


def _parse_timestamp(value: str) -> datetime:
    return datetime.strptime(value, _TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


def _section(lines: List[str], header: str) -> List[str]:
    try:
        start = lines.index(header) + 1
    except ValueError:
        return []
    body: List[str] = []
    for line in lines[start:]:
        if line.endswith(":") and not line.startswith(" ") and line.strip() == line:
            break
        body.append(line.strip())
    return [line for line in body if line]


def parse_certificate_detail(text: str) -> CertificateDetail:
    """Parse the pretty-printed certificate from ``ndnsec cert-dump -p``."""

    lines = [line.rstrip() for line in text.splitlines()]
    name_lines = _section(lines, "Certificate name:")
    if not name_lines:
        raise MalformedResponse("certificate dump has no certificate name")

    validity = dict(_VALIDITY_PATTERN.findall(text))
    if "Before" not in validity or "After" not in validity:
        raise MalformedResponse("certificate dump has no validity period")
    try:
        not_before = _parse_timestamp(validity["Before"])
        not_after = _parse_timestamp(validity["After"])
    except ValueError as exc:
        raise MalformedResponse("certificate dump has an invalid validity period", detail=str(exc)) from exc

    key_bits = "".join(_section(lines, "Public key bits:")) or None
    signature: Dict[str, str] = {}
    for line in _section(lines, "Signature Information:"):
        label, separator, value = line.partition(":")
        if separator:
            signature[label.strip()] = value.strip()

    return CertificateDetail(
        certificate_name=name_lines[0],
        not_before=not_before,
        not_after=not_after,
        public_key_bits=key_bits,
        signature_information=signature,
    )


__all__ = [
    "parse_certificate_detail",
    "parse_certificate_list",
    "parse_forwarder_status",
]
