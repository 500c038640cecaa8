"""Codec for .NET ``.resx`` XML resource files."""
from __future__ import annotations

import io
import re
import xml.etree.ElementTree as ET
from typing import Dict, List, Optional, Tuple

from .base import Entries, ResourceEntry, ResourceFormatError

_XML_SPACE = "{http://www.w3.org/XML/1998/namespace}space"
_XML_DECLARATION = '<?xml version="1.0" encoding="utf-8"?>'
_DECLARATION_RE = re.compile(r"^\s*(<\?xml[^>]*\?>)")

_RESHEADERS = (
    ("resmimetype", "text/microsoft-resx"),
    ("version", "2.0"),
    (
        "reader",
        "System.Resources.ResXResourceReader, System.Windows.Forms, Version=4.0.0.0, "
        "Culture=neutral, PublicKeyToken=b77a5c561934e089",
    ),
    (
        "writer",
        "System.Resources.ResXResourceWriter, System.Windows.Forms, Version=4.0.0.0, "
        "Culture=neutral, PublicKeyToken=b77a5c561934e089",
    ),
)


def _parse(text: str, *, keep_comments: bool = False) -> ET.Element:
    parser = ET.XMLParser(target=ET.TreeBuilder(insert_comments=keep_comments))
    try:
        parser.feed(text)
        return parser.close()
    except ET.ParseError as exc:
        raise ResourceFormatError(f"invalid resx document: {exc}") from exc


def _declared_namespaces(text: str) -> List[Tuple[str, str]]:
    try:
        return [
            (prefix, uri)
            for _, (prefix, uri) in ET.iterparse(io.StringIO(text), events=("start-ns",))
            if prefix
        ]
    except ET.ParseError as exc:
        raise ResourceFormatError(f"invalid resx document: {exc}") from exc


def _register_namespaces(text: str) -> None:
    # ElementTree renames prefixes it does not know (xsd -> xs, msdata -> ns1).
    for prefix, uri in _declared_namespaces(text):
        try:
            ET.register_namespace(prefix, uri)
        except ValueError:
            continue


def _declaration(template: Optional[str]) -> str:
    match = _DECLARATION_RE.match(template or "")
    return (match.group(1) if match else _XML_DECLARATION) + "\n"


def _new_document() -> ET.Element:
    root = ET.Element("root")
    for name, value in _RESHEADERS:
        header = ET.SubElement(root, "resheader", {"name": name})
        ET.SubElement(header, "value").text = value
    return root


def _set_comment(element: ET.Element, comment: Optional[str]) -> None:
    current = element.find("comment")
    if comment:
        if current is None:
            current = ET.SubElement(element, "comment")
        current.text = comment
    elif current is not None:
        element.remove(current)


class ResxCodec:
    format_hint = ".resx"

    def extract(self, text: str) -> Entries:
        root = _parse(text)
        entries: Entries = {}
        for element in root.findall("data"):
            key = element.get("name")
            if not key:
                continue
            value_element = element.find("value")
            comment_element = element.find("comment")
            entries[key] = ResourceEntry(
                value=(value_element.text or "") if value_element is not None else "",
                comment=comment_element.text if comment_element is not None else None,
            )
        return entries

    def serialize(self, entries: Entries, *, template: Optional[str] = None) -> str:
        """Render ``entries`` as resx XML.

        With a ``template`` the existing document is updated in place so headers,
        schema blocks, XML comments, namespace prefixes, the XML declaration and
        the original key order survive. Keys missing from ``entries`` are
        dropped and new keys are appended at the end.
        """

        if template:
            _register_namespaces(template)
            root = _parse(template, keep_comments=True)
        else:
            root = _new_document()
        seen: Dict[str, bool] = {}
        for element in list(root.findall("data")):
            key = element.get("name")
            if not key:
                continue
            entry = entries.get(key)
            if entry is None:
                root.remove(element)
                continue
            value_element = element.find("value")
            if value_element is None:
                value_element = ET.SubElement(element, "value")
            value_element.text = entry.value
            _set_comment(element, entry.comment)
            seen[key] = True

        for key, entry in entries.items():
            if key in seen:
                continue
            element = ET.SubElement(root, "data", {"name": key, _XML_SPACE: "preserve"})
            ET.SubElement(element, "value").text = entry.value
            _set_comment(element, entry.comment)

        ET.indent(root, space="  ")
        return _declaration(template) + ET.tostring(root, encoding="unicode") + "\n"


__all__ = ["ResxCodec"]
