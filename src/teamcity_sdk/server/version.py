"""
TeamCity version discovery.

The display version lives in ``serverVersion.properties.xml``, a Java XML
properties document packaged at the root of ``common-api.jar`` inside the
server web application.
"""

from __future__ import annotations

import logging
import zipfile
from pathlib import Path
from xml.etree import ElementTree

from .errors import InstallationUnreadableError, MetadataMissingError

__all__ = [
    "METADATA_ARCHIVE",
    "VERSION_RESOURCE",
    "DISPLAY_VERSION_KEY",
    "metadata_archive_path",
    "parse_xml_properties",
    "read_server_version",
]

logger = logging.getLogger(__name__)

METADATA_ARCHIVE = Path("webapps", "ROOT", "WEB-INF", "lib", "common-api.jar")
VERSION_RESOURCE = "serverVersion.properties.xml"
DISPLAY_VERSION_KEY = "Display_Version"


def metadata_archive_path(install_dir: Path) -> Path:
    return Path(install_dir) / METADATA_ARCHIVE


def parse_xml_properties(data: bytes) -> dict[str, str]:
    """Parse a ``java.util.Properties`` XML document into a dict."""
    root = ElementTree.fromstring(data)
    if root.tag != "properties":
        raise ValueError(f"unexpected root element <{root.tag}>")
    properties: dict[str, str] = {}
    for entry in root.iter("entry"):
        key = entry.get("key")
        if key is None:
            continue
        properties[key] = entry.text or ""
    return properties


def read_server_version(install_dir: Path) -> str:
    """
    Read the display version of the TeamCity installed in ``install_dir``.

    Raises:
        InstallationUnreadableError: The metadata archive is absent or not a regular file.
        MetadataMissingError: The archive lacks the version resource, or the
            resource cannot be parsed or has no display version entry.
    """
    install_dir = Path(install_dir)
    archive = metadata_archive_path(install_dir)
    if not archive.is_file():
        raise InstallationUnreadableError(archive.absolute(), install_dir)

    try:
        with zipfile.ZipFile(archive) as jar:
            try:
                with jar.open(VERSION_RESOURCE) as stream:
                    data = stream.read()
            except KeyError:
                raise MetadataMissingError(archive, VERSION_RESOURCE) from None
    except zipfile.BadZipFile as exc:
        raise MetadataMissingError(archive, VERSION_RESOURCE, f"not a valid archive ({exc})") from exc

    try:
        properties = parse_xml_properties(data)
    except (ElementTree.ParseError, ValueError) as exc:
        raise MetadataMissingError(archive, VERSION_RESOURCE, f"malformed properties ({exc})") from exc

    version = properties.get(DISPLAY_VERSION_KEY)
    if version is None:
        raise MetadataMissingError(archive, VERSION_RESOURCE, f"no [{DISPLAY_VERSION_KEY}] entry")

    logger.debug("TeamCity version at [%s] is [%s]", install_dir, version)
    return version
