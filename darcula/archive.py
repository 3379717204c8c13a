from __future__ import annotations

import hashlib
import json
import logging
import struct
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Iterator, NamedTuple, Union

from .errors import FormatError, NotFoundError

LOGGER = logging.getLogger(__name__)

INTEGRITY_ALGORITHM = "SHA256"
INTEGRITY_BLOCK_SIZE = 4 * 1024 * 1024

# The asar format uses a subset of Chromium's Pickle serialisation.
# Layout: [uint32 data_size=4][uint32 header_size][uint32 header_object_size]
#         [uint32 header_string_size][<header_string_size bytes of JSON>…]
PRELUDE = struct.Struct("<4I")
_PICKLE_SIZE_FIELD = 4
_MAX_UINT64 = 2**64 - 1


def _round_up(i: int, m: int) -> int:
    return (i + m - 1) & ~(m - 1)


def _sha256(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class Prelude(NamedTuple):
    header_size: int
    header_object_size: int
    header_string_size: int

    @property
    def header_end(self) -> int:
        return PRELUDE.size + self.header_string_size

    @property
    def data_offset(self) -> int:
        return 8 + self.header_size


def read_prelude(data: bytes) -> Prelude:
    """Decode the fixed 16-byte prelude of an asar container.

    Raises:
        FormatError: If *data* is too small, the size field is not 4, or the
                     declared header runs past the end of *data*.
    """
    if len(data) < PRELUDE.size:
        raise FormatError("Invalid asar: too small")
    data_size, header_size, header_object_size, header_string_size = (
        PRELUDE.unpack_from(data, 0)
    )
    if data_size != _PICKLE_SIZE_FIELD:
        raise FormatError(f"Invalid asar: unexpected size field {data_size}")
    prelude = Prelude(header_size, header_object_size, header_string_size)
    if prelude.header_end > len(data):
        raise FormatError("Invalid asar: header length exceeds file size")
    return prelude


# ------------------------------------------------------------------ #
#  Header tree                                                         #
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class IntegrityRecord:
    """Per-entry digests Electron checks when it loads a packed file."""

    algorithm: str
    hash: str
    block_size: int
    blocks: list[str]

    @classmethod
    def from_json(cls, obj: Any, path: str) -> IntegrityRecord:
        try:
            return cls(
                algorithm=str(obj["algorithm"]),
                hash=str(obj["hash"]),
                block_size=int(obj["blockSize"]),
                blocks=[str(b) for b in obj["blocks"]],
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise FormatError(f"Invalid integrity record for {path}: {exc}") from exc

    def to_json(self) -> dict[str, Any]:
        return {
            "algorithm": self.algorithm,
            "hash": self.hash,
            "blockSize": self.block_size,
            "blocks": list(self.blocks),
        }


def compute_integrity(data: bytes) -> IntegrityRecord:
    """Hash *data* as a whole and in ``INTEGRITY_BLOCK_SIZE`` chunks."""
    blocks = [
        _sha256(data[i : i + INTEGRITY_BLOCK_SIZE])
        for i in range(0, len(data), INTEGRITY_BLOCK_SIZE)
    ]
    return IntegrityRecord(
        algorithm=INTEGRITY_ALGORITHM,
        hash=_sha256(data),
        block_size=INTEGRITY_BLOCK_SIZE,
        blocks=blocks,
    )


@dataclass(frozen=True)
class FileNode:
    """A regular file.  ``offset`` is ``None`` for unpacked files."""

    size: int
    offset: int | None = None
    integrity: IntegrityRecord | None = None
    unpacked: bool = False
    extra: dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> dict[str, Any]:
        out: dict[str, Any] = {"size": self.size}
        if self.offset is not None:
            out["offset"] = str(self.offset)
        if self.unpacked:
            out["unpacked"] = True
        if self.integrity is not None:
            out["integrity"] = self.integrity.to_json()
        out.update(self.extra)
        return out


@dataclass(frozen=True)
class LinkNode:
    """A symbolic link; carries no data of its own."""

    link: str
    extra: dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> dict[str, Any]:
        return {"link": self.link, **self.extra}


@dataclass(frozen=True)
class DirectoryNode:
    children: dict[str, Node]
    extra: dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> dict[str, Any]:
        files = {name: child.to_json() for name, child in self.children.items()}
        return {"files": files, **self.extra}


Node = Union[DirectoryNode, FileNode, LinkNode]

_FILE_KEYS = frozenset({"size", "offset", "integrity", "unpacked"})


def _parse_uint(value: Any, what: str, path: str) -> int:
    """Accept a JSON number or a decimal string, as asar writers emit both."""
    if isinstance(value, bool):
        raise FormatError(f"Invalid {what} for {path}: {value!r}")
    if isinstance(value, int):
        number = value
    elif isinstance(value, str) and value.isascii() and value.isdigit():
        number = int(value)
    else:
        raise FormatError(f"Invalid {what} for {path}: {value!r}")
    if not 0 <= number <= _MAX_UINT64:
        raise FormatError(f"Invalid {what} for {path}: {value!r}")
    return number


def _parse_node(obj: Any, path: str) -> Node:
    if not isinstance(obj, dict):
        raise FormatError(f"Invalid header node for {path or '/'}")

    if "files" in obj:
        files = obj["files"]
        if not isinstance(files, dict):
            raise FormatError(f"Invalid directory listing for {path or '/'}")
        children = {
            name: _parse_node(child, f"{path}/{name}" if path else name)
            for name, child in files.items()
        }
        extra = {k: v for k, v in obj.items() if k != "files"}
        return DirectoryNode(children, extra)

    if "link" in obj:
        extra = {k: v for k, v in obj.items() if k != "link"}
        return LinkNode(str(obj["link"]), extra)

    if "size" in obj:
        unpacked = obj.get("unpacked") is True
        offset = None
        if "offset" in obj:
            offset = _parse_uint(obj["offset"], "offset", path)
        elif not unpacked:
            raise FormatError(f"Missing offset for {path}")
        integrity = None
        if obj.get("integrity") is not None:
            integrity = IntegrityRecord.from_json(obj["integrity"], path)
        extra = {k: v for k, v in obj.items() if k not in _FILE_KEYS}
        return FileNode(
            size=_parse_uint(obj["size"], "size", path),
            offset=offset,
            integrity=integrity,
            unpacked=unpacked,
            extra=extra,
        )

    raise FormatError(f"Unknown header node for {path}")


def iter_leaves(node: DirectoryNode, prefix: str = "") -> Iterator[tuple[str, Node]]:
    """Yield ``(path, node)`` for every non-directory node, depth first."""
    for name, child in node.children.items():
        path = f"{prefix}/{name}" if prefix else name
        if isinstance(child, DirectoryNode):
            yield from iter_leaves(child, path)
        else:
            yield path, child


# ------------------------------------------------------------------ #
#  Codec                                                               #
# ------------------------------------------------------------------ #


def parse(data: bytes) -> tuple[DirectoryNode, int]:
    """Decode the header of an asar container.

    Args:
        data: The complete container.

    Returns:
        The root directory node and the absolute offset of the data region.

    Raises:
        FormatError: If the prelude or the header JSON is malformed.
    """
    prelude = read_prelude(data)
    data_offset = prelude.data_offset
    if not prelude.header_end <= data_offset <= len(data):
        raise FormatError("Invalid asar: header size does not match header length")

    raw = data[PRELUDE.size : prelude.header_end]
    try:
        obj = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise FormatError(f"Invalid asar header: {exc}") from exc
    if not isinstance(obj, dict) or not isinstance(obj.get("files"), dict):
        raise FormatError("Invalid asar header: missing root 'files'")

    root = _parse_node(obj, "")
    if not isinstance(root, DirectoryNode):
        raise FormatError("Invalid asar header: root is not a directory")
    LOGGER.debug("Parsed asar header: %d bytes, data at %d", len(raw), data_offset)
    return root, data_offset


def extract_entries(
    data: bytes, header: DirectoryNode, data_offset: int
) -> dict[str, bytes]:
    """Slice every packed file out of *data*.

    Unpacked files live in the sibling ``.unpacked`` directory and links have
    no payload, so neither appears in the result.

    Raises:
        FormatError: If an entry's byte range lies outside *data*.
    """
    entries: dict[str, bytes] = {}
    for path, node in iter_leaves(header):
        if not isinstance(node, FileNode) or node.unpacked:
            continue
        start = data_offset + node.offset
        end = start + node.size
        if end > len(data):
            raise FormatError(f"Invalid entry offsets for {path}")
        entries[path] = data[start:end]
    return entries


def _rebuild_node(
    node: DirectoryNode,
    entries: dict[str, bytes],
    chunks: list[bytes],
    counter: list[int],
    prefix: str = "",
) -> DirectoryNode:
    children: dict[str, Node] = {}
    for name, child in node.children.items():
        path = f"{prefix}/{name}" if prefix else name
        if isinstance(child, DirectoryNode):
            children[name] = _rebuild_node(child, entries, chunks, counter, path)
        elif isinstance(child, FileNode) and not child.unpacked:
            content = entries.get(path)
            if content is None:
                raise FormatError(f"Missing data for file: {path}")
            children[name] = replace(
                child,
                offset=counter[0],
                size=len(content),
                integrity=compute_integrity(content),
            )
            chunks.append(content)
            counter[0] += len(content)
        else:
            children[name] = child
    return replace(node, children=children)


def rebuild(header: DirectoryNode, entries: dict[str, bytes]) -> bytes:
    """Serialise *header* and *entries* into a new asar container.

    Packed files are laid out contiguously in header traversal order, their
    offsets, sizes and integrity records are recomputed.  Unpacked files and
    links are copied through unchanged.

    Raises:
        FormatError: If a packed file in *header* has no data in *entries*.
    """
    chunks: list[bytes] = []
    new_header = _rebuild_node(header, entries, chunks, [0])

    header_json = json.dumps(
        new_header.to_json(), separators=(",", ":"), ensure_ascii=False
    ).encode("utf-8")
    header_string_size = len(header_json)
    aligned_size = _round_up(header_string_size, _PICKLE_SIZE_FIELD)
    header_size = aligned_size + 8
    header_object_size = aligned_size + _PICKLE_SIZE_FIELD
    padding = b"\x00" * (aligned_size - header_string_size)

    prelude = PRELUDE.pack(
        _PICKLE_SIZE_FIELD, header_size, header_object_size, header_string_size
    )
    LOGGER.debug("Rebuilt asar: %d entries, %d data bytes", len(chunks), sum(map(len, chunks)))
    return b"".join([prelude, header_json, padding, *chunks])


# ------------------------------------------------------------------ #
#  Archive object                                                      #
# ------------------------------------------------------------------ #


class AsarArchive:
    """An asar container held in memory for an edit session."""

    def __init__(
        self,
        header: DirectoryNode,
        entries: dict[str, bytes],
        filename: Path | None = None,
    ) -> None:
        """Initialise a new AsarArchive instance.

        Args:
            header:   Parsed header tree.
            entries:  Packed file payloads keyed by archive-relative path.
            filename: Where the archive was read from, if anywhere.
        """
        self.header = header
        self.entries = entries
        self.filename = Path(filename) if filename is not None else None

    @classmethod
    def from_bytes(cls, data: bytes, filename: Path | str | None = None) -> AsarArchive:
        header, data_offset = parse(data)
        entries = extract_entries(data, header, data_offset)
        return cls(header, entries, filename)

    @classmethod
    def open(cls, filename: Path | str) -> AsarArchive:
        """Read a *.asar file and return a new :class:`AsarArchive` instance."""
        path = Path(filename)
        return cls.from_bytes(path.read_bytes(), path)

    def list_files(self) -> list[str]:
        """Return a sorted list of all file and link paths in the archive."""
        return sorted(path for path, _ in iter_leaves(self.header))

    def read(self, archive_path: str) -> bytes:
        """Return the payload of a packed file.

        Raises:
            NotFoundError: If *archive_path* is not a packed file.
        """
        try:
            return self.entries[archive_path]
        except KeyError:
            raise NotFoundError(f"'{archive_path}' not found in archive") from None

    def replace(self, archive_path: str, data: bytes) -> None:
        """Swap the payload of an existing packed file."""
        if archive_path not in self.entries:
            raise NotFoundError(f"'{archive_path}' not found in archive")
        self.entries[archive_path] = data
        LOGGER.debug("Replaced %s (%d bytes)", archive_path, len(data))

    def to_bytes(self) -> bytes:
        return rebuild(self.header, self.entries)
