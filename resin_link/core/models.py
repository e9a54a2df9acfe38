"""Domain models shared by the backend clients, the mapper and the provider."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Mapping, Optional

from .utils import (
    first_present,
    parse_bool,
    parse_duration_seconds,
    parse_float,
    parse_int,
)

# Keys under which NanoDLP installs nest the active plate in /status.
_FILE_KEYS = (
    "file",
    "File",
    "plate",
    "Plate",
    "file_data",
    "FileData",
    "fileData",
    "current_file",
    "CurrentFile",
    "job",
    "Job",
)


class PrinterStatus(str, Enum):
    """Canonical printer status labels shared by every backend."""

    IDLE = "Idle"
    PRINTING = "Printing"
    PAUSING = "Pausing"
    PAUSED = "Paused"
    CANCELING = "Canceling"
    CANCELED = "Canceled"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, value: Any) -> "PrinterStatus":
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower()
        for member in cls:
            if member.value.lower() == text:
                return member
        if text == "cancelled":
            return cls.CANCELED
        if text == "cancelling":
            return cls.CANCELING
        return cls.UNKNOWN


@dataclass(slots=True, frozen=True)
class FileRef:
    """A plate/file known to the backend."""

    path: str
    name: str
    layer_count: Optional[int] = None
    print_time_seconds: Optional[float] = None
    plate_id: Optional[int] = None
    preview_available: bool = False
    last_modified: Optional[int] = None
    file_size: Optional[int] = None
    parent_path: str = ""

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> "FileRef":
        path = first_present(data, "path", "Path", "file_path", "File")
        name = first_present(data, "name", "Name")
        path = str(path) if path is not None else None
        name = str(name) if name is not None else None
        if name is None and path:
            name = path.rsplit("/", 1)[-1]
        if path is None and name is not None:
            path = name
        resolved_path = path or ""
        parent_path = first_present(data, "parent_path", "parentPath")
        parent = str(parent_path) if parent_path else ""
        if not parent and "/" in resolved_path:
            parent = resolved_path.rsplit("/", 1)[0]

        return cls(
            path=resolved_path,
            name=name or resolved_path,
            layer_count=parse_int(
                first_present(data, "layer_count", "LayerCount", "layerCount")
            ),
            print_time_seconds=parse_duration_seconds(
                first_present(data, "print_time", "printTime", "PrintTime")
            ),
            plate_id=parse_int(first_present(data, "PlateID", "plate_id", "plateId")),
            preview_available=parse_bool(
                first_present(data, "Preview", "preview", "HasPreview")
            ),
            last_modified=parse_int(
                first_present(
                    data,
                    "last_modified",
                    "LastModified",
                    "Updated",
                    "UpdatedOn",
                    "CreatedDate",
                )
            ),
            file_size=parse_int(
                first_present(data, "file_size", "FileSize", "size", "Size")
            ),
            parent_path=parent,
        )

    def to_file_entry(self, location: str = "Local") -> dict[str, Any]:
        """Render the entry in the shape the file browser consumes."""
        entry: dict[str, Any] = {
            "file_data": {
                "path": self.path,
                "name": self.name,
                "last_modified": self.last_modified or 0,
                "parent_path": self.parent_path,
                "file_size": self.file_size,
            },
            "location_category": location,
            "print_time": self.print_time_seconds or 0.0,
            "layer_count": self.layer_count or 0,
            "preview_available": self.preview_available,
        }
        if self.plate_id is not None:
            entry["plate_id"] = self.plate_id
        return entry


@dataclass(slots=True, frozen=True)
class RawStatus:
    """One decoded NanoDLP /status snapshot."""

    printing: bool = False
    paused: bool = False
    state: str = "idle"
    state_code: Optional[int] = None
    layer_id: Optional[int] = None
    layers_count: Optional[int] = None
    current_height: Optional[int] = None
    curing: bool = False
    file: Optional[FileRef] = None
    plate_id: Optional[int] = None
    homed: Optional[bool] = None
    z_offset: Optional[float] = None
    status_message: Optional[str] = None

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> "RawStatus":
        file_ref: Optional[FileRef] = None
        for key in _FILE_KEYS:
            value = data.get(key)
            if isinstance(value, Mapping):
                file_ref = FileRef.from_json(value)
                break

        printing = (
            data.get("Printing") is True
            or data.get("printing") is True
            or parse_int(first_present(data, "Started", "started")) == 1
        )
        paused = data.get("Paused") is True or data.get("paused") is True
        if printing:
            state = "printing"
        elif paused:
            state = "paused"
        else:
            state = "idle"

        homed_value = first_present(data, "Homed", "homed", "ZHomed")
        message = first_present(data, "Status", "status")

        return cls(
            printing=printing,
            paused=paused,
            state=state,
            state_code=parse_int(first_present(data, "State", "state_code")),
            layer_id=parse_int(first_present(data, "LayerID", "layer_id")),
            layers_count=parse_int(first_present(data, "LayersCount", "layers_count")),
            current_height=parse_int(
                first_present(data, "CurrentHeight", "current_height")
            ),
            curing=parse_bool(first_present(data, "Curing", "curing")),
            file=file_ref,
            plate_id=parse_int(
                first_present(data, "PlateID", "plate_id", "Plateid", "plateId")
            ),
            homed=parse_bool(homed_value) if homed_value is not None else None,
            z_offset=parse_float(first_present(data, "ZOffset", "z_offset")),
            status_message=str(message) if message is not None else None,
        )

    def with_file(self, file_ref: FileRef) -> "RawStatus":
        return replace(self, file=file_ref)


@dataclass(slots=True, frozen=True)
class PhysicalState:
    z: float = 0.0
    curing: bool = False


@dataclass(slots=True, frozen=True)
class FileData:
    name: str
    path: str


@dataclass(slots=True, frozen=True)
class PrintData:
    layer_count: int = 0
    layer: Optional[int] = None
    file_data: Optional[FileData] = None


@dataclass(slots=True, frozen=True)
class CanonicalStatus:
    """Backend-independent status consumed by the UI layers.

    ``finished`` is a one-shot edge flag, true only for the snapshot that
    observed the job completing.
    """

    status: PrinterStatus = PrinterStatus.IDLE
    paused: bool = False
    finished: bool = False
    physical_state: PhysicalState = field(default_factory=PhysicalState)
    print_data: Optional[PrintData] = None

    @property
    def layer(self) -> Optional[int]:
        return self.print_data.layer if self.print_data else None

    @property
    def is_printing(self) -> bool:
        return self.status is PrinterStatus.PRINTING

    @property
    def is_idle(self) -> bool:
        return self.status is PrinterStatus.IDLE

    @property
    def is_paused(self) -> bool:
        return self.paused or self.status is PrinterStatus.PAUSED

    @property
    def is_canceled(self) -> bool:
        return self.status is PrinterStatus.CANCELED

    @property
    def progress(self) -> float:
        """Print progress in the 0.0-1.0 range."""
        if self.print_data is None or self.print_data.layer is None:
            return 0.0
        total = self.print_data.layer_count
        if total <= 0:
            return 0.0
        return max(0, min(self.print_data.layer, total)) / total

    def to_dict(self) -> dict[str, Any]:
        print_data: Optional[dict[str, Any]] = None
        if self.print_data is not None:
            file_data = self.print_data.file_data
            print_data = {
                "layer_count": self.print_data.layer_count,
                "layer": self.print_data.layer,
                "file_data": (
                    {"name": file_data.name, "path": file_data.path}
                    if file_data is not None
                    else None
                ),
            }
        return {
            "status": self.status.value,
            "paused": self.paused,
            "finished": self.finished,
            "physical_state": {
                "z": self.physical_state.z,
                "curing": self.physical_state.curing,
            },
            "print_data": print_data,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CanonicalStatus":
        """Parse the canonical JSON shape.

        The native backend reports ``layer`` at the top level rather than inside
        ``print_data``; both placements are accepted.
        """
        physical = data.get("physical_state")
        if not isinstance(physical, Mapping):
            physical = {}
        physical_state = PhysicalState(
            z=parse_float(physical.get("z")) or 0.0,
            curing=parse_bool(physical.get("curing")),
        )

        print_data: Optional[PrintData] = None
        raw_print = data.get("print_data")
        if isinstance(raw_print, Mapping):
            raw_file = raw_print.get("file_data")
            file_data: Optional[FileData] = None
            if isinstance(raw_file, Mapping):
                name = str(raw_file.get("name") or raw_file.get("path") or "")
                path = str(raw_file.get("path") or name)
                file_data = FileData(name=name, path=path)
            layer = raw_print.get("layer", data.get("layer"))
            print_data = PrintData(
                layer_count=parse_int(raw_print.get("layer_count")) or 0,
                layer=parse_int(layer),
                file_data=file_data,
            )

        return cls(
            status=PrinterStatus.parse(data.get("status")),
            paused=parse_bool(data.get("paused")),
            finished=parse_bool(data.get("finished")),
            physical_state=physical_state,
            print_data=print_data,
        )


@dataclass(slots=True, frozen=True)
class KinematicStatus:
    """Z-axis snapshot used during homing and leveling."""

    homed: bool = False
    position: float = 0.0
    offset: float = 0.0


@dataclass(slots=True, frozen=True)
class CommandResult:
    ok: bool
    message: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "CommandResult":
        """Interpret the loosely shaped replies of manual-control endpoints."""
        if isinstance(payload, Mapping):
            if isinstance(payload.get("ok"), bool):
                ok = payload["ok"]
            else:
                ok = payload.get("result", "ok") == "ok"
            message = payload.get("message")
            return cls(ok=ok, message=str(message) if message is not None else None)
        if isinstance(payload, bool):
            return cls(ok=payload)
        if isinstance(payload, str):
            text = payload.strip()
            return cls(ok=True, message=text or None)
        return cls(ok=True)
