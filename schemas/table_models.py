"""
ServiceNow table models.
Maps ServiceNow field names to attribute names for typed record access.
"""

from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Optional


@dataclass
class FieldMapping:
    sn_field: str
    attr_name: str
    description: Optional[str] = None


def _reference_value(value: Any) -> Any:
    # reference fields arrive as {"link": ..., "value": ...}
    if isinstance(value, dict) and "value" in value:
        return value.get("value")
    return value


@dataclass
class TableRecord:
    """
    Base for typed table rows. Subclasses set TABLE_NAME and FIELD_MAPPINGS;
    anything not mapped stays reachable through `raw`.
    """

    TABLE_NAME: ClassVar[str] = ""
    FIELD_MAPPINGS: ClassVar[List[FieldMapping]] = []

    sys_id: Optional[str] = None
    values: Dict[str, Any] = field(default_factory=dict)
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def table_name(cls) -> str:
        if not cls.TABLE_NAME:
            raise TypeError(f"{cls.__name__} does not define TABLE_NAME")
        return cls.TABLE_NAME

    @classmethod
    def field_list(cls) -> List[str]:
        return ["sys_id"] + [m.sn_field for m in cls.FIELD_MAPPINGS]

    @classmethod
    def from_record(cls, record: Dict[str, Any]):
        values = {m.attr_name: _reference_value(record.get(m.sn_field)) for m in cls.FIELD_MAPPINGS}
        return cls(sys_id=_reference_value(record.get("sys_id")), values=values, raw=dict(record))

    def to_record(self) -> Dict[str, Any]:
        """Serialize back to ServiceNow field names; unset values are left out."""
        rec = {
            m.sn_field: self.values[m.attr_name]
            for m in self.FIELD_MAPPINGS
            if self.values.get(m.attr_name) is not None
        }
        if self.sys_id:
            rec["sys_id"] = self.sys_id
        return rec

    def __getitem__(self, attr_name: str) -> Any:
        return self.values[attr_name]


@dataclass
class Incident(TableRecord):
    TABLE_NAME: ClassVar[str] = "incident"
    FIELD_MAPPINGS: ClassVar[List[FieldMapping]] = [
        FieldMapping("number", "number", "Incident number"),
        FieldMapping("short_description", "short_description", "One-line summary"),
        FieldMapping("state", "state", "Workflow state"),
        FieldMapping("priority", "priority", "Priority 1-5"),
        FieldMapping("caller_id", "caller", "Reference to sys_user"),
        FieldMapping("assignment_group", "assignment_group", "Reference to sys_user_group"),
        FieldMapping("sys_created_on", "created_on", "Record creation timestamp"),
        FieldMapping("sys_updated_on", "updated_on", "Record modification timestamp"),
    ]


@dataclass
class Attachment:
    sys_id: str
    file_name: str
    download_link: str
    table_name: Optional[str] = None
    table_sys_id: Optional[str] = None
    content_type: Optional[str] = None
    size_bytes: Optional[int] = None

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Attachment":
        size = d.get("size_bytes")
        return cls(
            sys_id=d["sys_id"],
            file_name=d["file_name"],
            download_link=d["download_link"],
            table_name=d.get("table_name"),
            table_sys_id=d.get("table_sys_id"),
            content_type=d.get("content_type"),
            size_bytes=int(size) if size not in (None, "") else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sys_id": self.sys_id,
            "file_name": self.file_name,
            "download_link": self.download_link,
            "table_name": self.table_name,
            "table_sys_id": self.table_sys_id,
            "content_type": self.content_type,
            "size_bytes": self.size_bytes,
        }


@dataclass
class ClassMeta:
    """CMDB class metadata from api/now/cmdb/meta/{class}."""

    name: str
    label: Optional[str] = None
    parent: Optional[str] = None
    children: List[str] = field(default_factory=list)
    attributes: List[Dict[str, Any]] = field(default_factory=list)
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ClassMeta":
        return cls(
            name=d["name"],
            label=d.get("label"),
            parent=d.get("parent") or None,
            children=list(d.get("children") or []),
            attributes=list(d.get("attributes") or []),
            raw=dict(d),
        )

    def attribute_names(self) -> List[str]:
        return [a["element"] for a in self.attributes if "element" in a]
