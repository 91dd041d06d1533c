# servicenow/servicenow_client.py
import logging
import os
import threading
from typing import Any, Dict, List, Optional, Sequence, Type, Union

from requests import Session

from schemas.table_models import Attachment, ClassMeta, TableRecord
from servicenow import envelope, query_builder
from servicenow.pager import AggregatedResult, OffsetPager, Page, PagingOptions, PagingStrategy
from servicenow.query_builder import PageRequest
from servicenow.transport import Transport
from utils import raise_if_cancelled, relative_api_path

TableRef = Union[str, Type[TableRecord]]
Record = Union[Dict[str, Any], TableRecord]


class ServiceNowClient:
    """
    ServiceNow Table API client.

    `table` arguments take either a table name or a TableRecord subclass; typed
    calls return model instances, untyped calls return plain dicts.
    Reads can flatten reference fields ({"link": ..., "value": ...} -> value).
    """

    TABLE_PATH = "api/now/table"
    ATTACHMENT_PATH = "api/now/attachment"
    CMDB_META_PATH = "api/now/cmdb/meta"

    def __init__(
        self,
        instance: str,
        username: str,
        password: str,
        *,
        session: Optional[Session] = None,
        timeout: float = 120,
        max_retries: int = 3,
        paging: Optional[PagingOptions] = None,
        pager: Optional[PagingStrategy] = None,
        logger: Optional[logging.Logger] = None,
    ):
        if not instance:
            raise ValueError("instance is required")
        if not username:
            raise ValueError("username is required")
        if password is None or password == "":
            raise ValueError("password is required")

        self.instance = instance
        self.logger = logger or logging.getLogger(__name__)
        self.transport = Transport(
            instance, (username, password), session=session, timeout=timeout, max_retries=max_retries
        )
        self.paging = paging or PagingOptions()
        self.pager = pager or OffsetPager(self.logger)
        self.logger.debug(f"Created ServiceNowClient for {self.transport.base_url}")

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def close(self) -> None:
        self.transport.close()

    # ---------- queries ----------

    def get_all(
        self,
        table: TableRef,
        query: Optional[str] = None,
        fields: Optional[Sequence[str]] = None,
        extra: Optional[str] = None,
        *,
        page_size: Optional[int] = None,
        validate_count: Optional[bool] = None,
        flatten_values: bool = False,
        cancel: Optional[threading.Event] = None,
    ) -> AggregatedResult:
        """Every record matching query, fetched page by page."""
        table_name = self._table_name(table)
        options = PagingOptions(
            page_size=page_size if page_size is not None else self.paging.page_size,
            validate_count=validate_count if validate_count is not None else self.paging.validate_count,
        )
        self.logger.debug(
            f"get_all table={table_name}, query={query or '<not set>'}, "
            f"fields={', '.join(fields) if fields else '<not set>'}"
        )

        def fetch_page(offset, limit, q, f, x, c):
            return self.get_page(table, offset, limit, q, f, x, flatten_values=flatten_values, cancel=c)

        return self.pager.fetch_all(
            fetch_page, query, fields, extra, options=options, cancel=cancel, label=table_name
        )

    def get_page(
        self,
        table: TableRef,
        offset: int,
        limit: int,
        query: Optional[str] = None,
        fields: Optional[Sequence[str]] = None,
        extra: Optional[str] = None,
        *,
        flatten_values: bool = False,
        cancel: Optional[threading.Event] = None,
    ) -> Page:
        """
        One page: at most `limit` records starting at `offset`, in server order.
        """
        table_name = self._table_name(table)
        request = PageRequest(offset, limit, query, tuple(self._fields_for(table, fields)), extra)
        resp = self.transport.send("GET", f"{self.TABLE_PATH}/{table_name}?{request.to_query_string()}", cancel=cancel)

        raise_if_cancelled(cancel, "decoding page")
        env = envelope.normalize_list(resp.body, resp.headers, self._item_factory(table, flatten_values))
        return Page(items=env.items, total_count=env.total_count)

    def get_by_id(
        self,
        table: TableRef,
        sys_id: str,
        fields: Optional[Sequence[str]] = None,
        *,
        flatten_values: bool = False,
        cancel: Optional[threading.Event] = None,
    ):
        path = f"{self.TABLE_PATH}/{self._table_name(table)}/{sys_id}"
        fields_param = query_builder.build_fields_param(self._fields_for(table, fields))
        if fields_param:
            path = f"{path}?{fields_param}"
        return self._get_single(path, self._item_factory(table, flatten_values), cancel)

    def get_linked_entity(
        self,
        link: str,
        fields: Optional[Sequence[str]] = None,
        *,
        cancel: Optional[threading.Event] = None,
    ) -> Dict[str, Any]:
        """Resolve a reference link (the "link" member of a reference field)."""
        path = relative_api_path(link)
        fields_param = query_builder.build_fields_param(fields)
        if fields_param:
            path += ("&" if "?" in path else "?") + fields_param
        return self._get_single(path, None, cancel)

    # ---------- writes ----------

    def create(self, table: TableRef, record: Record, *, cancel: Optional[threading.Event] = None):
        if record is None:
            raise ValueError("record is required")
        resp = self.transport.send(
            "POST", f"{self.TABLE_PATH}/{self._table_name(table)}", self._body(record), cancel
        )
        return self._decode_single(resp, self._item_factory(table), cancel)

    def update(self, table: TableRef, record: Record, *, cancel: Optional[threading.Event] = None):
        """Replace a record (PUT). The record must carry its sys_id."""
        return self._write_existing("PUT", table, record, cancel)

    def patch(self, table: TableRef, record: Record, *, cancel: Optional[threading.Event] = None):
        """Partially update a record (PATCH). The record must carry its sys_id."""
        return self._write_existing("PATCH", table, record, cancel)

    def delete(self, table: TableRef, sys_id: str, *, cancel: Optional[threading.Event] = None) -> None:
        if not sys_id:
            raise ValueError("sys_id is required")
        self.transport.send("DELETE", f"{self.TABLE_PATH}/{self._table_name(table)}/{sys_id}", cancel=cancel)
        self.logger.info(f"Deleted {self._table_name(table)}/{sys_id}")

    # ---------- attachments & metadata ----------

    def get_attachments(
        self,
        table: TableRef,
        table_sys_id: Union[str, TableRecord],
        *,
        cancel: Optional[threading.Event] = None,
    ) -> List[Attachment]:
        if isinstance(table_sys_id, TableRecord):
            table_sys_id = table_sys_id.sys_id
        q = query_builder.build(f"table_name={self._table_name(table)}^table_sys_id={table_sys_id}")
        resp = self.transport.send("GET", f"{self.ATTACHMENT_PATH}?{q}", cancel=cancel)
        raise_if_cancelled(cancel, "decoding attachments")
        return envelope.normalize_list(resp.body, resp.headers, Attachment.from_dict).items

    def download_attachment(
        self,
        attachment: Attachment,
        output_path: str,
        filename: Optional[str] = None,
        *,
        cancel: Optional[threading.Event] = None,
    ) -> str:
        """Write the attachment content under output_path; returns the file path."""
        # server-supplied names may carry directory parts
        name = os.path.basename(filename or attachment.file_name or "")
        if name in ("", ".", ".."):
            raise ValueError(f"Attachment {attachment.sys_id} has no usable file name")
        target = os.path.join(output_path, name)
        written = self.transport.download(attachment.download_link, target, cancel)
        self.logger.info(f"Downloaded attachment {attachment.sys_id} ({written} bytes) to {target}")
        return target

    def get_meta_for_class(self, class_name: str, *, cancel: Optional[threading.Event] = None) -> ClassMeta:
        return self._get_single(f"{self.CMDB_META_PATH}/{class_name}", ClassMeta.from_dict, cancel)

    # ---------- helpers ----------

    def _get_single(self, path: str, item_factory, cancel: Optional[threading.Event]):
        resp = self.transport.send("GET", path, cancel=cancel)
        return self._decode_single(resp, item_factory, cancel)

    @staticmethod
    def _decode_single(resp, item_factory, cancel: Optional[threading.Event]):
        raise_if_cancelled(cancel, "decoding response")
        return envelope.normalize_single(resp.body, resp.headers, item_factory).item

    def _write_existing(self, method: str, table: TableRef, record: Record, cancel: Optional[threading.Event]):
        if record is None:
            raise ValueError("record is required")
        body = self._body(record)
        sys_id = body.get("sys_id")
        if not sys_id:
            raise ValueError("sys_id must be present in the record")
        resp = self.transport.send(method, f"{self.TABLE_PATH}/{self._table_name(table)}/{sys_id}", body, cancel)
        return self._decode_single(resp, self._item_factory(table), cancel)

    @staticmethod
    def _body(record: Record) -> Dict[str, Any]:
        rec = record.to_record() if isinstance(record, TableRecord) else record
        return {k: v for k, v in rec.items() if v is not None}

    @staticmethod
    def _table_name(table: TableRef) -> str:
        if isinstance(table, type) and issubclass(table, TableRecord):
            return table.table_name()
        if not table:
            raise ValueError("table is required")
        return table

    @staticmethod
    def _fields_for(table: TableRef, fields: Optional[Sequence[str]]) -> List[str]:
        """Explicit fields win; typed tables default to their mapped fields."""
        if isinstance(fields, str):
            return [fields]
        if fields:
            return list(fields)
        if isinstance(table, type) and issubclass(table, TableRecord):
            return table.field_list()
        return []

    def _item_factory(self, table: TableRef, flatten_values: bool = False):
        if isinstance(table, type) and issubclass(table, TableRecord):
            return table.from_record
        if flatten_values:
            return self._flatten_one
        return None

    @staticmethod
    def _flatten_one(rec: Dict) -> Dict:
        return {k: (v.get("value") if isinstance(v, dict) and "value" in v else v) for k, v in rec.items()}
