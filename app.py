# app.py
import logging
import os

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from config import AppConfig
from servicenow.errors import CountMismatchError, ServiceNowError, TransportError
from servicenow.servicenow_client import ServiceNowClient


def _error_response(e: ServiceNowError):
    body = {"ok": False, "error": str(e), "type": type(e).__name__}
    if isinstance(e, TransportError):
        body["status_code"] = e.status_code
        body["retriable"] = e.retriable
    if isinstance(e, CountMismatchError):
        body["expected"] = e.expected
        body["actual"] = e.actual
        return jsonify(body), 409
    return jsonify(body), 502


def _fields_arg():
    raw = request.args.get("fields", "")
    return [f.strip() for f in raw.split(",") if f.strip()] or None


def _page_size_arg(default: int) -> int:
    raw = request.args.get("page_size")
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"page_size must be an integer, got {raw!r}")


def download_dir(root: str, table: str, sys_id: str) -> str:
    """Per-record download directory; must resolve strictly inside root."""
    base = os.path.realpath(root)
    target = os.path.realpath(os.path.join(base, table, sys_id))
    if not target.startswith(base + os.sep):
        raise ValueError(f"Download path for {table}/{sys_id} escapes {root}")
    return target


def create_app(cfg: AppConfig = None, client: ServiceNowClient = None):
    app = Flask(__name__)
    cfg = cfg or AppConfig.from_env()

    logging.basicConfig(
        level=getattr(logging, cfg.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s - %(message)s"
    )
    log = logging.getLogger("sn_flask")

    sn = client or ServiceNowClient(
        cfg.SN_INSTANCE,
        cfg.SN_USERNAME,
        cfg.SN_PASSWORD,
        timeout=cfg.HTTP_TIMEOUT,
        max_retries=cfg.HTTP_RETRIES,
    )

    @app.errorhandler(ServiceNowError)
    def servicenow_error(e):
        log.warning(f"ServiceNow call failed: {e}")
        return _error_response(e)

    @app.errorhandler(ValueError)
    def bad_request(e):
        return jsonify({"ok": False, "error": str(e)}), 400

    @app.get("/health")
    def health():
        return jsonify({"ok": True})

    @app.get("/tables/<table>/records")
    def list_records(table):
        page_size = _page_size_arg(cfg.PAGE_SIZE)
        strict_arg = request.args.get("strict")
        strict = cfg.VALIDATE_COUNT if strict_arg is None else strict_arg.lower() == "true"

        log.info(f"Fetching all {table} records (query={request.args.get('query')}, page_size={page_size})")
        result = sn.get_all(
            table,
            query=request.args.get("query") or None,
            fields=_fields_arg(),
            page_size=page_size,
            validate_count=strict,
            flatten_values=request.args.get("flatten", "false").lower() == "true",
        )
        return jsonify({
            "ok": True,
            "table": table,
            "count": len(result.items),
            "total_count": result.total_count,
            "records": result.items,
        })

    @app.get("/tables/<table>/records/<sys_id>")
    def get_record(table, sys_id):
        record = sn.get_by_id(table, sys_id, _fields_arg())
        return jsonify({"ok": True, "table": table, "record": record})

    @app.get("/tables/<table>/records/<sys_id>/attachments")
    def list_attachments(table, sys_id):
        attachments = sn.get_attachments(table, sys_id)
        return jsonify({"ok": True, "attachments": [a.to_dict() for a in attachments]})

    @app.post("/tables/<table>/records/<sys_id>/attachments/download")
    def download_attachments(table, sys_id):
        target_dir = download_dir(cfg.DOWNLOAD_DIR, table, sys_id)
        os.makedirs(target_dir, exist_ok=True)

        paths = [sn.download_attachment(a, target_dir) for a in sn.get_attachments(table, sys_id)]
        log.info(f"Downloaded {len(paths)} attachments for {table}/{sys_id} into {target_dir}")
        return jsonify({"ok": True, "files": paths})

    @app.get("/meta/<class_name>")
    def class_meta(class_name):
        meta = sn.get_meta_for_class(class_name)
        return jsonify({
            "ok": True,
            "name": meta.name,
            "label": meta.label,
            "parent": meta.parent,
            "children": meta.children,
            "attributes": meta.attribute_names(),
        })

    @app.errorhandler(Exception)
    def unexpected(e):
        if isinstance(e, HTTPException):
            return e
        log.exception("Request failed")
        return jsonify({"ok": False, "error": str(e)}), 500

    return app
