from dataclasses import asdict, is_dataclass

from core.imports import jsonify
from core.result import http_status


def failure_response(error):
    return jsonify({"message": error.message, "error": error.kind.value}), http_status(error)


def record_to_dict(record):
    return asdict(record) if is_dataclass(record) else record
