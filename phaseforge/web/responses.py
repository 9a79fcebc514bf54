"""Web 层统一响应辅助函数"""

from __future__ import annotations

from flask import Response, jsonify

from phaseforge.core.exceptions import PhaseForgeError

# 异常 code -> HTTP 状态码，未列出的按 400 处理
STATUS_BY_CODE = {
    "PACKAGE_NOT_FOUND": 404,
    "PHASE_OVERRIDE_CONFLICT": 409,
    "OUTPUT_MAPPING_UNRESOLVED": 409,
    "ARTIFACT_MISSING": 409,
    "PRUNE_TARGET_MISSING": 409,
    "BUILD_STATE_ERROR": 409,
    "CONFIG_ERROR": 500,
}


def ok(data: dict, status: int = 200) -> tuple[Response, int] | Response:
    if status == 200:
        return jsonify(data)
    return jsonify(data), status


def not_found(resource: str) -> tuple[Response, int]:
    return jsonify(error=f"{resource}不存在"), 404


def bad_request(message: str) -> tuple[Response, int]:
    return jsonify(error=message), 400


def from_error(exc: PhaseForgeError) -> tuple[Response, int]:
    status = STATUS_BY_CODE.get(exc.code, 400)
    return jsonify(error=str(exc), code=exc.code), status
