"""轻量级 JSON API（基于 Flask）

提供: 包列表与详情、触发构建、构建索引查询。

启动方式: phaseforge serve --port 8890
"""

from __future__ import annotations

import logging

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from phaseforge.core.exceptions import PhaseForgeError
from phaseforge.web.blueprints.packages_bp import packages_bp
from phaseforge.web.responses import from_error

logger = logging.getLogger(__name__)

app = Flask(__name__)
app.register_blueprint(packages_bp)


@app.errorhandler(PhaseForgeError)
def handle_phaseforge_error(exc: PhaseForgeError):  # type: ignore[no-untyped-def]
    return from_error(exc)


@app.errorhandler(HTTPException)
def handle_http_exception(exc: HTTPException):  # type: ignore[no-untyped-def]
    return jsonify(error=exc.description), exc.code


@app.errorhandler(Exception)
def handle_generic_exception(exc: Exception):  # type: ignore[no-untyped-def]  # noqa: ARG001
    logger.exception("未处理的异常")
    return jsonify(error="服务器内部错误"), 500


def run_server(host: str = "127.0.0.1", port: int = 8890) -> None:
    logger.info("API 服务启动: http://%s:%d", host, port)
    app.run(host=host, port=port, debug=False)
