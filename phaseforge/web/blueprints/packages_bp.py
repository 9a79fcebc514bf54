"""包与构建 API Blueprint"""

from __future__ import annotations

from flask import Blueprint, Response, request

from phaseforge.web.responses import bad_request, not_found, ok

packages_bp = Blueprint("packages", __name__, url_prefix="/api")


def _build_svc():  # type: ignore[no-untyped-def]
    from phaseforge.services.container import get_container
    return get_container().build


@packages_bp.route("/packages", methods=["GET"])
def list_all() -> Response:
    return ok({"packages": _build_svc().list_all()})


@packages_bp.route("/packages/<name>", methods=["GET"])
def get(name: str) -> tuple[Response, int] | Response:
    descriptor = _build_svc().get(name)
    if descriptor is None:
        return not_found(f"包 {name} ")
    return ok({"package": descriptor.describe()})


@packages_bp.route("/packages/<name>/build", methods=["POST"])
def build(name: str) -> tuple[Response, int] | Response:
    body = request.get_json(silent=True) or {}
    with_inputs = body.get("with_inputs", True)
    force = body.get("force", False)
    if not isinstance(with_inputs, bool) or not isinstance(force, bool):
        return bad_request("with_inputs / force 必须是布尔值")
    result = _build_svc().build(name, with_inputs=with_inputs, force=force)
    return ok({"result": result.to_dict()}, 200 if result.success else 422)


@packages_bp.route("/builds", methods=["GET"])
def list_builds() -> Response:
    return ok({"builds": _build_svc().list_builds()})
