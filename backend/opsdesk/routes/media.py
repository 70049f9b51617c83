# Overview: Serves stored uploads (product images, avatars).

from flask import Blueprint, jsonify, send_file

from ..services import media_service


media_bp = Blueprint("media", __name__, url_prefix="/media")


@media_bp.get("/<kind>/<filename>")
def serve(kind: str, filename: str):
    path = media_service.resolve_path(kind, filename)
    if path is None:
        return jsonify({"error": "Not found"}), 404
    return send_file(path, max_age=86400)
