# Overview: Flask API routes for purchases (owner only); registration, lookup and voucher PDF.

# backend/tienda/routes/purchases.py
"""Purchase API routes. Only the tenant owner registers or views purchases."""

import io

from flask import Blueprint, current_app, jsonify, request, send_file

from ..authorization import PURCHASE_ROLES, principal_from_headers, require_role
from ..errors import DomainError
from ..repositories import storage_for
from ..services import document_service, purchase_lifecycle
from ..validation import parse_purchase, parse_purchase_filters


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


def _principal():
    return require_role(principal_from_headers(request.headers), PURCHASE_ROLES)


@purchases_bp.post("")
def create_purchase_route():
    """
    Register a purchase and add its quantities to stock.

    QR / TRANSFER purchases without payment_proof_ref are rejected with 422
    before stock is touched.
    """
    try:
        principal = _principal()
        command = parse_purchase(request.get_json(silent=True), user_id=principal.user_id).unwrap()
        purchase = purchase_lifecycle.create_purchase(storage_for(current_app), principal.tenant_id, command)
        return jsonify({"purchase": purchase.to_dict()}), 201

    except DomainError as e:
        return jsonify(e.as_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.get("")
def list_purchases_route():
    try:
        principal = _principal()
        filters = parse_purchase_filters(request.args).unwrap()
        purchases = purchase_lifecycle.list_purchases(
            storage_for(current_app),
            principal.tenant_id,
            supplier_id=filters.supplier_id,
            limit=filters.limit,
        )
        return jsonify({"purchases": [p.to_dict() for p in purchases], "count": len(purchases)}), 200

    except DomainError as e:
        return jsonify(e.as_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list purchases")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.get("/<int:purchase_id>")
def get_purchase_route(purchase_id: int):
    try:
        principal = _principal()
        purchase = purchase_lifecycle.get_purchase(storage_for(current_app), principal.tenant_id, purchase_id)
        return jsonify({"purchase": purchase.to_dict()}), 200

    except DomainError as e:
        return jsonify(e.as_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to get purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.get("/<int:purchase_id>/document")
def purchase_document_route(purchase_id: int):
    try:
        principal = _principal()
        pdf, filename = document_service.render_purchase_document(
            storage_for(current_app), principal.tenant_id, purchase_id
        )
        return send_file(
            io.BytesIO(pdf),
            mimetype="application/pdf",
            as_attachment=request.args.get("download") == "1",
            download_name=filename,
        )

    except DomainError as e:
        return jsonify(e.as_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to render purchase document")
        return jsonify({"error": "Internal server error"}), 500
