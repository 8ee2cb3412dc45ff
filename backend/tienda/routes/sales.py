# Overview: Flask API routes for sales; parses input, checks the caller's role and returns JSON/PDF responses.

# backend/tienda/routes/sales.py
"""Sales API routes. Tenant and role come from the upstream gateway headers."""

import io

from flask import Blueprint, current_app, jsonify, request, send_file
from werkzeug.exceptions import HTTPException

from ..authorization import SALES_ROLES, principal_from_headers, require_role
from ..domain import STATUS_REGISTERED
from ..errors import DomainError, InvalidStateTransition
from ..repositories import storage_for
from ..services import document_service, sale_lifecycle
from ..services.artifact_store import ArtifactStore
from ..validation import parse_checkout, parse_sale_filters


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _principal():
    return require_role(principal_from_headers(request.headers), SALES_ROLES)


def _error(e: DomainError):
    return jsonify(e.as_dict()), e.http_status


@sales_bp.post("")
def create_sale_route():
    """
    Checkout. PHYSICAL sales come back PAID and DELIVERED; ONLINE sales come
    back REGISTERED awaiting approval.
    """
    try:
        principal = _principal()
        command = parse_checkout(request.get_json(silent=True), user_id=principal.user_id).unwrap()
        sale = sale_lifecycle.checkout(storage_for(current_app), principal.tenant_id, command)
        return jsonify({"sale": sale.to_dict()}), 201

    except DomainError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
def list_sales_route():
    try:
        principal = _principal()
        filters = parse_sale_filters(request.args).unwrap()
        sales = sale_lifecycle.list_sales(storage_for(current_app), principal.tenant_id, filters)
        return jsonify({"sales": [s.to_dict() for s in sales], "count": len(sales)}), 200

    except DomainError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
def get_sale_route(sale_id: int):
    try:
        principal = _principal()
        sale = sale_lifecycle.get_sale(storage_for(current_app), principal.tenant_id, sale_id)
        return jsonify({"sale": sale.to_dict()}), 200

    except DomainError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to get sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:sale_id>/payment-proof")
def upload_payment_proof_route(sale_id: int):
    """
    Upload a QR screenshot or transfer receipt (multipart field "file") and
    attach it to a sale awaiting approval.
    """
    try:
        principal = _principal()
        storage = storage_for(current_app)
        # 404 / 409 before writing anything to disk
        sale = sale_lifecycle.get_sale(storage, principal.tenant_id, sale_id)
        if sale.status != STATUS_REGISTERED:
            return _error(
                InvalidStateTransition(
                    "attach payment proof to", sale.state(), "proof can only be attached before approval"
                )
            )

        store = ArtifactStore(current_app.config["ARTIFACT_DIR"], current_app.config["ALLOWED_ARTIFACT_EXTENSIONS"])
        ref = store.store(request.files.get("file"), tenant_id=principal.tenant_id)
        try:
            sale = sale_lifecycle.attach_payment_proof(storage, principal.tenant_id, sale_id, ref)
        except DomainError:
            # Sale moved on between the check above and the attach
            store.discard(ref)
            raise
        return jsonify({"sale": sale.to_dict()}), 200

    except DomainError as e:
        return _error(e)
    except HTTPException as e:
        # Body over MAX_CONTENT_LENGTH surfaces here as a 413
        return jsonify({"error": e.description, "code": "UPLOAD_REJECTED"}), e.code
    except Exception:
        current_app.logger.exception("Failed to upload payment proof")
        return jsonify({"error": "Internal server error"}), 500


def _transition(sale_id: int, operation, failure: str):
    try:
        principal = _principal()
        sale = operation(storage_for(current_app), principal.tenant_id, sale_id, user_id=principal.user_id)
        return jsonify({"sale": sale.to_dict()}), 200

    except DomainError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception(failure)
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:sale_id>/approve")
def approve_sale_route(sale_id: int):
    """Online sale REGISTERED -> PAID; 422 without proof, 409 on stock shortfall."""
    return _transition(sale_id, sale_lifecycle.approve, "Failed to approve sale")


@sales_bp.post("/<int:sale_id>/reject")
def reject_sale_route(sale_id: int):
    return _transition(sale_id, sale_lifecycle.reject, "Failed to reject sale")


@sales_bp.post("/<int:sale_id>/cancel")
def cancel_sale_route(sale_id: int):
    return _transition(sale_id, sale_lifecycle.cancel, "Failed to cancel sale")


@sales_bp.post("/<int:sale_id>/deliver")
def deliver_sale_route(sale_id: int):
    return _transition(sale_id, sale_lifecycle.deliver, "Failed to deliver sale")


@sales_bp.post("/<int:sale_id>/invoice")
def issue_invoice_route(sale_id: int):
    return _transition(sale_id, sale_lifecycle.issue_invoice, "Failed to issue invoice")


@sales_bp.get("/<int:sale_id>/document")
def sale_document_route(sale_id: int):
    """Receipt or invoice PDF, rendered from the sale's current state."""
    try:
        principal = _principal()
        pdf, filename = document_service.render_sale_document(
            storage_for(current_app), principal.tenant_id, sale_id
        )
        return send_file(
            io.BytesIO(pdf),
            mimetype="application/pdf",
            as_attachment=request.args.get("download") == "1",
            download_name=filename,
        )

    except DomainError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to render sale document")
        return jsonify({"error": "Internal server error"}), 500
